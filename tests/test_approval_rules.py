"""
Unit tests for approval_rules module.

Tests quote sufficiency tiers, quote validity, the approver eligibility
table and vendor approval lookups.
"""

import math

import pytest

from prflow.models.reference import PermissionLevel
from prflow.services.approval_rules import (
    ApprovalRulesConfig,
    QuoteTier,
    VendorApprovalChecker,
    can_approve_amount,
    create_approval_validator,
    is_quote_valid,
    max_approvable_amount,
    required_quotes,
)
from prflow.services.storage import RecordStoreError

RULE_1 = 1000.0
RULE_2 = 10000.0


class TestRequiredQuotes:
    """Tests for the required_quotes function"""

    def test_below_rule_1_needs_no_quotes(self):
        req = required_quotes(0.99 * RULE_1, RULE_1, RULE_2, vendor_is_approved=False)
        assert req.minimum_count == 0
        assert req.attachments_required is False
        assert req.tier == QuoteTier.BELOW_RULE_1

    def test_just_above_rule_1_with_approved_vendor_needs_one(self):
        req = required_quotes(RULE_1 + 1, RULE_1, RULE_2, vendor_is_approved=True)
        assert req.minimum_count == 1
        assert req.attachments_required is True
        assert req.tier == QuoteTier.APPROVED_VENDOR

    def test_just_above_rule_1_without_approved_vendor_needs_three(self):
        req = required_quotes(RULE_1 + 1, RULE_1, RULE_2, vendor_is_approved=False)
        assert req.minimum_count == 3
        assert req.attachments_required is True
        assert req.tier == QuoteTier.UNAPPROVED_VENDOR

    def test_exactly_rule_1_is_not_below_it(self):
        req = required_quotes(RULE_1, RULE_1, RULE_2, vendor_is_approved=True)
        assert req.minimum_count == 1

    @pytest.mark.parametrize("vendor_is_approved", [True, False])
    def test_high_value_needs_three_regardless_of_vendor(self, vendor_is_approved):
        req = required_quotes(RULE_2, RULE_1, RULE_2, vendor_is_approved)
        assert req.minimum_count == 3
        assert req.attachments_required is True
        assert req.tier == QuoteTier.HIGH_VALUE

    def test_four_times_rule_1_needs_three_even_with_approved_vendor(self):
        req = required_quotes(4 * RULE_1, RULE_1, RULE_2, vendor_is_approved=True)
        assert req.minimum_count == 3
        assert req.tier == QuoteTier.ESCALATED

    def test_just_below_escalation_keeps_vendor_reduction(self):
        req = required_quotes(4 * RULE_1 - 1, RULE_1, RULE_2, vendor_is_approved=True)
        assert req.minimum_count == 1

    def test_config_overrides_count_and_multiplier(self):
        config = ApprovalRulesConfig(quote_count_required=5, quote_escalation_multiplier=2.0)
        req = required_quotes(2 * RULE_1, RULE_1, RULE_2, vendor_is_approved=True, config=config)
        assert req.minimum_count == 5
        assert req.tier == QuoteTier.ESCALATED


class TestQuoteValidity:
    """Tests for is_quote_valid"""

    def test_quote_below_rule_1_valid_without_attachments(self):
        assert is_quote_valid(RULE_1 - 0.01, attachment_count=0, rule1_threshold=RULE_1) is True

    def test_quote_at_rule_1_without_attachments_does_not_count(self):
        assert is_quote_valid(RULE_1, attachment_count=0, rule1_threshold=RULE_1) is False

    def test_quote_above_rule_1_with_attachment_counts(self):
        assert is_quote_valid(RULE_1 * 3, attachment_count=1, rule1_threshold=RULE_1) is True


class TestApproverEligibility:
    """Tests for the explicit eligibility table"""

    @pytest.mark.parametrize("level", [PermissionLevel.ADMIN, PermissionLevel.APPROVER])
    def test_senior_levels_are_unlimited(self, level):
        assert max_approvable_amount(level, RULE_1) == math.inf
        assert can_approve_amount(level, 1_000_000, RULE_1) is True

    @pytest.mark.parametrize("level", [PermissionLevel.FINANCE_ADMIN, PermissionLevel.FINANCE_APPROVER])
    def test_finance_levels_capped_at_rule_1(self, level):
        assert max_approvable_amount(level, RULE_1) == RULE_1
        assert can_approve_amount(level, RULE_1, RULE_1) is True
        assert can_approve_amount(level, RULE_1 + 0.01, RULE_1) is False

    @pytest.mark.parametrize("level", [
        PermissionLevel.PROCUREMENT,
        PermissionLevel.REQUESTER,
        PermissionLevel.SITE_MANAGER,
        PermissionLevel.USER_ADMIN,
        99,
        None,
    ])
    def test_other_levels_cannot_approve(self, level):
        assert max_approvable_amount(level, RULE_1) is None
        assert can_approve_amount(level, 1, RULE_1) is False


class FakeReferenceData:
    """Vendor lookups only; raises for ids listed in `broken`"""

    def __init__(self, vendors: dict, broken: tuple = ()):
        self.vendors = vendors
        self.broken = broken
        self.lookups = []

    async def get_vendor(self, vendor_id):
        self.lookups.append(vendor_id)
        if vendor_id in self.broken:
            raise RecordStoreError("store offline")
        return self.vendors.get(vendor_id)


class TestVendorApprovalChecker:

    @pytest.mark.asyncio
    async def test_lowercased_id_is_tried_first(self):
        reference = FakeReferenceData({"acme": {"approved": True}})
        assert await VendorApprovalChecker(reference).is_approved("ACME") is True
        assert reference.lookups == ["acme"]

    @pytest.mark.asyncio
    async def test_falls_back_to_id_as_given(self):
        reference = FakeReferenceData({"Globex": {"IsApproved": True}})
        assert await VendorApprovalChecker(reference).is_approved("Globex") is True
        assert reference.lookups == ["globex", "Globex"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("record", [
        {"approved": False},
        {"approved": "yes"},
        {"approved": True, "active": False},
        {"name": "no flags"},
    ])
    async def test_not_approved_records(self, record):
        reference = FakeReferenceData({"v1": record})
        assert await VendorApprovalChecker(reference).is_approved("v1") is False

    @pytest.mark.asyncio
    async def test_missing_vendor_is_not_approved(self):
        assert await VendorApprovalChecker(FakeReferenceData({})).is_approved("ghost") is False

    @pytest.mark.asyncio
    async def test_store_error_is_not_approved(self):
        reference = FakeReferenceData({"acme": {"approved": True}}, broken=("acme",))
        assert await VendorApprovalChecker(reference).is_approved("acme") is False

    @pytest.mark.asyncio
    async def test_blank_vendor_is_not_approved(self):
        reference = FakeReferenceData({})
        assert await VendorApprovalChecker(reference).is_approved("  ") is False
        assert reference.lookups == []


def test_factory_uses_settings_defaults_and_overrides(reference_data, resolver):
    validator = create_approval_validator(reference_data, resolver)
    assert validator.config.quote_count_required == 3
    assert validator.config.quote_escalation_multiplier == 4.0

    custom = create_approval_validator(reference_data, resolver, quote_count_required=2)
    assert custom.config.quote_count_required == 2
    assert custom.config.quote_escalation_multiplier == 4.0
