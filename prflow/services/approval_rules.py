"""
Business rules for purchase request approval.

Centralizes the quote-sufficiency, approver-eligibility, vendor and
adjudication checks so they can be tested, versioned, and reused by the
API and any other client that moves a PR towards approval.
"""

import math
from enum import Enum
from typing import Any, Dict, Optional

from loguru import logger
from pydantic import BaseModel

from ..models.purchase_request import PRStatus, PurchaseRequest
from ..models.reference import PermissionLevel, Rule, User, permission_name
from .currency import ExchangeRateResolver, get_rule_currency
from .reference_data import ReferenceData
from .storage import RecordStoreError


class ApprovalRulesConfig(BaseModel):
    """Configuration for approval rules (loaded from environment)"""
    quote_count_required: int = 3
    quote_escalation_multiplier: float = 4.0


class QuoteTier(str, Enum):
    BELOW_RULE_1 = "below_rule_1"
    APPROVED_VENDOR = "approved_vendor"
    UNAPPROVED_VENDOR = "unapproved_vendor"
    ESCALATED = "escalated"
    HIGH_VALUE = "high_value"


class QuoteRequirement(BaseModel):
    minimum_count: int
    attachments_required: bool
    tier: QuoteTier


def required_quotes(
    amount: float,
    rule1_threshold: float,
    high_value_threshold: float,
    vendor_is_approved: bool,
    config: ApprovalRulesConfig = None,
) -> QuoteRequirement:
    """
    How many quotes a PR needs, for an amount already in the rule currency.

    - below Rule 1: none
    - at/above the high-value threshold: the full count, vendor status ignored
    - at/above multiplier x Rule 1: the full count, vendor status ignored
    - otherwise: 1 for an approved vendor, the full count for anyone else
    """
    config = config or ApprovalRulesConfig()
    full = config.quote_count_required

    if amount < rule1_threshold:
        return QuoteRequirement(minimum_count=0, attachments_required=False, tier=QuoteTier.BELOW_RULE_1)
    if amount >= high_value_threshold:
        return QuoteRequirement(minimum_count=full, attachments_required=True, tier=QuoteTier.HIGH_VALUE)
    if amount >= config.quote_escalation_multiplier * rule1_threshold:
        return QuoteRequirement(minimum_count=full, attachments_required=True, tier=QuoteTier.ESCALATED)
    if vendor_is_approved:
        return QuoteRequirement(minimum_count=1, attachments_required=True, tier=QuoteTier.APPROVED_VENDOR)
    return QuoteRequirement(minimum_count=full, attachments_required=True, tier=QuoteTier.UNAPPROVED_VENDOR)


def is_quote_valid(converted_amount: float, attachment_count: int, rule1_threshold: float) -> bool:
    """A quote counts if it is below Rule 1 or carries at least one attachment"""
    return converted_amount < rule1_threshold or attachment_count > 0


class ApprovalLimit(str, Enum):
    UNLIMITED = "unlimited"
    UP_TO_RULE_1 = "up_to_rule_1"
    NONE = "none"


# Levels missing from this table have no approval authority
APPROVAL_LIMITS: Dict[PermissionLevel, ApprovalLimit] = {
    PermissionLevel.ADMIN: ApprovalLimit.UNLIMITED,
    PermissionLevel.APPROVER: ApprovalLimit.UNLIMITED,
    PermissionLevel.FINANCE_ADMIN: ApprovalLimit.UP_TO_RULE_1,
    PermissionLevel.FINANCE_APPROVER: ApprovalLimit.UP_TO_RULE_1,
}


def approval_limit(level: int | None) -> ApprovalLimit:
    try:
        return APPROVAL_LIMITS.get(PermissionLevel(level), ApprovalLimit.NONE)
    except ValueError:
        return ApprovalLimit.NONE


def max_approvable_amount(level: int | None, rule1_threshold: float) -> Optional[float]:
    """
    Largest amount (in the rule currency) a permission level may approve.

    Returns math.inf for unlimited levels and None for levels that may not
    approve anything.
    """
    limit = approval_limit(level)
    if limit is ApprovalLimit.UNLIMITED:
        return math.inf
    if limit is ApprovalLimit.UP_TO_RULE_1:
        return rule1_threshold
    return None


def can_approve_amount(level: int | None, amount: float, rule1_threshold: float) -> bool:
    ceiling = max_approvable_amount(level, rule1_threshold)
    return ceiling is not None and amount <= ceiling


def find_rule(rules: list[Rule], number: str) -> Optional[Rule]:
    return next((r for r in rules if r.active and r.number == number), None)


def format_amount(value: float) -> str:
    if float(value).is_integer():
        return f"{value:.0f}"
    return f"{value:.2f}"


def vendor_record_is_approved(record: dict) -> bool:
    fields = {str(k).lower(): v for k, v in record.items()}
    approved = fields.get("approved") is True or fields.get("isapproved") is True
    return approved and fields.get("active") is not False


class VendorApprovalChecker:
    """Looks up a vendor record and reports whether it is approved, defaulting to no"""

    def __init__(self, reference_data: ReferenceData):
        self.reference_data = reference_data

    async def is_approved(self, vendor_id: str | None) -> bool:
        if not vendor_id or not vendor_id.strip():
            return False

        candidates = dict.fromkeys([vendor_id.strip().lower(), vendor_id.strip()])
        for candidate in candidates:
            try:
                record = await self.reference_data.get_vendor(candidate)
            except RecordStoreError as e:
                logger.warning("Vendor lookup failed, treating as not approved", vendor_id=vendor_id, error=str(e))
                return False
            if record is not None:
                return vendor_record_is_approved(record)

        logger.warning("Vendor not found, treating as not approved", vendor_id=vendor_id)
        return False


class ValidationResult(BaseModel):
    """Result of a PR approval validation with explanation"""
    is_valid: bool
    errors: list[str]
    checks: Dict[str, bool]
    metadata: Dict[str, Any] = {}


class PRApprovalValidator:
    """
    Runs every approval check for a PR in one pass.

    Business-rule violations are collected as plain error strings; nothing
    here raises for them. Missing rules fail closed with a configuration
    error rather than letting the PR through unchecked.
    """

    def __init__(
        self,
        reference_data: ReferenceData,
        resolver: ExchangeRateResolver,
        config: ApprovalRulesConfig = None,
    ):
        self.reference_data = reference_data
        self.resolver = resolver
        self.config = config or ApprovalRulesConfig()
        self.vendor_checker = VendorApprovalChecker(reference_data)

    async def validate(
        self,
        pr: PurchaseRequest,
        rules: list[Rule],
        acting_user: User,
        target_status: PRStatus = PRStatus.PENDING_APPROVAL,
        notes: str | None = None,
    ) -> ValidationResult:
        """
        Validate whether a PR may move to target_status.

        Args:
            pr: Purchase request being moved
            rules: The organization's rule records
            acting_user: User performing the status change
            target_status: PENDING_APPROVAL or APPROVED
            notes: Adjudication notes supplied with the action (falls back to pr.notes)

        Returns:
            ValidationResult with is_valid flag, error list, and check details
        """
        errors: list[str] = []
        checks: Dict[str, bool] = {}
        metadata: Dict[str, Any] = {}

        # Check 1: Acting user may perform this transition
        permission_error = self._permission_error(pr, acting_user, target_status)
        checks["permission"] = permission_error is None
        if permission_error:
            errors.append(permission_error)

        # Check 2: Rules configured (fail closed)
        rule1 = find_rule(rules, "1")
        high_rule = find_rule(rules, "2") or find_rule(rules, "3")
        config_error = self._configuration_error(rule1, high_rule)
        checks["rules_configured"] = config_error is None
        if config_error:
            errors.append(config_error)
            logger.warning(
                "Approval rules missing for organization",
                pr_id=pr.id,
                organization_id=pr.organization_id,
                rules_provided=len(rules),
            )
            return self._finish(pr, errors, checks, metadata)

        currency = get_rule_currency(rule1)
        rule1_threshold = rule1.threshold
        high_threshold = await self._threshold_in(high_rule, currency)

        # Check 3: Quote sufficiency, everything compared in the rule currency
        converted = [
            (quote, await self.resolver.convert_amount(quote.amount, quote.currency or pr.currency, currency))
            for quote in pr.quotes
        ]
        if converted:
            lowest = min(converted, key=lambda item: item[1].amount)[1]
        else:
            lowest = await self.resolver.convert_amount(pr.estimated_amount, pr.currency, currency)
        amount = lowest.amount

        metadata.update(
            normalized_amount=amount,
            rule_currency=currency,
            rate_source=lowest.source.value,
            rate_degraded=lowest.degraded or any(c.degraded for _, c in converted),
            rule1_threshold=rule1_threshold,
            high_value_threshold=high_threshold,
        )

        vendor_approved = await self.vendor_checker.is_approved(pr.preferred_vendor) if pr.preferred_vendor else False
        requirement = required_quotes(amount, rule1_threshold, high_threshold, vendor_approved, self.config)
        valid_count = sum(
            1 for quote, conversion in converted
            if is_quote_valid(conversion.amount, len(quote.attachments), rule1_threshold)
        )
        quotes_ok = valid_count >= requirement.minimum_count
        checks["quotes_sufficient"] = quotes_ok
        checks["vendor_approved"] = vendor_approved
        metadata.update(
            quote_requirement=requirement.model_dump(mode="json"),
            valid_quote_count=valid_count,
        )
        if not quotes_ok:
            errors.append(self._quote_error(requirement, rule1_threshold, high_threshold, currency))
            # Only worth mentioning when an approved vendor would have lowered the bar
            if pr.preferred_vendor and not vendor_approved:
                errors.append(
                    f"Preferred vendor '{pr.preferred_vendor}' is not an approved vendor, "
                    f"so the reduced quote requirement does not apply."
                )

        # Check 4: Approver eligibility for the normalized amount
        approver_errors = await self._approver_errors(pr, amount, rule1_threshold, currency)
        checks["approvers_eligible"] = not approver_errors
        errors.extend(approver_errors)

        # Check 5: Dual approval for high-value PRs
        dual_ok = amount < high_threshold or len(pr.approvers) >= 2
        checks["dual_approvers_assigned"] = dual_ok
        if not dual_ok:
            errors.append(
                f"At least 2 unique approvers are required for amounts at or above "
                f"{format_amount(high_threshold)} {currency}. "
                f"Please assign a second approver before pushing to approval."
            )

        # Check 6: Adjudication notes when approving high-value PRs
        notes_ok = True
        if target_status == PRStatus.APPROVED and amount > high_threshold:
            adjudication = notes if notes is not None else pr.notes
            notes_ok = bool(adjudication and adjudication.strip())
            if not notes_ok:
                errors.append(
                    f"Adjudication notes are required to approve amounts above "
                    f"{format_amount(high_threshold)} {currency}."
                )
        checks["adjudication_notes"] = notes_ok

        return self._finish(pr, errors, checks, metadata)

    def _finish(self, pr, errors, checks, metadata) -> ValidationResult:
        is_valid = not errors
        logger.info(
            "PR approval validation",
            pr_id=pr.id,
            is_valid=is_valid,
            error_count=len(errors),
            checks=checks,
            rate_source=metadata.get("rate_source"),
        )
        return ValidationResult(is_valid=is_valid, errors=errors, checks=checks, metadata=metadata)

    @staticmethod
    def _permission_error(pr: PurchaseRequest, user: User, target_status: PRStatus) -> Optional[str]:
        level = user.permission_level
        if target_status == PRStatus.PENDING_APPROVAL:
            if level not in (PermissionLevel.ADMIN, PermissionLevel.PROCUREMENT):
                return "Only system administrators and procurement users can push PRs to approver"
        elif target_status == PRStatus.APPROVED:
            assigned = user.id in pr.approvers
            if not assigned and level not in (PermissionLevel.ADMIN, PermissionLevel.PROCUREMENT):
                return "You do not have permission to approve this purchase request"
        return None

    @staticmethod
    def _configuration_error(rule1: Optional[Rule], high_rule: Optional[Rule]) -> Optional[str]:
        if rule1 is None and high_rule is None:
            return "Business rules are not configured for this organization. Please contact system administrator."
        if rule1 is None:
            return "Rule 1 (low-value threshold) is not configured for this organization. Please contact system administrator."
        if high_rule is None:
            return "Rule 2 (high-value threshold) is not configured for this organization. Please contact system administrator."
        return None

    async def _threshold_in(self, rule: Rule, currency: str) -> float:
        conversion = await self.resolver.convert_amount(rule.threshold, get_rule_currency(rule), currency)
        if conversion.degraded:
            logger.warning("High-value threshold not converted", rule_id=rule.id, currency=currency)
        return conversion.amount

    def _quote_error(self, requirement: QuoteRequirement, rule1: float, high: float, currency: str) -> str:
        count = requirement.minimum_count
        if requirement.tier is QuoteTier.HIGH_VALUE:
            return (
                f"At least {count} quotes with attachments are required for amounts at or above "
                f"{format_amount(high)} {currency}, regardless of vendor approval."
            )
        if requirement.tier is QuoteTier.ESCALATED:
            escalation = self.config.quote_escalation_multiplier * rule1
            return (
                f"At least {count} quotes with attachments are required for amounts at or above "
                f"{format_amount(escalation)} {currency}, even when using an approved vendor."
            )
        if requirement.tier is QuoteTier.APPROVED_VENDOR:
            return (
                f"At least one quote with attachment is required for amounts above "
                f"{format_amount(rule1)} {currency} when using an approved vendor."
            )
        return (
            f"At least {count} quotes with attachments are required for amounts above "
            f"{format_amount(rule1)} {currency}. (Use an approved vendor to reduce to 1 quote.)"
        )

    async def _approver_errors(self, pr: PurchaseRequest, amount: float, rule1: float, currency: str) -> list[str]:
        if not pr.approvers:
            return ["No approver is assigned to this purchase request"]

        errors = []
        for approver_id in pr.approvers:
            try:
                user = await self.reference_data.get_user(approver_id)
            except RecordStoreError as e:
                logger.warning("Approver lookup failed", approver_id=approver_id, error=str(e))
                user = None
            if user is None:
                errors.append(f"Assigned approver '{approver_id}' could not be found")
                continue

            if can_approve_amount(user.permission_level, amount, rule1):
                continue

            level_name = permission_name(user.permission_level)
            if approval_limit(user.permission_level) is ApprovalLimit.UP_TO_RULE_1:
                errors.append(
                    f"{user.full_name} ({level_name}) can only approve amounts up to "
                    f"{format_amount(rule1)} {currency}. Amounts above that require a Level 1 "
                    f"(Administrator) or Level 2 (Senior Approver) approver."
                )
            else:
                errors.append(f"{user.full_name} ({level_name}) does not have approval authority.")
        return errors


def create_approval_validator(
    reference_data: ReferenceData,
    resolver: ExchangeRateResolver,
    quote_count_required: int = None,
    quote_escalation_multiplier: float = None,
) -> PRApprovalValidator:
    """
    Factory function to create the approval validator with optional overrides.

    Uses environment variables as defaults, can be overridden per call.
    """
    from ..core.config import settings

    config = ApprovalRulesConfig(
        quote_count_required=quote_count_required if quote_count_required is not None else settings.quote_count_required,
        quote_escalation_multiplier=(
            quote_escalation_multiplier if quote_escalation_multiplier is not None
            else settings.quote_escalation_multiplier
        ),
    )
    return PRApprovalValidator(reference_data, resolver, config)


__all__ = [
    "ApprovalLimit",
    "ApprovalRulesConfig",
    "PermissionLevel",
    "PRApprovalValidator",
    "QuoteRequirement",
    "QuoteTier",
    "ValidationResult",
    "VendorApprovalChecker",
    "can_approve_amount",
    "create_approval_validator",
    "is_quote_valid",
    "max_approvable_amount",
    "required_quotes",
]
