import os
import tempfile
from datetime import timedelta
from unittest.mock import patch

import pytest
import pytest_asyncio

from prflow import reminders
from prflow.models.purchase_request import PRStatus
from prflow.services.approval_workflow import record_approval
from prflow.services.notifications.events import utcnow
from prflow.services.reference_data import PR_NOTIFICATIONS, USERS, ReferenceData
from prflow.services.storage import SQLiteRecordStore


@pytest.fixture
def db_path():
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    yield path
    if os.path.exists(path):
        os.remove(path)


@pytest_asyncio.fixture
async def conflicted_store(db_path, make_pr, quote):
    store = SQLiteRecordStore(db_path)
    await store.set(USERS, "senior", {"email": "senior@org1.example", "permissionLevel": 2})
    await store.set(USERS, "senior2", {"email": "senior2@org1.example", "permissionLevel": 2})

    pr = make_pr(
        status=PRStatus.PENDING_APPROVAL,
        approver2="senior2",
        requires_dual_approval=True,
        quotes=[quote("q1", 12000), quote("q2", 12500)],
    )
    opened = utcnow() - timedelta(days=3)
    record_approval(pr, "senior", selected_quote_id="q1", now=opened)
    record_approval(pr, "senior2", selected_quote_id="q2", now=opened)
    await ReferenceData(store).save_purchase_request(pr)
    return store


@pytest.mark.asyncio
async def test_dry_run_lists_without_sending(conflicted_store, db_path, capsys):
    failures = await reminders.run(db_path, dry_run=True)

    out = capsys.readouterr().out
    assert failures == 0
    assert "Conflicted PRs: 1" in out
    assert "ORG1-202603-001: q1 vs q2" in out
    assert await conflicted_store.query(PR_NOTIFICATIONS) == []


@pytest.mark.asyncio
async def test_sends_once_per_day(conflicted_store, db_path, capsys):
    assert await reminders.run(db_path, dry_run=False) == 0
    assert await reminders.run(db_path, dry_run=False) == 0

    out = capsys.readouterr().out
    assert "SENT    PR-1" in out
    assert "SKIPPED PR-1: already reminded today" in out

    records = await conflicted_store.query(PR_NOTIFICATIONS)
    assert len(records) == 1
    assert "Reminder (3 days)" in records[0]["subject"]


def test_cli_refuses_to_run_without_a_store(capsys):
    with patch("prflow.core.config.settings.record_store_path", None), \
            patch("sys.argv", ["prflow-reminders", "--dry-run"]):
        with pytest.raises(SystemExit) as exc:
            reminders.main()

    assert exc.value.code == 2
    assert "--store is required" in capsys.readouterr().err


def test_cli_dry_run_with_store(conflicted_store, db_path, capsys):
    with patch("sys.argv", ["prflow-reminders", "--store", db_path, "--dry-run"]):
        with pytest.raises(SystemExit) as exc:
            reminders.main()

    assert exc.value.code == 0
    assert "Conflicted PRs: 1" in capsys.readouterr().out
