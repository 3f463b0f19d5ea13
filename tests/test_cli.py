import json
from datetime import datetime, timedelta, timezone

import pytest
from click.testing import CliRunner

from issuelink import cli as cli_module
from issuelink.core.config import settings
from issuelink.core.tenant_lock import tenant_lock
from issuelink.db.enums import RunStatus
from issuelink.db.models import AccountTicketLink, Job
from issuelink.services import reconciliation_service
from issuelink.services.reconciliation_service import RunReport

from factories import make_account, make_ticket, seed_records


@pytest.fixture
def cli_db(db, test_org, monkeypatch):
    """Route CLI sessions to the test session and keep it open."""
    seed_records(
        db,
        test_org.id,
        accounts=[make_account("acct-2", "Bayview Marina", ["Dockwa"])],
        tickets=[
            make_ticket("t3", "MREQ-7", custom_fields={"customfield_12184": "Bayview Marina"})
        ],
    )
    monkeypatch.setattr(cli_module, "_session", lambda: db)
    monkeypatch.setattr(db, "close", lambda: None)
    return db


@pytest.fixture
def org_ref(test_org) -> str:
    return test_org.slug


def _invoke(*args):
    return CliRunner().invoke(cli_module.cli, list(args))


def test_reconcile_by_slug(cli_db, org_ref):
    result = _invoke("reconcile", "--org", org_ref)

    assert result.exit_code == 0, result.output
    assert "✓ Reconciliation completed" in result.output
    assert "Links written: 1" in result.output
    assert cli_db.query(AccountTicketLink).count() == 1


def test_reconcile_by_id_as_json(cli_db, test_org):
    org_id = str(test_org.id)

    result = _invoke("reconcile", "--org", org_id, "--json")

    assert result.exit_code == 0, result.output
    report = json.loads(result.output)
    assert report["org_id"] == org_id
    assert report["links_written"] == 1


def test_reconcile_unknown_org(cli_db):
    result = _invoke("reconcile", "--org", "missing-org")

    assert result.exit_code == 1
    assert "Organization not found" in result.output


def test_reconcile_refused_while_running(cli_db, test_org, monkeypatch):
    monkeypatch.setattr(settings, "RECONCILE_LOCK_TIMEOUT_SECONDS", 0)
    org_id = test_org.id

    with tenant_lock(org_id):
        result = _invoke("reconcile", "--org", str(org_id))

    assert result.exit_code == 2
    assert "already running" in result.output


def test_partial_run_exits_nonzero(cli_db, test_org, monkeypatch):
    def partial_run(repository, org_id, **kwargs):
        return RunReport(org_id=org_id, run_id="r1", status=RunStatus.PARTIAL)

    monkeypatch.setattr(reconciliation_service, "reconcile_tenant", partial_run)

    result = _invoke("reconcile", "--org", str(test_org.id))

    assert result.exit_code == 3
    assert "Reconciliation partial" in result.output


def test_links_and_wipe(cli_db, org_ref):
    _invoke("reconcile", "--org", org_ref)

    result = _invoke("links", "--org", org_ref, "--account", "acct-2")
    assert result.exit_code == 0
    assert "t3\tacct-2\tclient_field\t0.95" in result.output

    result = _invoke("wipe-links", "--org", org_ref, "--yes")
    assert result.exit_code == 0
    assert "Deleted 1 links and 0 theme links" in result.output

    result = _invoke("links", "--org", org_ref)
    assert "No links found" in result.output


def test_explain_ticket(cli_db, org_ref):
    result = _invoke("explain-ticket", "--org", org_ref, "t3")

    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert data["strategy"] == "client_field"
    assert data["ticket_domain"] == "marine"

    result = _invoke("explain-ticket", "--org", org_ref, "nope")
    assert result.exit_code == 1


def test_account_rollup(cli_db, org_ref):
    _invoke("reconcile", "--org", org_ref)

    result = _invoke("account-rollup", "--org", org_ref, "acct-2")

    assert result.exit_code == 0
    assert json.loads(result.output) == {
        "resolved_recent": 0,
        "in_progress": 0,
        "open": 1,
        "total_issues": 1,
        "fix_rate_window": 0,
    }


def test_account_rollup_window_defaults_to_settings(cli_db, test_org, org_ref, monkeypatch):
    seed_records(
        cli_db,
        test_org.id,
        tickets=[
            make_ticket(
                "t5",
                "MREQ-9",
                custom_fields={"customfield_12184": "Bayview Marina"},
                status="Done",
                resolution_date=datetime.now(timezone.utc) - timedelta(days=10),
            )
        ],
    )
    _invoke("reconcile", "--org", org_ref)
    monkeypatch.setattr(settings, "ROLLUP_WINDOW_DAYS", 5)

    narrow = json.loads(_invoke("account-rollup", "--org", org_ref, "acct-2").output)
    wide = json.loads(
        _invoke("account-rollup", "--org", org_ref, "--window-days", "14", "acct-2").output
    )

    assert (narrow["resolved_recent"], narrow["total_issues"]) == (0, 2)
    assert (wide["resolved_recent"], wide["total_issues"]) == (1, 2)


def test_theme_rollup_unknown_theme(cli_db, org_ref):
    result = _invoke("theme-rollup", "--org", org_ref, "--window-days", "7", "nothing")

    assert result.exit_code == 0
    assert json.loads(result.output)["total_issues"] == 0


def test_enqueue_reconcile(cli_db, org_ref):
    result = _invoke("enqueue-reconcile", "--org", org_ref, "--full-recompute")

    assert result.exit_code == 0
    assert "Queued reconciliation job" in result.output
    job = cli_db.query(Job).one()
    assert job.payload["full_recompute"] is True
