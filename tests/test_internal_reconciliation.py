"""Tests for the internal reconciliation router."""
import uuid

import pytest

from issuelink.core.config import settings
from issuelink.core.tenant_lock import tenant_lock
from issuelink.db.models import Job

from factories import INTERNAL_HEADERS, make_account, make_case, make_ticket, seed_records

CLIENT_FIELD = "customfield_12184"


@pytest.fixture
def seeded_org(db, test_org):
    seed_records(
        db,
        test_org.id,
        accounts=[
            make_account("acct-1", "Harbor Storage Co", ["EDGE"]),
            make_account("acct-3", "Sitelink Partners", ["SiteLink"]),
        ],
        cases=[
            make_case("500A00000000000001", "acct-1", "00345678", theme_key="billing_errors"),
            make_case("500A00000000000003", "acct-3", "00567890", theme_key="billing_errors"),
        ],
        tickets=[
            make_ticket("t1", "EDGE-1", summary="Case 00345678 double charged"),
            make_ticket("t4", "EDGE-9", labels=["billing-errors"]),
            make_ticket("t5", "MREQ-5", custom_fields={CLIENT_FIELD: "Harbor Storage Co"}),
        ],
    )
    return test_org


def _url(org_id, path: str) -> str:
    return f"/internal/reconciliation/organizations/{org_id}{path}"


@pytest.mark.asyncio
async def test_requires_secret_header(client, test_org):
    response = await client.post(_url(test_org.id, "/run"))
    assert response.status_code == 422

    response = await client.post(
        _url(test_org.id, "/run"), headers={"X-Internal-Secret": "wrong"}
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_not_configured_without_secret(client, test_org, monkeypatch):
    monkeypatch.setattr(settings, "INTERNAL_SECRET", "")

    response = await client.post(_url(test_org.id, "/run"), headers=INTERNAL_HEADERS)

    assert response.status_code == 501


@pytest.mark.asyncio
async def test_unknown_organization(client, db):
    response = await client.post(_url(uuid.uuid4(), "/run"), headers=INTERNAL_HEADERS)

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_run_returns_report(client, seeded_org):
    response = await client.post(
        _url(seeded_org.id, "/run"), headers=INTERNAL_HEADERS, json={"full_recompute": False}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "completed"
    assert data["tickets_processed"] == 3
    assert data["links_written"] == 2
    assert data["theme_links_written"] == 2
    assert sorted(r["reason"] for r in data["rejected"]) == [
        "domain_conflict",
        "product_line_mismatch",
    ]

    response = await client.get(
        _url(seeded_org.id, "/links"), headers=INTERNAL_HEADERS, params={"account_id": "acct-1"}
    )
    assert response.status_code == 200
    assert [(l["ticket_id"], l["strategy"]) for l in response.json()] == [
        ("t1", "direct_case_id"),
        ("t4", "theme_association"),
    ]


@pytest.mark.asyncio
async def test_run_conflicts_with_running_reconciliation(client, seeded_org):
    with tenant_lock(seeded_org.id):
        response = await client.post(_url(seeded_org.id, "/run"), headers=INTERNAL_HEADERS)
        wipe = await client.post(_url(seeded_org.id, "/wipe"), headers=INTERNAL_HEADERS)

    assert response.status_code == 409
    assert wipe.status_code == 409


@pytest.mark.asyncio
async def test_wipe(client, seeded_org):
    await client.post(_url(seeded_org.id, "/run"), headers=INTERNAL_HEADERS)

    response = await client.post(_url(seeded_org.id, "/wipe"), headers=INTERNAL_HEADERS)

    assert response.status_code == 200
    assert response.json() == {"links_deleted": 2, "theme_links_deleted": 2}


@pytest.mark.asyncio
async def test_rollups(client, seeded_org):
    await client.post(_url(seeded_org.id, "/run"), headers=INTERNAL_HEADERS)

    response = await client.get(
        _url(seeded_org.id, "/accounts/acct-1/rollup"), headers=INTERNAL_HEADERS
    )
    assert response.status_code == 200
    assert response.json() == {
        "resolved_recent": 0,
        "in_progress": 0,
        "open": 2,
        "total_issues": 2,
        "fix_rate_window": 0,
    }

    response = await client.get(
        _url(seeded_org.id, "/accounts/acct-unknown/rollup"), headers=INTERNAL_HEADERS
    )
    assert response.json()["total_issues"] == 0

    response = await client.get(
        _url(seeded_org.id, "/themes/billing_errors/rollup"), headers=INTERNAL_HEADERS
    )
    assert response.json()["open"] == 2


@pytest.mark.asyncio
async def test_ticket_diagnosis(client, seeded_org):
    response = await client.get(
        _url(seeded_org.id, "/tickets/t4/diagnosis"), headers=INTERNAL_HEADERS
    )

    assert response.status_code == 200
    data = response.json()
    assert data["ticket_domain"] == "storage"
    assert data["strategy"] == "theme_association"
    assert [c["account_id"] for c in data["accepted"]] == ["acct-1"]
    assert data["rejected"][0]["reason"] == "product_line_mismatch"
    assert data["rejected"][0]["account_domain"] == "storage"

    response = await client.get(
        _url(seeded_org.id, "/tickets/nope/diagnosis"), headers=INTERNAL_HEADERS
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_enqueue_reuses_pending_job(client, seeded_org, db):
    first = await client.post(_url(seeded_org.id, "/enqueue"), headers=INTERNAL_HEADERS)
    second = await client.post(
        _url(seeded_org.id, "/enqueue"), headers=INTERNAL_HEADERS, json={"full_recompute": True}
    )

    assert first.status_code == 200
    assert first.json()["status"] == "pending"
    assert first.json()["full_recompute"] is False
    assert second.json()["job_id"] == first.json()["job_id"]
    assert second.json()["full_recompute"] is True
    assert db.query(Job).count() == 1


@pytest.mark.asyncio
async def test_list_jobs_filters_by_status(client, seeded_org):
    queued = await client.post(_url(seeded_org.id, "/enqueue"), headers=INTERNAL_HEADERS)

    pending = await client.get(
        _url(seeded_org.id, "/jobs"), headers=INTERNAL_HEADERS, params={"status": "pending"}
    )
    completed = await client.get(
        _url(seeded_org.id, "/jobs"), headers=INTERNAL_HEADERS, params={"status": "completed"}
    )

    assert pending.status_code == 200
    [job] = pending.json()
    assert job["id"] == queued.json()["job_id"]
    assert job["job_type"] == "reconcile_links"
    assert job["attempts"] == 0
    assert completed.json() == []


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
