import pytest

from issuelink.db.enums import JobStatus, JobType
from issuelink.db.models import AccountTicketLink, Job
from issuelink.services import job_service

from factories import make_account, make_ticket, seed_records


def test_job_registry_resolves_reconcile_handler():
    from issuelink.jobs.registry import resolve_job_handler

    handler = resolve_job_handler(JobType.RECONCILE_LINKS.value)
    assert callable(handler)


def test_job_registry_unknown_raises():
    from issuelink.jobs.registry import resolve_job_handler

    with pytest.raises(ValueError):
        resolve_job_handler("nope")


@pytest.mark.asyncio
async def test_process_job_uses_registry(monkeypatch):
    from issuelink import worker

    calls: dict[str, str] = {}

    async def stub_handler(_db, job):
        calls["job_type"] = job.job_type

    def stub_resolver(job_type: str):
        calls["resolved"] = job_type
        return stub_handler

    monkeypatch.setattr(worker, "resolve_job_handler", stub_resolver)

    job = type(
        "Job",
        (),
        {
            "id": "job-id",
            "job_type": JobType.RECONCILE_LINKS.value,
            "attempts": 0,
            "payload": {},
            "organization_id": None,
        },
    )()

    await worker.process_job(None, job)

    assert calls["resolved"] == JobType.RECONCILE_LINKS.value
    assert calls["job_type"] == JobType.RECONCILE_LINKS.value


@pytest.mark.asyncio
async def test_worker_runs_reconcile_job(db, test_org):
    from issuelink import worker

    seed_records(
        db,
        test_org.id,
        accounts=[make_account("acct-2", "Bayview Marina", ["Dockwa"])],
        tickets=[
            make_ticket("t3", "MREQ-7", custom_fields={"customfield_12184": "Bayview Marina"})
        ],
    )
    job = job_service.schedule_reconciliation(db, test_org.id)

    processed = await worker.run_pending_jobs(db)

    assert processed == 1
    db.refresh(job)
    assert job.status == JobStatus.COMPLETED.value
    assert job.attempts == 1
    link = db.query(AccountTicketLink).one()
    assert (link.account_id, link.ticket_id, link.strategy) == ("acct-2", "t3", "client_field")


@pytest.mark.asyncio
async def test_worker_requeues_failed_job(db, test_org):
    from issuelink import worker

    job = job_service.schedule_job(db, test_org.id, JobType.RECONCILE_LINKS, {})
    job.job_type = "unknown_type"
    db.commit()

    await worker.run_pending_jobs(db)

    db.refresh(job)
    assert job.status == JobStatus.PENDING.value
    assert job.attempts == 1
    assert "Unknown job type" in job.last_error
    assert db.query(Job).count() == 1


@pytest.mark.asyncio
async def test_reconcile_handler_rejects_foreign_org(db, test_org):
    import uuid

    from issuelink.jobs.handlers.reconciliation import process_reconcile_links

    job = job_service.schedule_job(
        db,
        test_org.id,
        JobType.RECONCILE_LINKS,
        {"organization_id": str(uuid.uuid4())},
    )

    with pytest.raises(ValueError):
        await process_reconcile_links(db, job)
