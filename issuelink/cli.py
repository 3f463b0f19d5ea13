"""CLI tools for reconciliation runs and link diagnostics."""

import json
import logging
from uuid import UUID

import click

from issuelink.core.tenant_lock import ReconciliationInProgressError
from issuelink.db.models import Organization


def _session():
    from issuelink.db.session import SessionLocal

    return SessionLocal()


def _resolve_org(db, org: str) -> Organization | None:
    """Find an organization by UUID or slug."""
    try:
        found = db.get(Organization, UUID(org))
        if found:
            return found
    except ValueError:
        pass
    return db.query(Organization).filter(Organization.slug == org.lower().strip()).first()


def _echo_json(payload) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


def _window_days(window_days: int | None) -> int:
    if window_days is not None:
        return window_days
    from issuelink.core.config import settings

    return settings.ROLLUP_WINDOW_DAYS


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool):
    """issuelink CLI tools."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@cli.command()
@click.option("--org", "org_ref", required=True, help="Organization id or slug")
@click.option("--full-recompute", is_flag=True, help="Wipe the tenant's links before recomputing")
@click.option("--json", "as_json", is_flag=True, help="Print the full run report as JSON")
def reconcile(org_ref: str, full_recompute: bool, as_json: bool):
    """
    Run reconciliation for one organization.

    Example:
        python -m issuelink.cli reconcile --org acme --full-recompute
    """
    from issuelink.schemas.reconciliation import RunReportRead
    from issuelink.services import reconciliation_service
    from issuelink.services.sql_repository import SqlAlchemyRepository

    db = _session()
    try:
        org = _resolve_org(db, org_ref)
        if not org:
            click.echo(f"❌ Organization not found: {org_ref}")
            raise SystemExit(1)

        try:
            report = reconciliation_service.reconcile_tenant(
                SqlAlchemyRepository(db), org.id, full_recompute=full_recompute
            )
        except ReconciliationInProgressError as e:
            click.echo(f"❌ {e}")
            raise SystemExit(2)

        if as_json:
            click.echo(RunReportRead.model_validate(report).model_dump_json(indent=2))
        else:
            marker = "✓" if not report.is_partial else "⚠"
            click.echo(f"{marker} Reconciliation {report.status.value} for {org.name}")
            click.echo(f"  Tickets: {report.tickets_processed}/{report.tickets_seen} processed")
            click.echo(f"  Links written: {report.links_written}")
            click.echo(f"  Theme links written: {report.theme_links_written}")
            click.echo(f"  Rejected candidates: {len(report.rejected)}")
            click.echo(f"  Skipped records: {len(report.skipped)}")
            click.echo(
                f"  Pruned: {report.links_pruned} links, {report.theme_links_pruned} theme links"
            )
            for batch in report.failed_batches:
                click.echo(
                    f"  Failed {batch.kind} batch {batch.index} ({batch.size} rows): {batch.error}"
                )
        if report.is_partial:
            raise SystemExit(3)
    finally:
        db.close()


@cli.command("wipe-links")
@click.option("--org", "org_ref", required=True, help="Organization id or slug")
@click.confirmation_option(prompt="Delete every link and theme link of this organization?")
def wipe_links(org_ref: str):
    """Delete all derived links of an organization."""
    from issuelink.services import reconciliation_service
    from issuelink.services.sql_repository import SqlAlchemyRepository

    db = _session()
    try:
        org = _resolve_org(db, org_ref)
        if not org:
            click.echo(f"❌ Organization not found: {org_ref}")
            raise SystemExit(1)
        try:
            links, theme_links = reconciliation_service.wipe_tenant_links(
                SqlAlchemyRepository(db), org.id
            )
        except ReconciliationInProgressError as e:
            click.echo(f"❌ {e}")
            raise SystemExit(2)
        click.echo(f"✓ Deleted {links} links and {theme_links} theme links for {org.name}")
    finally:
        db.close()


@cli.command()
@click.option("--org", "org_ref", required=True, help="Organization id or slug")
@click.option("--account", "account_id", default=None, help="Filter by account id")
@click.option("--ticket", "ticket_id", default=None, help="Filter by ticket id")
def links(org_ref: str, account_id: str | None, ticket_id: str | None):
    """List persisted links with strategy and confidence."""
    from issuelink.services import reconciliation_service
    from issuelink.services.sql_repository import SqlAlchemyRepository

    db = _session()
    try:
        org = _resolve_org(db, org_ref)
        if not org:
            click.echo(f"❌ Organization not found: {org_ref}")
            raise SystemExit(1)
        rows = reconciliation_service.list_links(
            SqlAlchemyRepository(db), org.id, account_id=account_id, ticket_id=ticket_id
        )
        if not rows:
            click.echo("No links found")
            return
        for link in rows:
            click.echo(
                f"{link.ticket_id}\t{link.account_id}\t{link.strategy}\t{link.confidence:.2f}"
            )
    finally:
        db.close()


@cli.command("explain-ticket")
@click.option("--org", "org_ref", required=True, help="Organization id or slug")
@click.argument("ticket_id")
def explain_ticket(org_ref: str, ticket_id: str):
    """Show identifiers, candidates and rejections for one ticket (no writes)."""
    from issuelink.schemas.reconciliation import TicketDiagnosisRead
    from issuelink.services import reconciliation_service
    from issuelink.services.sql_repository import SqlAlchemyRepository

    db = _session()
    try:
        org = _resolve_org(db, org_ref)
        if not org:
            click.echo(f"❌ Organization not found: {org_ref}")
            raise SystemExit(1)
        diagnosis = reconciliation_service.diagnose_ticket(
            SqlAlchemyRepository(db), org.id, ticket_id
        )
        if diagnosis is None:
            click.echo(f"❌ Ticket not found: {ticket_id}")
            raise SystemExit(1)
        click.echo(TicketDiagnosisRead.from_diagnosis(diagnosis).model_dump_json(indent=2))
    finally:
        db.close()


@cli.command("account-rollup")
@click.option("--org", "org_ref", required=True, help="Organization id or slug")
@click.option(
    "--window-days", type=int, default=None, help="Trailing window in days (default from settings)"
)
@click.argument("account_id")
def account_rollup(org_ref: str, window_days: int | None, account_id: str):
    """Print the status rollup for one account."""
    from dataclasses import asdict

    from issuelink.services import rollup_service
    from issuelink.services.sql_repository import SqlAlchemyRepository

    db = _session()
    try:
        org = _resolve_org(db, org_ref)
        if not org:
            click.echo(f"❌ Organization not found: {org_ref}")
            raise SystemExit(1)
        rollup = rollup_service.get_account_rollup(
            SqlAlchemyRepository(db), org.id, account_id, window_days=_window_days(window_days)
        )
        _echo_json(asdict(rollup))
    finally:
        db.close()


@cli.command("theme-rollup")
@click.option("--org", "org_ref", required=True, help="Organization id or slug")
@click.option(
    "--window-days", type=int, default=None, help="Trailing window in days (default from settings)"
)
@click.argument("theme_key")
def theme_rollup(org_ref: str, window_days: int | None, theme_key: str):
    """Print the status rollup for one theme."""
    from dataclasses import asdict

    from issuelink.services import rollup_service
    from issuelink.services.sql_repository import SqlAlchemyRepository

    db = _session()
    try:
        org = _resolve_org(db, org_ref)
        if not org:
            click.echo(f"❌ Organization not found: {org_ref}")
            raise SystemExit(1)
        rollup = rollup_service.get_theme_rollup(
            SqlAlchemyRepository(db), org.id, theme_key, window_days=_window_days(window_days)
        )
        _echo_json(asdict(rollup))
    finally:
        db.close()


@cli.command("enqueue-reconcile")
@click.option("--org", "org_ref", required=True, help="Organization id or slug")
@click.option("--full-recompute", is_flag=True, help="Wipe the tenant's links before recomputing")
def enqueue_reconcile(org_ref: str, full_recompute: bool):
    """Queue a reconciliation job for the worker."""
    from issuelink.services import job_service

    db = _session()
    try:
        org = _resolve_org(db, org_ref)
        if not org:
            click.echo(f"❌ Organization not found: {org_ref}")
            raise SystemExit(1)
        job = job_service.schedule_reconciliation(db, org.id, full_recompute=full_recompute)
        click.echo(f"✓ Queued reconciliation job {job.id} for {org.name}")
    finally:
        db.close()


@cli.command()
def migrate():
    """Upgrade the database schema to the latest revision."""
    from issuelink.core.migrations import MigrationError, ensure_migrations
    from issuelink.db.session import engine

    try:
        status = ensure_migrations(engine, auto_migrate=True)
    except MigrationError as e:
        click.echo(f"❌ {e}")
        raise SystemExit(1)
    click.echo(f"✓ Database at {', '.join(status.current_heads) or '<empty>'}")


if __name__ == "__main__":
    cli()
