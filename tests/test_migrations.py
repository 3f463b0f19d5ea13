from sqlalchemy import create_engine, inspect

from issuelink.core.migrations import ensure_migrations, get_head_revisions, get_migration_status


def test_single_head_revision():
    assert get_head_revisions() == ("0001_baseline",)


def test_ensure_migrations_upgrades_empty_database(tmp_path):
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'migrations.db'}")
    try:
        before = get_migration_status(engine)
        assert before.current_heads == ()
        assert not before.is_up_to_date

        # Reporting only, no upgrade.
        assert not ensure_migrations(engine, auto_migrate=False).is_up_to_date

        status = ensure_migrations(engine, auto_migrate=True)

        assert status.is_up_to_date
        assert status.current_heads == ("0001_baseline",)
        tables = set(inspect(engine).get_table_names())
        assert {
            "organizations",
            "accounts",
            "support_cases",
            "tickets",
            "themes",
            "account_ticket_links",
            "theme_ticket_links",
            "jobs",
        } <= tables
    finally:
        engine.dispose()
