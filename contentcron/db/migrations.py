from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from sqlalchemy import Connection, Engine, inspect, text


@dataclass(frozen=True)
class MigrationStep:
    version: int
    name: str
    apply: Callable[[Connection], None]


def _ensure_schema_migrations_table(conn: Connection) -> None:
    conn.execute(
        text(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version INTEGER PRIMARY KEY,
                name VARCHAR(255) NOT NULL,
                applied_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
            """
        )
    )


def _table_exists(conn: Connection, table_name: str) -> bool:
    inspector = inspect(conn)
    return inspector.has_table(table_name)


def _column_exists(conn: Connection, table_name: str, column_name: str) -> bool:
    if not _table_exists(conn, table_name):
        return False

    if conn.engine.dialect.name == "sqlite":
        rows = conn.execute(text(f"PRAGMA table_info('{table_name}')")).mappings().all()
        return any(str(row["name"]) == column_name for row in rows)

    inspector = inspect(conn)
    return any(col["name"] == column_name for col in inspector.get_columns(table_name))


def _migration_0001_baseline(_conn: Connection) -> None:
    return


def _migration_0002_cron_job_claim_columns(conn: Connection) -> None:
    if not _table_exists(conn, "cron_jobs"):
        return

    if not _column_exists(conn, "cron_jobs", "claim_token"):
        conn.execute(text("ALTER TABLE cron_jobs ADD COLUMN claim_token VARCHAR(36)"))

    if not _column_exists(conn, "cron_jobs", "claim_expires_at"):
        conn.execute(text("ALTER TABLE cron_jobs ADD COLUMN claim_expires_at DATETIME"))


def _migration_0003_cron_job_lookup_indexes(conn: Connection) -> None:
    if not _table_exists(conn, "cron_jobs"):
        return

    conn.execute(
        text("CREATE INDEX IF NOT EXISTS ix_cron_jobs_kind_item ON cron_jobs (kind, source_item_id)")
    )
    conn.execute(
        text("CREATE INDEX IF NOT EXISTS ix_cron_jobs_status_scheduled ON cron_jobs (status, scheduled_at)")
    )
    conn.execute(
        text("CREATE INDEX IF NOT EXISTS ix_cron_jobs_scheduled_id ON cron_jobs (scheduled_at, id)")
    )


MIGRATIONS: tuple[MigrationStep, ...] = (
    MigrationStep(version=1, name="baseline", apply=_migration_0001_baseline),
    MigrationStep(version=2, name="cron_job_claim_columns", apply=_migration_0002_cron_job_claim_columns),
    MigrationStep(version=3, name="cron_job_lookup_indexes", apply=_migration_0003_cron_job_lookup_indexes),
)


def apply_migrations(engine: Engine) -> None:
    with engine.begin() as conn:
        _ensure_schema_migrations_table(conn)

        existing_versions = {
            int(row[0])
            for row in conn.execute(text("SELECT version FROM schema_migrations ORDER BY version ASC")).all()
        }

        for step in MIGRATIONS:
            if step.version in existing_versions:
                continue

            step.apply(conn)
            conn.execute(
                text("INSERT INTO schema_migrations(version, name) VALUES (:version, :name)"),
                {"version": step.version, "name": step.name},
            )
