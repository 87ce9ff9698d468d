"""Startup gate for the dispatch schema.

Production runs must sit at the Alembic head. Demo and local runs may create
the tables straight from the ORM metadata instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from rider_dispatch.config import is_production_mode, settings
from rider_dispatch.db.base import Base
from rider_dispatch.observability import log_event

ALEMBIC_INI = Path(__file__).resolve().parents[2] / "alembic.ini"


@dataclass(frozen=True)
class SchemaRevision:
    current: str | None
    head: str

    @property
    def at_head(self) -> bool:
        return self.current == self.head


def head_revision() -> str:
    return ScriptDirectory.from_config(Config(str(ALEMBIC_INI))).get_current_head()


def schema_revision(engine: Engine) -> SchemaRevision:
    with engine.connect() as connection:
        current = MigrationContext.configure(connection).get_current_revision()
    return SchemaRevision(current=current, head=head_revision())


def missing_tables(engine: Engine) -> list[str]:
    import rider_dispatch.models  # noqa: F401

    existing = set(inspect(engine).get_table_names())
    return sorted(name for name in Base.metadata.tables if name not in existing)


def prepare_schema(engine: Engine) -> None:
    """Refuse to start on a stale schema, or create missing tables in demo runs."""
    if settings.require_migrations:
        revision = schema_revision(engine)
        if not revision.at_head:
            raise RuntimeError(
                f"Database schema not up to date (at {revision.current}, "
                f"head is {revision.head}). Run: alembic upgrade head"
            )
        return

    if not settings.auto_create_schema:
        return
    if is_production_mode():
        raise RuntimeError(
            "auto_create_schema must be disabled in RIDER_DISPATCH_APP_MODE=production"
        )

    missing = missing_tables(engine)
    if missing:
        Base.metadata.create_all(bind=engine)
        log_event(f"schema_created: {', '.join(missing)}")
