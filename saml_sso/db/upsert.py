"""
Idempotent inserts.

Find-or-create sequences (users by email, organization memberships) race
under concurrent SSO callbacks.  Instead of check-then-insert we issue an
``INSERT ... ON CONFLICT DO NOTHING`` against the table's unique constraint
and then read the surviving row, so two identical callbacks converge on one
record.

Only PostgreSQL (production) and SQLite (tests) are supported.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import structlog
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

log = structlog.get_logger(__name__)

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


async def insert_ignore_conflict(
    db: AsyncSession,
    model: type[Any],
    values: dict[str, Any],
    *,
    conflict_columns: Sequence[str],
) -> bool:
    """Insert one row unless it collides with ``conflict_columns``.

    Returns True when a row was inserted, False when an existing row won.
    Column defaults declared with ``default=`` on the model are applied by
    SQLAlchemy as for any Core insert.
    """
    dialect = db.get_bind().dialect.name
    insert_fn = _DIALECT_INSERTS.get(dialect)
    if insert_fn is None:
        raise RuntimeError(f"insert_ignore_conflict does not support dialect '{dialect}'")

    stmt = insert_fn(model).values(**values).on_conflict_do_nothing(
        index_elements=list(conflict_columns)
    )
    result = await db.execute(stmt)
    inserted = bool(result.rowcount)
    log.debug(
        "db.insert_ignore_conflict",
        table=model.__tablename__,
        inserted=inserted,
    )
    return inserted
