from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

_NEVER_OVERWRITTEN = frozenset({"id", "created_at"})


def _insert_for(db: Session, model):
    dialect_name = db.get_bind().dialect.name
    if dialect_name == "postgresql":
        return pg_insert(model.__table__)
    if dialect_name == "sqlite":
        return sqlite_insert(model.__table__)
    raise RuntimeError(f"Unsupported dialect for upsert: {dialect_name}")


def upsert_row(db: Session, model, values: dict[str, Any], *, conflict_column: str) -> None:
    """Insert ``values`` or replace every supplied column of the row owning ``conflict_column``.

    The whole row is rewritten from the payload in one statement, so two
    concurrent writers of the same natural key converge on whichever statement
    commits last.
    """
    stmt = _insert_for(db, model).values(**values)
    replaced = {
        column: stmt.excluded[column]
        for column in values
        if column != conflict_column and column not in _NEVER_OVERWRITTEN
    }
    if "updated_at" in model.__table__.c:
        replaced["updated_at"] = func.now()
    stmt = stmt.on_conflict_do_update(index_elements=[conflict_column], set_=replaced)
    db.execute(stmt)


def insert_ignore_conflict(db: Session, model, values: dict[str, Any], *, conflict_columns: Iterable[str]) -> bool:
    stmt = _insert_for(db, model).values(**values).on_conflict_do_nothing(index_elements=list(conflict_columns))
    result = db.execute(stmt)
    return result.rowcount == 1
