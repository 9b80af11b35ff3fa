# Overview: Thin CRUD + filter adapter over the SQLAlchemy session.

"""
Record Store Adapter

Every service goes through these four calls instead of touching
db.session directly for simple reads and writes. Write failures are
rolled back and surface as PersistenceError so callers (notably the
upload orchestrator) can run their compensation path.

Writes commit immediately: every state transition is persisted as one
full-record commit, never as a series of partial updates.
"""

from __future__ import annotations

from typing import Any, Iterable

from sqlalchemy.exc import SQLAlchemyError

from ..errors import PersistenceError
from ..extensions import db


def get(model, **filters: Any):
    """Return the first record matching equality filters, or None."""
    return db.session.query(model).filter_by(**filters).first()


def get_by_id(model, record_id: int):
    return db.session.get(model, record_id)


def create(model, **fields: Any):
    record = model(**fields)
    db.session.add(record)
    _commit(f"create {model.__name__}")
    return record


def update(record, **fields: Any):
    for key, value in fields.items():
        setattr(record, key, value)
    _commit(f"update {type(record).__name__} {record.id}")
    return record


def save(record):
    """Persist a record whose attributes were changed in place."""
    db.session.add(record)
    _commit(f"save {type(record).__name__} {record.id}")
    return record


def delete(record) -> None:
    db.session.delete(record)
    _commit(f"delete {type(record).__name__} {record.id}")


def list_records(
    model,
    *,
    filters: Iterable = (),
    order_by: Iterable = (),
    limit: int | None = None,
    offset: int | None = None,
    **equals: Any,
) -> list:
    """
    List records.

    filters: SQLAlchemy criteria (e.g. Event.event_date >= today)
    equals: simple equality filters (e.g. status="published")
    """
    q = db.session.query(model).filter_by(**equals)
    for criterion in filters:
        q = q.filter(criterion)
    q = q.order_by(*order_by)
    if offset:
        q = q.offset(offset)
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def count(model, *, filters: Iterable = (), **equals: Any) -> int:
    q = db.session.query(model).filter_by(**equals)
    for criterion in filters:
        q = q.filter(criterion)
    return q.count()


def _commit(action: str) -> None:
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceError(f"Failed to {action}") from exc
