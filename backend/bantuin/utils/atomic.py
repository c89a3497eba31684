"""Unit-of-work helper for money-moving operations."""

from __future__ import annotations

from contextlib import contextmanager

from flask import current_app

from bantuin.extensions import db

_DEPTH_KEY = "bantuin_atomic_depth"


@contextmanager
def atomic():
    """Run the block as one all-or-nothing database transaction.

    Nested blocks join the outermost one: only the outermost commits, and any
    exception escaping the outermost block rolls the whole unit back.
    """
    session = db.session
    depth = session.info.get(_DEPTH_KEY, 0)
    session.info[_DEPTH_KEY] = depth + 1
    try:
        yield session
        if depth == 0:
            session.commit()
    except Exception as e:
        if depth == 0:
            session.rollback()
            current_app.logger.debug("Transaction rolled back: %s", e)
        raise
    finally:
        session.info[_DEPTH_KEY] = depth


def lock(query):
    """Row-lock a query (SELECT ... FOR UPDATE) and refresh cached instances."""
    return query.with_for_update().populate_existing()
