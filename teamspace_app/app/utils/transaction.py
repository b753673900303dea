from __future__ import annotations

from contextlib import contextmanager
from typing import Generator
from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from .. import db
from ..errors import ConflictError


@contextmanager
def atomic(conflict_message: str = "Conflicting write") -> Generator[Session, None, None]:
    """Run a unit of work on ``db.session``; commit on success, roll back on any error.

    Helpers called inside the block must only flush. A unique-constraint violation
    surfaces as ``ConflictError`` so callers see the same signal whether the
    look-then-act pre-check or the store caught the duplicate.

    Usage:
        with atomic("User is already a member") as session:
            session.add(row)
    """
    session = db.session
    try:
        yield session
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        current_app.logger.warning("integrity violation rolled back: %s", exc.orig)
        raise ConflictError(conflict_message) from exc
    except SQLAlchemyError:
        session.rollback()
        current_app.logger.exception("store error; unit of work rolled back")
        raise
    except Exception:
        session.rollback()
        raise
