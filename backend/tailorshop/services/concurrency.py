# Overview: Retry and storage-failure handling shared by mutating services.

from __future__ import annotations

from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConflictError


class RepositoryUnavailable(RuntimeError):
    """The database could not be reached or refused the operation."""


@contextmanager
def storage_errors():
    """
    Translate driver-level failures into RepositoryUnavailable.

    StaleDataError (optimistic version check lost) and IntegrityError
    become ConflictError.
    The session is rolled back before re-raising either way.
    """
    try:
        yield
    except StaleDataError as exc:
        db.session.rollback()
        raise ConflictError("Order was modified concurrently; reload and try again") from exc
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError("Write rejected by a database constraint") from exc
    except (OperationalError, DBAPIError) as exc:
        db.session.rollback()
        raise RepositoryUnavailable("Database unavailable") from exc


def run_with_retry(func, *, attempts: int = 3):
    """
    Run `func` again immediately when it raises ConflictError.

    Each call is expected to re-read its state from the database, so no
    backoff is applied. Any other exception propagates on the first
    occurrence. After the last attempt the ConflictError is re-raised.
    """
    for attempt in range(attempts):
        try:
            return func()
        except ConflictError:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning("Conflict on attempt %s/%s, re-reading", attempt + 1, attempts)
