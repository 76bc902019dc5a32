from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Iterator, TypeVar

from sqlalchemy.exc import DataError, IntegrityError, OperationalError
from sqlalchemy.orm import Session

from backend.app.errors import ConflictError, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """
    All-or-nothing write scope on `db`.

    Commits when the block exits cleanly; any exception rolls back every
    statement issued in the block before it propagates. Storage conflicts
    surface as ConflictError (not retried); values the column cannot hold
    surface as ValidationError.
    """
    try:
        yield db
        db.flush()
        db.commit()
    except DataError as exc:
        db.rollback()
        logger.warning("Transaction rejected by storage: %s", exc.__class__.__name__)
        raise ValidationError("A value is out of range for storage") from exc
    except (IntegrityError, OperationalError) as exc:
        db.rollback()
        logger.warning("Transaction aborted by storage conflict: %s", exc.__class__.__name__)
        raise ConflictError("The change conflicted with a concurrent update; please retry.") from exc
    except Exception:
        db.rollback()
        raise


def run_atomic(db: Session, fn: Callable[[Session], T]) -> T:
    with atomic(db) as scope:
        return fn(scope)
