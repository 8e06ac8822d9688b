from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from stockflow.app.db.session import Database
from stockflow.services.errors import ConflictError, NotFoundError, StorageUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

# SQLSTATE Postgres foreign_key_violation ; SQLite ne porte que le message
FOREIGN_KEY_VIOLATION = "23503"


def _is_foreign_key_violation(exc: IntegrityError) -> bool:
    if getattr(exc.orig, "sqlstate", None) == FOREIGN_KEY_VIOLATION:
        return True
    return "FOREIGN KEY constraint failed" in str(exc.orig)


def run_in_transaction(
    database: Database,
    work: Callable[[Session], T],
    *,
    attempts: int | None = None,
) -> T:
    """
    Une opération externe = une transaction.

    - DomainError : rollback, propagée telle quelle (jamais rejouée)
    - OperationalError (lock timeout, deadlock, "database is locked") :
      rollback puis rejeu borné, sinon StorageUnavailable
    - IntegrityError au flush/commit : clé étrangère inconnue -> NotFoundError,
      sinon un écrivain concurrent a gagné -> ConflictError
    """
    attempts = attempts or database.settings.storage_retry_attempts
    backoff = database.settings.storage_retry_backoff_ms / 1000

    for attempt in range(1, attempts + 1):
        session = database.session()
        try:
            with session.begin():
                database.prepare_write(session)
                result = work(session)
            return result
        except OperationalError as exc:
            logger.warning("storage unavailable (attempt %d/%d): %s", attempt, attempts, exc.orig)
            if attempt == attempts:
                raise StorageUnavailable(
                    "Storage temporarily unavailable, please retry",
                    attempts=attempts,
                ) from exc
            time.sleep(backoff * attempt)
        except IntegrityError as exc:
            if _is_foreign_key_violation(exc):
                raise NotFoundError("Referenced row does not exist", reason=str(exc.orig)) from exc
            raise ConflictError("Concurrent write conflict", reason=str(exc.orig)) from exc
        finally:
            session.close()

    raise StorageUnavailable("Storage temporarily unavailable, please retry", attempts=attempts)


def run_in_snapshot(database: Database, work: Callable[[Session], T]) -> T:
    """Lecture seule, cohérente à un instant T (REPEATABLE READ en Postgres)."""
    session = database.session()
    try:
        with session.begin():
            database.prepare_snapshot(session)
            return work(session)
    except OperationalError as exc:
        raise StorageUnavailable("Storage temporarily unavailable, please retry") from exc
    finally:
        session.close()
