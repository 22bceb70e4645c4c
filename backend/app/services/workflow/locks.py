"""Critical sections for the workflow engine.

Two kinds of exclusive scope exist:

* one per application id, held for the whole read-validate-write-append
  sequence of a transition;
* one global scope for creation, held from "read max sequential number"
  until the new application row is committed.

Each scope is an in-process ``asyncio.Lock`` (single writer per key inside
a worker) wrapped around a database transaction that takes the matching
database lock (row lock / advisory lock on PostgreSQL), so several worker
processes also serialize.  Lock waits are bounded by
``settings.lock_timeout_seconds`` and fail with ``ContentionError``.
"""

import asyncio
import logging
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import func, select, text
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.services.workflow.errors import (
    CollisionDetectedError,
    ContentionError,
    PersistenceFailureError,
    WorkflowError,
)

logger = logging.getLogger(__name__)

# pg_advisory_xact_lock key serializing identifier generation ("CEIS").
CODIFICATION_LOCK_KEY = 0x43454953

# lock_not_available, deadlock_detected
_LOCK_FAILURE_SQLSTATES = frozenset({"55P03", "40P01"})

_IDENTIFIER_COLUMNS = ("codification", "sequential_number")


class LockRegistry:
    """In-process locks keyed by application id, plus the creation lock."""

    def __init__(self) -> None:
        self._application_locks: weakref.WeakValueDictionary[int, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._creation_lock: asyncio.Lock | None = None

    def for_application(self, application_id: int) -> asyncio.Lock:
        lock = self._application_locks.get(application_id)
        if lock is None:
            lock = asyncio.Lock()
            self._application_locks[application_id] = lock
        return lock

    def for_creation(self) -> asyncio.Lock:
        if self._creation_lock is None:
            self._creation_lock = asyncio.Lock()
        return self._creation_lock

    def reset(self) -> None:
        """Forget all locks (they are bound to the event loop that first awaited them)."""
        self._application_locks = weakref.WeakValueDictionary()
        self._creation_lock = None


registry = LockRegistry()


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------

def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def is_lock_failure(exc: SQLAlchemyError) -> bool:
    if not isinstance(exc, DBAPIError):
        return False
    if _sqlstate(exc) in _LOCK_FAILURE_SQLSTATES:
        return True
    return "database is locked" in str(exc.orig).lower()


def is_identifier_collision(exc: SQLAlchemyError) -> bool:
    if not isinstance(exc, IntegrityError):
        return False
    message = str(exc.orig).lower()
    return any(column in message for column in _IDENTIFIER_COLUMNS)


def translate_db_error(
    exc: SQLAlchemyError, *, application_id: int | None = None
) -> WorkflowError:
    """Map a store failure onto the workflow error taxonomy."""
    if is_lock_failure(exc):
        return ContentionError(
            "Lock wait timed out; retry the operation",
            application_id=application_id,
        )
    if is_identifier_collision(exc):
        return CollisionDetectedError(
            "Generated identifier already exists; retry the operation",
            application_id=application_id,
        )
    return PersistenceFailureError(
        f"Storage error: {type(exc).__name__}",
        application_id=application_id,
    )


# ---------------------------------------------------------------------------
# Scopes
# ---------------------------------------------------------------------------

@asynccontextmanager
async def _hold(lock: asyncio.Lock, timeout: float, what: str) -> AsyncIterator[None]:
    try:
        await asyncio.wait_for(lock.acquire(), timeout)
    except asyncio.TimeoutError:
        logger.error("Timed out after %.2fs waiting for %s", timeout, what)
        raise ContentionError(f"Timed out waiting for {what}; retry the operation")
    try:
        yield
    finally:
        lock.release()


async def _bound_lock_waits(db: AsyncSession, timeout: float) -> None:
    if db.get_bind().dialect.name == "postgresql":
        await db.execute(text(f"SET LOCAL lock_timeout = '{int(timeout * 1000)}ms'"))


async def _take_advisory_lock(db: AsyncSession, key: int) -> None:
    if db.get_bind().dialect.name == "postgresql":
        await db.execute(select(func.pg_advisory_xact_lock(key)))


@asynccontextmanager
async def _locked_transaction(
    sessions: async_sessionmaker[AsyncSession],
    lock: asyncio.Lock,
    *,
    what: str,
    timeout: float | None,
    application_id: int | None = None,
    advisory_key: int | None = None,
) -> AsyncIterator[AsyncSession]:
    wait = settings.lock_timeout_seconds if timeout is None else timeout
    async with _hold(lock, wait, what):
        try:
            async with sessions() as db:
                async with db.begin():
                    await _bound_lock_waits(db, wait)
                    if advisory_key is not None:
                        await _take_advisory_lock(db, advisory_key)
                    yield db
        except SQLAlchemyError as exc:
            error = translate_db_error(exc, application_id=application_id)
            logger.error("%s rolled back: %s (%s)", what, error.code, exc)
            raise error from exc


def application_transaction(
    sessions: async_sessionmaker[AsyncSession],
    application_id: int,
    *,
    timeout: float | None = None,
):
    """Exclusive transactional scope for one application.

    The caller must still lock the row itself (``store.load_application(...,
    for_update=True)``) as the first statement inside the scope.
    """
    return _locked_transaction(
        sessions,
        registry.for_application(application_id),
        what=f"application {application_id}",
        timeout=timeout,
        application_id=application_id,
    )


def creation_transaction(
    sessions: async_sessionmaker[AsyncSession],
    *,
    timeout: float | None = None,
):
    """Globally exclusive transactional scope for creating an application."""
    return _locked_transaction(
        sessions,
        registry.for_creation(),
        what="the codification sequence",
        timeout=timeout,
        advisory_key=CODIFICATION_LOCK_KEY,
    )
