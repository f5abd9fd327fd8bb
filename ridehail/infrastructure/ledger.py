"""
Ledger Store -- the transactional record store behind the state machine.

Abstracts DB access the way a repository does, but generically over the
ORM models, because the core only ever needs four things from storage:

* ``insert``              -- add a record, return it with its id
* ``conditional_update``  -- compare-and-swap: apply ``values`` only if the
  row still matches ``expected``; ``None`` when zero rows matched
* ``get``                 -- fetch one record by primary key
* ``query``               -- finite, restartable filtered read

``LedgerStore.run`` is the retry boundary: it opens one session and one
transaction per attempt, bounds the attempt with a timeout, and retries
transient storage errors with exponential backoff.  Domain errors raised
by the unit of work roll the transaction back and propagate untouched.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence, TypeVar

from sqlalchemy import inspect as sa_inspect
from sqlalchemy import select, update
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ridehail.config import settings
from ridehail.domain.errors import StorageUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M")

TRANSIENT_ERRORS = (
    OperationalError,
    InterfaceError,
    asyncio.TimeoutError,
    TimeoutError,
    OSError,
)


def _pk(model):
    return sa_inspect(model).primary_key[0]


class Ledger:
    """One unit of work bound to a single session/transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def insert(self, entity: M) -> M:
        self.session.add(entity)
        await self.session.flush()
        return entity

    async def get(self, model: type[M], entity_id: Any) -> Optional[M]:
        return await self.session.get(model, entity_id, populate_existing=True)

    async def conditional_update(
        self,
        model: type[M],
        entity_id: Any,
        expected: Mapping[str, Any],
        values: Mapping[str, Any],
    ) -> Optional[M]:
        """
        ``UPDATE model SET values WHERE pk = entity_id AND <expected>``.

        Returns the refreshed row, or ``None`` if no row matched.  This is
        the only way the core mutates an existing record.
        """
        criteria = [_pk(model) == entity_id]
        criteria.extend(getattr(model, col) == val for col, val in expected.items())
        stmt = (
            update(model)
            .where(*criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:
            return None
        return await self.get(model, entity_id)

    async def update_where(
        self, model: type[M], criteria: Sequence[Any], values: Mapping[str, Any]
    ) -> int:
        """Set-based conditional update; returns the matched row count."""
        stmt = (
            update(model)
            .where(*criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def query(
        self,
        model: type[M],
        *criteria: Any,
        order_by: Sequence[Any] = (),
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[M]:
        stmt = select(model).where(*criteria)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def scalar(self, stmt) -> Any:
        result = await self.session.execute(stmt)
        return result.scalar()


class LedgerStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        timeout: float = settings.storage_timeout_seconds,
        attempts: int = settings.storage_retry_attempts,
        base_delay: float = settings.storage_retry_base_delay,
    ):
        self._session_factory = session_factory
        self.timeout = timeout
        self.attempts = max(1, attempts)
        self.base_delay = base_delay

    async def run(self, work: Callable[[Ledger], Awaitable[T]]) -> T:
        """Run *work* in one transaction, retrying transient storage errors."""
        delay = self.base_delay
        for attempt in range(1, self.attempts):
            try:
                return await asyncio.wait_for(self._attempt(work), self.timeout)
            except TRANSIENT_ERRORS as exc:
                logger.warning(
                    "Ledger attempt %d/%d failed (%r); retrying in %.2fs",
                    attempt,
                    self.attempts,
                    exc,
                    delay,
                )
                await asyncio.sleep(delay)
                delay *= 2

        try:
            return await asyncio.wait_for(self._attempt(work), self.timeout)
        except TRANSIENT_ERRORS as exc:
            logger.error(
                "Ledger unavailable after %d attempts: %r", self.attempts, exc
            )
            raise StorageUnavailable(
                "Storage did not respond; the command was not applied"
            ) from exc

    async def _attempt(self, work: Callable[[Ledger], Awaitable[T]]) -> T:
        async with self._session_factory() as session:
            async with session.begin():
                return await work(Ledger(session))
