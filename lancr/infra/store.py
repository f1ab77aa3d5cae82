"""
Serialized Store - the single admission path into persistent state.

Every read and write is an operation ``async (AsyncSession) -> T`` placed on
one FIFO queue. A single worker task takes operations off the queue and runs
each inside its own transaction, so no two operations ever interleave and
callers never see a half-applied write. This gives the ordering of a global
lock without ever blocking the event loop.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Tuple, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from lancr.domain.errors import LancrError, StorageError
from lancr.infra.db import DatabaseEngine

logger = logging.getLogger(__name__)

T = TypeVar("T")
Operation = Callable[[AsyncSession], Awaitable[T]]


class SerializedStore:
    """
    Owns the database and runs queued operations one at a time, in order.

    A failing operation only fails its own caller; the next operation starts
    as soon as the failed one has rolled back.
    """

    def __init__(self, db_url: str):
        self.db = DatabaseEngine(db_url)
        self._queue: "asyncio.Queue[Optional[Tuple[Operation, asyncio.Future]]]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._closed = False

    @classmethod
    async def open(cls, db_url: str) -> "SerializedStore":
        """Create a store, bring the schema up to date and start the worker"""
        store = cls(db_url)
        await store.initialize()
        return store

    async def initialize(self):
        """
        Idempotent schema creation/upgrade followed by the orphan sweep.

        Runs before the worker starts, so nothing can be admitted against a
        half-initialized database.
        """
        try:
            await self.db.create_tables()
            await self.db.sweep_orphans()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to initialize database: {e}") from e
        self._worker = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"Store ready: {self.db.db_url}")

    @property
    def pending(self) -> int:
        """Number of operations admitted but not yet started"""
        return self._queue.qsize()

    def enqueue(self, operation: Operation) -> "asyncio.Future[T]":
        """
        Admit an operation and return a future for its result.

        Admission happens at call time, so the call order is the execution
        order even when callers do not await in between. Once admitted, an
        operation runs to completion even if the caller stops waiting.
        """
        future = asyncio.get_running_loop().create_future()
        if self._closed or self._worker is None:
            future.set_exception(StorageError("Store is not open"))
            return future
        self._queue.put_nowait((operation, future))
        logger.debug(f"Operation admitted, {self._queue.qsize()} pending")
        return future

    async def _run(self):
        while True:
            item = await self._queue.get()
            try:
                if item is None:
                    return
                operation, future = item
                try:
                    result = await self._execute(operation)
                except Exception as e:
                    if future.done():
                        logger.warning(f"Operation failed after its caller stopped waiting: {e!r}")
                    else:
                        future.set_exception(e)
                else:
                    if not future.done():
                        future.set_result(result)
            finally:
                self._queue.task_done()

    async def _execute(self, operation: Operation) -> Any:
        """Run one operation in its own transaction; commit on success, roll back otherwise"""
        try:
            async with self.db.get_session() as session:
                async with session.begin():
                    return await operation(session)
        except LancrError:
            raise
        except SQLAlchemyError as e:
            logger.debug(f"Storage failure: {e}")
            raise StorageError(str(e)) from e

    async def close(self):
        """Finish every admitted operation, then stop the worker and release the engine"""
        if self._closed:
            return
        self._closed = True
        if self._worker is not None:
            self._queue.put_nowait(None)
            await self._worker
            self._worker = None
        await self.db.dispose()
        logger.info("Store closed")
