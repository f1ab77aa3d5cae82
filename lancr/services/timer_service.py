"""
Timer Service - Core time tracking logic.

The persisted open time entry is the timer. This service keeps only a cached
copy of it (entry id, project, start time) for display; every transition is
decided inside a queued store operation against the stored rows, and elapsed
time is always recomputed as ``now - started_at``. Nothing is accumulated in
memory, so suspension, missed ticks and restarts cannot introduce drift.
"""

import asyncio
import itertools
import logging
from typing import Callable, List, Optional

from lancr.domain.errors import NotFoundError
from lancr.domain.models import TimeEntry, TimerState
from lancr.infra.notifications import LoggingNotifier, Notifier
from lancr.infra.repository import ProjectRepository, TimeEntryRepository
from lancr.infra.store import SerializedStore
from lancr.utils import now_ms

logger = logging.getLogger(__name__)


class TimerService:
    """
    The time tracking engine: Idle or Running(project, started_at).

    At most one time entry in the whole store is open. Starting a different
    project closes the running entry first; starting the running project
    again changes nothing.
    """

    def __init__(self, store: SerializedStore, notifier: Optional[Notifier] = None,
                 clock: Callable[[], int] = now_ms, tick_interval: float = 1.0):
        """
        Args:
            store: The serialized store every transition goes through
            notifier: Presents the running timer; failures never fail a transition
            clock: Returns the current time in ms since the epoch
            tick_interval: Seconds between display refreshes
        """
        self.store = store
        self.notifier = notifier or LoggingNotifier()
        self.clock = clock
        self.tick_interval = tick_interval

        # Display callback, called with a fresh TimerState on every tick
        self.on_tick: Optional[Callable[[TimerState], None]] = None

        self._entry: Optional[TimeEntry] = None
        self._project_name: Optional[str] = None
        self._tick_task: Optional[asyncio.Task] = None
        self._visible = True

        # Queued operations are numbered when they execute; a result only
        # updates the cache if no later operation has already done so.
        self._op_counter = itertools.count(1)
        self._applied_seq = 0

    def current_state(self) -> TimerState:
        """Snapshot of the cached state with elapsed time taken from the clock now"""
        if self._entry is None:
            return TimerState.idle()
        return TimerState.running(self._entry, self._project_name, self.clock())

    def is_tracking(self) -> bool:
        return self._entry is not None

    async def start(self, project_id: int) -> TimerState:
        """
        Start tracking time for a project.

        Raises:
            NotFoundError: the project does not exist
        """
        async def operation(session):
            seq = next(self._op_counter)
            projects = ProjectRepository(session)
            entries = TimeEntryRepository(session)

            name = await projects.get_name(project_id)
            if name is None:
                raise NotFoundError("Project", project_id)

            open_entries = await entries.get_open_entries()
            if len(open_entries) == 1 and open_entries[0].project_id == project_id:
                return seq, open_entries[0], name, False

            now = self.clock()
            for entry in open_entries:
                closed = await entries.close(entry, now)
                logger.info(f"Closed entry {closed.id} (project {closed.project_id}) after {closed.duration}s")
            created = await entries.create_open(project_id, now)
            return seq, created, name, True

        seq, entry, name, created = await self.store.enqueue(operation)
        self._apply(seq, entry, name)
        if created:
            logger.info(f"Timer started for project {project_id} ({name})")
            await self._notify_show(name)
        return self.current_state()

    async def stop(self) -> TimerState:
        """
        Stop the running timer. A no-op when nothing is running.

        Raises:
            NotFoundError: the entry this engine was showing has been deleted.
                The engine re-syncs with storage before raising.
        """
        known_id = self._entry.id if self._entry else None

        async def operation(session):
            seq = next(self._op_counter)
            entries = TimeEntryRepository(session)
            if known_id is not None and await entries.get_by_id(known_id) is None:
                raise NotFoundError("Time entry", known_id)

            now = self.clock()
            closed = []
            for entry in await entries.get_open_entries():
                closed.append(await entries.close(entry, now))
            return seq, closed

        try:
            seq, closed = await self.store.enqueue(operation)
        except NotFoundError:
            # Another entry may be open, e.g. after a restore
            self._reset_idle()
            await self.resume()
            raise

        self._apply(seq, None, None)
        if closed:
            for entry in closed:
                logger.info(f"Timer stopped for project {entry.project_id} after {entry.duration}s")
            await self._notify_dismiss()
        return self.current_state()

    async def resume(self) -> TimerState:
        """
        Re-derive the timer from storage.

        Called on startup and whenever the UI becomes active again. An entry
        left open by a process that died stays open; it is picked up here,
        never closed implicitly.
        """
        async def operation(session):
            seq = next(self._op_counter)
            open_entries = await TimeEntryRepository(session).get_open_entries()
            if not open_entries:
                return seq, None, None
            entry = open_entries[0]
            name = await ProjectRepository(session).get_name(entry.project_id)
            return seq, entry, name

        seq, entry, name = await self.store.enqueue(operation)
        self._apply(seq, entry, name)
        return self.current_state()

    async def entries(self, project_id: int) -> List[TimeEntry]:
        """History of a project, newest first. Open entries have ended_at None."""
        async def operation(session):
            return await TimeEntryRepository(session).get_by_project(project_id)

        return await self.store.enqueue(operation)

    async def set_visible(self, visible: bool) -> TimerState:
        """Foreground/background hook: ticks stop in the background, resume re-syncs on return"""
        self._visible = visible
        if not visible:
            self._stop_ticking()
            return self.current_state()
        return await self.resume()

    async def close(self):
        """Teardown: cancel the display tick"""
        task = self._tick_task
        self._tick_task = None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    def _apply(self, seq: int, entry: Optional[TimeEntry], project_name: Optional[str]):
        if seq < self._applied_seq:
            return
        self._applied_seq = seq
        self._entry = entry
        self._project_name = project_name if entry else None
        if entry is not None and self._visible:
            self._start_ticking()
        else:
            self._stop_ticking()

    def _reset_idle(self):
        self._entry = None
        self._project_name = None
        self._stop_ticking()

    def _start_ticking(self):
        if self._tick_task is None or self._tick_task.done():
            self._tick_task = asyncio.get_running_loop().create_task(self._tick_loop())

    def _stop_ticking(self):
        if self._tick_task is not None:
            self._tick_task.cancel()
            self._tick_task = None

    async def _tick_loop(self):
        """Republish elapsed time; observation only, never touches storage"""
        while True:
            if self.on_tick is not None:
                try:
                    self.on_tick(self.current_state())
                except Exception:
                    logger.exception("Tick listener failed")
            await asyncio.sleep(self.tick_interval)

    async def _notify_show(self, project_name: str):
        try:
            await self.notifier.show(project_name)
        except Exception as e:
            logger.warning(f"Timer notification failed: {e}")

    async def _notify_dismiss(self):
        try:
            await self.notifier.dismiss()
        except Exception as e:
            logger.warning(f"Dismissing timer notification failed: {e}")
