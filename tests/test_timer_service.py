"""
Tests for the timer engine: single active timer, implicit switch, exact
durations, resume after restart and the display tick.
"""

import asyncio

import pytest
from sqlalchemy import func, select

from lancr.domain.errors import NotFoundError
from lancr.infra.db import TimeEntryModel
from lancr.infra.notifications import Notifier
from lancr.services import BackupService, TimerService
from conftest import T0


async def _open_entry_count(store) -> int:
    async def operation(session):
        stmt = select(func.count()).select_from(TimeEntryModel).where(TimeEntryModel.ended_at.is_(None))
        return (await session.execute(stmt)).scalar_one()
    return await store.enqueue(operation)


async def _all_entries(store):
    async def operation(session):
        result = await session.execute(select(TimeEntryModel).order_by(TimeEntryModel.id))
        return [(e.project_id, e.started_at, e.ended_at, e.duration) for e in result.scalars().all()]
    return await store.enqueue(operation)


@pytest.mark.asyncio
async def test_start_then_stop_records_exact_duration(timer, project, clock, store):
    state = await timer.start(project.id)
    assert state.is_running
    assert state.project_id == project.id
    assert state.project_name == "Website"
    assert state.started_at == T0

    clock.advance(65_000)
    state = await timer.stop()

    assert not state.is_running
    assert await _all_entries(store) == [(project.id, T0, T0 + 65_000, 65)]


@pytest.mark.asyncio
async def test_starting_another_project_closes_the_running_one(timer, project, projects, clock, store):
    other = await projects.add(project.client_id, "Mobile app", hourly_rate=80.0)

    await timer.start(project.id)
    clock.advance(30_000)
    state = await timer.start(other.id)

    assert state.project_id == other.id
    assert state.elapsed_seconds == 0
    assert await _all_entries(store) == [
        (project.id, T0, T0 + 30_000, 30),
        (other.id, T0 + 30_000, None, 0),
    ]
    assert await _open_entry_count(store) == 1


@pytest.mark.asyncio
async def test_starting_the_running_project_is_a_noop(timer, project, clock, store, notifier):
    await timer.start(project.id)
    clock.advance(10_000)
    state = await timer.start(project.id)

    assert state.started_at == T0
    assert state.elapsed_seconds == 10
    assert await _all_entries(store) == [(project.id, T0, None, 0)]
    assert notifier.events == [("show", "Website")]


@pytest.mark.asyncio
async def test_stop_when_idle_changes_nothing(timer, project, clock, store, notifier):
    await timer.start(project.id)
    clock.advance(5_000)
    await timer.stop()
    before = await _all_entries(store)

    clock.advance(5_000)
    state = await timer.stop()

    assert not state.is_running
    assert await _all_entries(store) == before
    assert notifier.events == [("show", "Website"), ("dismiss", None)]


@pytest.mark.asyncio
async def test_duration_is_floored(timer, project, clock, store):
    await timer.start(project.id)
    clock.advance(1_999)
    await timer.stop()

    assert (await _all_entries(store))[0][3] == 1


@pytest.mark.asyncio
async def test_start_unknown_project_raises(timer, store):
    with pytest.raises(NotFoundError):
        await timer.start(999)
    assert not timer.current_state().is_running
    assert await _open_entry_count(store) == 0


@pytest.mark.asyncio
async def test_concurrent_starts_leave_one_open_entry(timer, project, projects, clock, store):
    """Many starts fired without awaiting in between still keep the invariant"""
    other = await projects.add(project.client_id, "Support", hourly_rate=40.0)
    starts = [timer.start(pid) for pid in (project.id, other.id, project.id, other.id, other.id)]
    await asyncio.gather(*starts)

    assert await _open_entry_count(store) == 1
    assert timer.current_state().project_id == other.id
    closed = [e for e in await _all_entries(store) if e[2] is not None]
    assert all(duration == (ended - started) // 1000 for _, started, ended, duration in closed)


@pytest.mark.asyncio
async def test_stop_after_entry_was_deleted_raises_not_found(timer, project, projects, clock):
    await timer.start(project.id)
    await projects.delete(project.id)

    with pytest.raises(NotFoundError):
        await timer.stop()
    assert not timer.current_state().is_running


@pytest.mark.asyncio
async def test_resume_rederives_state_from_storage(store, project, clock, notifier):
    first = TimerService(store, notifier=notifier, clock=clock)
    await first.start(project.id)
    await first.close()

    # A fresh engine, as after a process restart long after the start
    clock.advance(3 * 3600 * 1000 + 7_000)
    second = TimerService(store, notifier=notifier, clock=clock)
    assert not second.current_state().is_running

    state = await second.resume()
    assert state.is_running
    assert state.project_name == "Website"
    assert state.elapsed_seconds == 3 * 3600 + 7
    await second.close()


@pytest.mark.asyncio
async def test_unterminated_entry_is_left_open(store, project, clock):
    timer = TimerService(store, clock=clock)
    await timer.start(project.id)

    clock.advance(48 * 3600 * 1000)
    await timer.resume()

    entries = await timer.entries(project.id)
    assert len(entries) == 1
    assert entries[0].is_open
    await timer.close()


@pytest.mark.asyncio
async def test_elapsed_is_recomputed_not_accumulated(timer, project, clock):
    await timer.start(project.id)
    clock.advance(90_000)
    assert timer.current_state().elapsed_seconds == 90
    clock.advance(-30_000)
    assert timer.current_state().elapsed_seconds == 60


@pytest.mark.asyncio
async def test_tick_publishes_and_stops_with_timer(timer, project, clock):
    published = []
    timer.on_tick = published.append

    await timer.start(project.id)
    clock.advance(4_000)
    await asyncio.sleep(0.05)
    assert published
    assert published[-1].elapsed_seconds == 4
    assert published[-1].display == "Website: 00:00:04"

    await timer.stop()
    count = len(published)
    await asyncio.sleep(0.05)
    assert len(published) == count


@pytest.mark.asyncio
async def test_tick_pauses_in_background_and_resumes(timer, project, clock):
    published = []
    timer.on_tick = published.append
    await timer.start(project.id)

    await timer.set_visible(False)
    await asyncio.sleep(0)
    count = len(published)
    await asyncio.sleep(0.05)
    assert len(published) == count
    # Persisted state is untouched by backgrounding
    assert timer.current_state().is_running

    clock.advance(120_000)
    state = await timer.set_visible(True)
    assert state.elapsed_seconds == 120
    await asyncio.sleep(0.05)
    assert len(published) > count


class BrokenNotifier(Notifier):
    async def show(self, project_name: str):
        raise RuntimeError("notification service unavailable")

    async def dismiss(self):
        raise RuntimeError("notification service unavailable")


@pytest.mark.asyncio
async def test_notification_failure_does_not_fail_transition(store, project, clock):
    timer = TimerService(store, notifier=BrokenNotifier(), clock=clock)

    state = await timer.start(project.id)
    assert state.is_running
    clock.advance(2_000)
    state = await timer.stop()
    assert not state.is_running
    assert await _all_entries(store) == [(project.id, T0, T0 + 2_000, 2)]
    await timer.close()


@pytest.mark.asyncio
async def test_stale_stop_picks_up_entry_opened_elsewhere(timer, project, store, clock):
    await timer.start(project.id)
    # Replace the data behind the engine's back with a different running entry
    await BackupService(store).import_snapshot({
        "clients": [{"id": 1, "name": "Acme GmbH", "createdAt": T0}],
        "projects": [{"id": 1, "clientId": 1, "name": "Restored", "createdAt": T0}],
        "timeEntries": [{"id": 7, "projectId": 1, "startedAt": T0 - 60_000}],
        "invoices": [],
    })

    with pytest.raises(NotFoundError):
        await timer.stop()

    state = timer.current_state()
    assert state.entry_id == 7
    assert state.project_name == "Restored"
    assert state.elapsed_seconds == 60
    assert await _open_entry_count(store) == 1
