"""
Pytest configuration and fixtures.
"""

import sys
from pathlib import Path
import pytest
import pytest_asyncio

# Add project root
sys.path.insert(0, str(Path(__file__).parent.parent))

from lancr.infra.notifications import Notifier
from lancr.infra.store import SerializedStore
from lancr.services import ClientService, ProjectService, TimerService

T0 = 1_700_000_000_000


class FakeClock:
    """Controllable ms-epoch clock"""

    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int):
        self.now += ms


class RecordingNotifier(Notifier):
    def __init__(self):
        self.events = []

    async def show(self, project_name: str):
        self.events.append(("show", project_name))

    async def dismiss(self):
        self.events.append(("dismiss", None))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def db_url(tmp_path):
    """A file database, so a test can reopen it like a restarted process would"""
    return f"sqlite+aiosqlite:///{tmp_path / 'lancr_test.db'}"


@pytest_asyncio.fixture
async def store(db_url):
    store = await SerializedStore.open(db_url)
    yield store
    await store.close()


@pytest_asyncio.fixture
async def timer(store, notifier, clock):
    timer = TimerService(store, notifier=notifier, clock=clock, tick_interval=0.01)
    yield timer
    await timer.close()


@pytest.fixture
def clients(store):
    return ClientService(store)


@pytest.fixture
def projects(store):
    return ProjectService(store)


@pytest_asyncio.fixture
async def project(clients, projects):
    """One client with one project billed at 50/h"""
    client = await clients.add("Acme GmbH", email="billing@acme.test", company="Acme")
    return await projects.add(client.id, "Website", hourly_rate=50.0)
