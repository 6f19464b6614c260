from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest
import pytz
from fastapi.testclient import TestClient

from circulation.database import build_engine, build_session_factory, init_db
from circulation.dependencies import get_cache, get_catalog, get_circulation
from circulation.main import app
from circulation.services.catalog import CatalogManager
from circulation.services.events import EventBus
from circulation.services.inventory_store import InventoryStore
from circulation.services.loans import CirculationManager
from circulation.services.locks import KeyedLocks
from circulation.services.reconciliation_cache import ReconciliationCache


class FakeClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 1, 9, 0, tzinfo=pytz.utc))


@pytest.fixture
def engine(tmp_path):
    """
    File-backed SQLite database per test.

    A file (not :memory:) so that worker threads in the concurrency tests
    each get their own connection to the same data.
    """
    engine = build_engine(f"sqlite:///{tmp_path / 'circulation-test.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def components(engine, clock):
    store = InventoryStore(build_session_factory(engine), clock=clock)
    locks = KeyedLocks(timeout=5.0)
    cache = ReconciliationCache()
    events = EventBus()
    catalog = CatalogManager(store, locks, cache, events, clock=clock)
    circulation = CirculationManager(
        store, locks, cache, events, catalog,
        max_active_loans=3, loan_period_days=14, clock=clock,
    )
    published = []
    events.subscribe(published.append)
    return SimpleNamespace(
        store=store,
        locks=locks,
        cache=cache,
        events=events,
        catalog=catalog,
        circulation=circulation,
        published=published,
        clock=clock,
    )


@pytest.fixture
def catalog(components):
    return components.catalog


@pytest.fixture
def circulation(components):
    return components.circulation


@pytest.fixture
def library(catalog):
    return catalog.create_library("Main Library", created_by="admin", location="Building A, Floor 2")


@pytest.fixture
def make_book(catalog, library):
    """Factory fixture: add an AVAILABLE book to the default library."""
    def _make_book(title="Clean Code", author="Robert C. Martin", library_id=None, **fields):
        return catalog.create_book(
            library_id or library.id, title=title, author=author, added_by="admin", **fields
        )
    return _make_book


@pytest.fixture
def client(components):
    """TestClient wired to the per-test components. Lifespan is not run."""
    app.dependency_overrides[get_catalog] = lambda: components.catalog
    app.dependency_overrides[get_circulation] = lambda: components.circulation
    app.dependency_overrides[get_cache] = lambda: components.cache
    yield TestClient(app)
    app.dependency_overrides.clear()
