"""Process-wide circulation components and their FastAPI dependency providers.

Tests swap these out through ``app.dependency_overrides``.
"""

from typing import Optional
from fastapi import Header
from circulation.config import settings
from circulation.database import SessionLocal
from circulation.services.catalog import CatalogManager
from circulation.services.events import EventBus
from circulation.services.inventory_store import InventoryStore
from circulation.services.loans import CirculationManager
from circulation.services.locks import KeyedLocks
from circulation.services.reconciliation_cache import ReconciliationCache

store = InventoryStore(SessionLocal)
locks = KeyedLocks(timeout=settings.lock_timeout_seconds)
cache = ReconciliationCache()
events = EventBus()
catalog_manager = CatalogManager(store, locks, cache, events)
circulation_manager = CirculationManager(
    store,
    locks,
    cache,
    events,
    catalog_manager,
    max_active_loans=settings.max_active_loans,
    loan_period_days=settings.loan_period_days,
)


def get_catalog() -> CatalogManager:
    return catalog_manager


def get_circulation() -> CirculationManager:
    return circulation_manager


def get_cache() -> ReconciliationCache:
    return cache


def get_actor_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Caller identity as supplied by the upstream identity provider.

    The core trusts this value; authentication happens outside it.
    """
    if x_user_id and x_user_id.strip():
        return x_user_id.strip()
    return settings.default_actor_id
