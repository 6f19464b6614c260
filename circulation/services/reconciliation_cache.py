"""Read-mostly mirror of the inventory for fast listing and subscribers.

The cache is never a source of truth: deletion and eligibility decisions
query the store directly. It is refreshed synchronously after each committed
manager write, while that write still holds its keyed locks, so changes to
one entity are applied in commit order. It can be rebuilt from the store at
any time.
"""

import copy
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from circulation.services.inventory_store import KINDS, InventoryStore, kind_name

logger = logging.getLogger(__name__)

UPSERT = "upsert"
DELETE = "delete"
REBUILD = "rebuild"


@dataclass(frozen=True)
class CacheChange:
    kind: str
    entity_id: Optional[str]
    action: str
    snapshot: Optional[dict] = None


Subscriber = Callable[[CacheChange], None]


class ReconciliationCache:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._entries: Dict[str, Dict[str, dict]] = {kind_name(k): {} for k in KINDS}
        self._subscribers: List[Subscriber] = []
        self.version = 0

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self, change: CacheChange) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(change)
            except Exception as e:
                logger.error(f"Cache subscriber failed on {change.kind}:{change.entity_id}: {e}", exc_info=True)

    def upsert(self, entity) -> None:
        kind = kind_name(entity)
        snapshot = entity.to_dict()
        with self._lock:
            self._entries.setdefault(kind, {})[entity.id] = snapshot
            self.version += 1
        self._notify(CacheChange(kind, entity.id, UPSERT, copy.deepcopy(snapshot)))

    def remove(self, kind, entity_id: str) -> None:
        kind = kind if isinstance(kind, str) else kind_name(kind)
        with self._lock:
            removed = self._entries.get(kind, {}).pop(entity_id, None)
            if removed is None:
                return
            self.version += 1
        self._notify(CacheChange(kind, entity_id, DELETE))

    def rebuild(self, store: InventoryStore) -> None:
        """Replace the mirror with the current store contents."""
        fresh = {kind_name(k): {e.id: e.to_dict() for e in store.scan(k)} for k in KINDS}
        with self._lock:
            self._entries = fresh
            self.version += 1
        logger.info(
            "Reconciliation cache rebuilt: "
            + ", ".join(f"{kind}={len(items)}" for kind, items in fresh.items())
        )
        for kind in fresh:
            self._notify(CacheChange(kind, None, REBUILD))

    def get(self, kind, entity_id: str) -> Optional[dict]:
        kind = kind if isinstance(kind, str) else kind_name(kind)
        with self._lock:
            snapshot = self._entries.get(kind, {}).get(entity_id)
            return copy.deepcopy(snapshot) if snapshot is not None else None

    def list(self, kind, predicate: Callable[[dict], bool] = None, sort_key: str = None) -> List[dict]:
        kind = kind if isinstance(kind, str) else kind_name(kind)
        with self._lock:
            items = [copy.deepcopy(s) for s in self._entries.get(kind, {}).values()]
        if predicate is not None:
            items = [s for s in items if predicate(s)]
        if sort_key is not None:
            items.sort(key=lambda s: (s.get(sort_key) or "").lower())
        return items

    def snapshot(self) -> Dict[str, Dict[str, dict]]:
        with self._lock:
            return copy.deepcopy(self._entries)

    # Views used by the listing endpoints

    def libraries(self) -> List[dict]:
        return self.list("Library", sort_key="name")

    def books_in_library(self, library_id: str, query: str = None) -> List[dict]:
        needle = (query or "").strip().lower()

        def matches(book: dict) -> bool:
            if book["libraryId"] != library_id:
                return False
            if not needle:
                return True
            return needle in book["title"].lower() or needle in book["author"].lower()

        return self.list("Book", matches, sort_key="title")

    def active_loans_for_user(self, user_id: str) -> List[dict]:
        return self.list("LoanRecord", lambda l: l["userId"] == user_id and l["status"] == "ACTIVE")
