"""Domain events emitted after a circulation write commits.

Delivery is fire-and-forget: a failing handler is logged and skipped, it
never undoes or fails the write that produced the event.
"""

import logging
import threading
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Callable, List, Optional

from circulation.utils.timezone import now_local

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DomainEvent:
    occurred_at: datetime

    @property
    def name(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        data = {"event": self.name}
        for key, value in asdict(self).items():
            data[key] = value.isoformat() if isinstance(value, datetime) else value
        return data


@dataclass(frozen=True)
class LoanCreated(DomainEvent):
    loan_id: str
    book_id: str
    user_id: str
    library_id: str
    due_date: Optional[datetime]

    @classmethod
    def from_loan(cls, loan, occurred_at: datetime = None) -> "LoanCreated":
        return cls(
            occurred_at=occurred_at or now_local(),
            loan_id=loan.id,
            book_id=loan.book_id,
            user_id=loan.user_id,
            library_id=loan.library_id,
            due_date=loan.due_date,
        )


@dataclass(frozen=True)
class LoanReturned(DomainEvent):
    loan_id: str
    book_id: str
    user_id: str
    library_id: str
    returned_at: datetime

    @classmethod
    def from_loan(cls, loan, occurred_at: datetime = None) -> "LoanReturned":
        return cls(
            occurred_at=occurred_at or now_local(),
            loan_id=loan.id,
            book_id=loan.book_id,
            user_id=loan.user_id,
            library_id=loan.library_id,
            returned_at=loan.returned_at,
        )


@dataclass(frozen=True)
class LibraryDeleted(DomainEvent):
    library_id: str
    library_name: str = ""


EventHandler = Callable[[DomainEvent], None]


class EventBus:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handlers: List[EventHandler] = []

    def subscribe(self, handler: EventHandler) -> Callable[[], None]:
        """Register a handler. Returns a callable that unsubscribes it."""
        with self._lock:
            self._handlers.append(handler)

        def unsubscribe() -> None:
            with self._lock:
                if handler in self._handlers:
                    self._handlers.remove(handler)

        return unsubscribe

    def publish(self, event: DomainEvent) -> None:
        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Event handler {handler!r} failed for {type(event).__name__}: {e}", exc_info=True)


def audit_log_handler(event: DomainEvent) -> None:
    """Default audit sink: one log line per domain event."""
    logger.info(f"[audit] {event.to_dict()}")
