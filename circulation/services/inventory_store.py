"""Keyed storage for Library, Book and LoanRecord entities.

The store gives per-key atomicity only. Invariants spanning several keys
(one active loan per book, borrow ceiling, deletion safety) are the
managers' job, under their keyed locks.
"""

import logging
import uuid
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from circulation.database import SessionLocal
from circulation.errors import NotFoundError, StorageError
from circulation.models import Book, Library, LoanRecord
from circulation.utils.timezone import now_local

logger = logging.getLogger(__name__)

Entity = TypeVar("Entity", Library, Book, LoanRecord)

KINDS = (Library, Book, LoanRecord)


def kind_name(kind) -> str:
    return kind.__name__ if isinstance(kind, type) else type(kind).__name__


class StoreTransaction:
    """Unit of work over one session. Nothing is visible to others until commit."""

    def __init__(self, session: Session, clock: Callable = now_local):
        self.session = session
        self._clock = clock

    def get(self, kind: Type[Entity], entity_id: str) -> Optional[Entity]:
        if not entity_id:
            return None
        return self.session.get(kind, entity_id)

    def put(self, entity: Entity) -> Entity:
        """Insert or update. Assigns id/created_at on first insert, always bumps updated_at."""
        now = self._clock()
        if entity.id is None:
            entity.id = uuid.uuid4().hex
        if entity.created_at is None:
            entity.created_at = now
        entity.updated_at = now
        self.session.add(entity)
        self.session.flush()
        return entity

    def scan(self, kind: Type[Entity], *criteria, order_by=None) -> List[Entity]:
        stmt = select(kind).where(*criteria)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        return list(self.session.scalars(stmt).all())

    def count(self, kind: Type[Entity], *criteria) -> int:
        stmt = select(func.count()).select_from(kind).where(*criteria)
        return self.session.scalar(stmt) or 0

    def delete(self, kind: Type[Entity], entity_id: str) -> None:
        entity = self.get(kind, entity_id)
        if entity is None:
            raise NotFoundError(kind_name(kind), entity_id)
        self.session.delete(entity)
        self.session.flush()


class InventoryStore:
    """SQL-backed inventory store.

    Single-call methods (``get``, ``put``, ``scan``, ``count``, ``delete``)
    each run in their own transaction. Use ``transaction()`` to group writes
    that must commit or roll back together.
    """

    def __init__(self, session_factory: sessionmaker = SessionLocal, clock: Callable = now_local):
        self._session_factory = session_factory
        self._clock = clock

    @contextmanager
    def transaction(self) -> Iterator[StoreTransaction]:
        session = self._session_factory()
        try:
            yield StoreTransaction(session, self._clock)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Store transaction rolled back: {e}")
            raise StorageError(str(e), "transaction") from e
        except BaseException:
            # Domain errors and cancellation leave nothing half-written
            session.rollback()
            raise
        finally:
            session.close()

    def get(self, kind: Type[Entity], entity_id: str) -> Optional[Entity]:
        with self.transaction() as tx:
            return tx.get(kind, entity_id)

    def put(self, entity: Entity) -> Entity:
        with self.transaction() as tx:
            return tx.put(entity)

    def scan(self, kind: Type[Entity], *criteria, order_by=None) -> List[Entity]:
        with self.transaction() as tx:
            return tx.scan(kind, *criteria, order_by=order_by)

    def count(self, kind: Type[Entity], *criteria) -> int:
        with self.transaction() as tx:
            return tx.count(kind, *criteria)

    def delete(self, kind: Type[Entity], entity_id: str) -> None:
        with self.transaction() as tx:
            tx.delete(kind, entity_id)
