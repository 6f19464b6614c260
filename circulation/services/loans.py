"""Loan lifecycle: eligibility, borrowing, returning and due-date math.

Business rules:
- One book can only be borrowed by one user at a time
- A user can hold at most ``max_active_loans`` active loans (3)
- Loans are due ``loan_period_days`` after borrowing (14)
- Book status moves AVAILABLE -> BORROWED -> AVAILABLE only through
  create_loan / return_loan, in the same transaction as the loan write
"""

import enum
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from circulation.errors import ConflictError, IneligibleError, NotFoundError, ValidationError
from circulation.models import Book, BookStatus, Library, LoanRecord, LoanStatus
from circulation.services.catalog import CatalogManager
from circulation.services.events import EventBus, LoanCreated, LoanReturned
from circulation.services.inventory_store import InventoryStore, StoreTransaction
from circulation.services.locks import KeyedLocks, book_key, library_key, user_key
from circulation.services.reconciliation_cache import ReconciliationCache
from circulation.utils.timezone import as_utc, now_local

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


class IneligibilityReason(str, enum.Enum):
    BORROW_LIMIT_REACHED = "borrow limit reached"
    ALREADY_BORROWED = "already borrowed"
    NOT_FOUND = "not found"
    NOT_AVAILABLE = "not available"


@dataclass(frozen=True)
class Eligibility:
    eligible: bool
    reason: Optional[IneligibilityReason] = None
    message: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "eligible": self.eligible,
            "reason": self.reason.value if self.reason else None,
            "message": self.message,
        }


ELIGIBLE = Eligibility(True)


class CirculationManager:
    def __init__(
        self,
        store: InventoryStore,
        locks: KeyedLocks,
        cache: ReconciliationCache,
        events: EventBus,
        catalog: CatalogManager,
        max_active_loans: int = 3,
        loan_period_days: int = 14,
        clock: Callable[[], datetime] = now_local,
    ):
        self.store = store
        self.locks = locks
        self.cache = cache
        self.events = events
        self.catalog = catalog
        self.max_active_loans = max_active_loans
        self.loan_period = timedelta(days=loan_period_days)
        self.clock = clock

    # ---- eligibility

    def _evaluate(self, tx: StoreTransaction, user_id: str, book_id: str) -> Eligibility:
        # Fixed order: the first failing rule decides the reason
        active_for_user = tx.count(
            LoanRecord, LoanRecord.user_id == user_id, LoanRecord.status == LoanStatus.ACTIVE
        )
        if active_for_user >= self.max_active_loans:
            return Eligibility(
                False,
                IneligibilityReason.BORROW_LIMIT_REACHED,
                f"You have already borrowed {self.max_active_loans} books. "
                "Please return at least one before borrowing another.",
            )

        active_for_book = tx.count(
            LoanRecord, LoanRecord.book_id == book_id, LoanRecord.status == LoanStatus.ACTIVE
        )
        if active_for_book:
            return Eligibility(
                False,
                IneligibilityReason.ALREADY_BORROWED,
                "This book is currently borrowed by another user.",
            )

        book = tx.get(Book, book_id)
        if book is None:
            return Eligibility(False, IneligibilityReason.NOT_FOUND, "Book not found.")

        if book.status != BookStatus.AVAILABLE:
            return Eligibility(
                False,
                IneligibilityReason.NOT_AVAILABLE,
                "This book is not available for borrowing.",
            )

        return ELIGIBLE

    def check_eligibility(self, user_id: str, book_id: str) -> Eligibility:
        """Advisory check against current store state. create_loan re-checks under lock."""
        with self.store.transaction() as tx:
            return self._evaluate(tx, user_id, book_id)

    # ---- borrowing / returning

    def create_loan(self, user_id: str, book_id: str, library_id: str) -> LoanRecord:
        if not user_id or not user_id.strip():
            raise ValidationError("user id required", field="user_id")

        with self.locks.hold(library_key(library_id), book_key(book_id), user_key(user_id)):
            with self.store.transaction() as tx:
                eligibility = self._evaluate(tx, user_id, book_id)
                if not eligibility.eligible:
                    logger.warning(
                        f"Loan refused for user {user_id} on book {book_id}: {eligibility.reason.value}"
                    )
                    raise IneligibleError(eligibility.reason.value, eligibility.message)

                book = tx.get(Book, book_id)
                if book.library_id != library_id:
                    raise ValidationError("book does not belong to library", field="library_id")
                if tx.get(Library, library_id) is None:
                    raise NotFoundError("Library", library_id)

                borrowed_at = self.clock()
                loan = tx.put(LoanRecord(
                    book_id=book_id,
                    user_id=user_id,
                    library_id=library_id,
                    status=LoanStatus.ACTIVE,
                    borrowed_at=borrowed_at,
                    due_date=borrowed_at + self.loan_period,
                ))
                self.catalog.mark_status(tx, book, BookStatus.BORROWED)

            # Mirror while the locks are still held
            self.cache.upsert(loan)
            self.cache.upsert(book)

        logger.info(f"Loan {loan.id}: user {user_id} borrowed book {book_id}, due {loan.due_date.isoformat()}")
        self.events.publish(LoanCreated.from_loan(loan, occurred_at=loan.borrowed_at))
        return loan

    def return_loan(self, loan_id: str) -> LoanRecord:
        loan = self.get_loan(loan_id)

        with self.locks.hold(book_key(loan.book_id)):
            with self.store.transaction() as tx:
                loan = tx.get(LoanRecord, loan_id)
                if loan.status != LoanStatus.ACTIVE:
                    logger.warning(f"Return refused for loan {loan_id}: already returned")
                    raise ConflictError("already returned", "This book has already been returned.")

                loan.status = LoanStatus.RETURNED
                loan.returned_at = self.clock()
                tx.put(loan)

                book = tx.get(Book, loan.book_id)
                if book is not None and book.status == BookStatus.BORROWED:
                    self.catalog.mark_status(tx, book, BookStatus.AVAILABLE)
                else:
                    logger.warning(f"Loan {loan_id} returned but book {loan.book_id} was not marked borrowed")

            self.cache.upsert(loan)
            if book is not None:
                self.cache.upsert(book)

        logger.info(f"Loan {loan_id}: book {loan.book_id} returned by user {loan.user_id}")
        self.events.publish(LoanReturned.from_loan(loan, occurred_at=loan.returned_at))
        return loan

    # ---- due dates

    def is_overdue(self, loan: LoanRecord, now: datetime = None) -> bool:
        if loan.status != LoanStatus.ACTIVE or loan.due_date is None:
            return False
        now = now or self.clock()
        return as_utc(loan.due_date) < as_utc(now)

    def days_remaining(self, loan: LoanRecord, now: datetime = None) -> Optional[int]:
        """Whole days until due, rounded up; negative once overdue."""
        if loan.due_date is None:
            return None
        now = now or self.clock()
        delta = as_utc(loan.due_date) - as_utc(now)
        return math.ceil(delta.total_seconds() / SECONDS_PER_DAY)

    # ---- queries

    def get_loan(self, loan_id: str) -> LoanRecord:
        loan = self.store.get(LoanRecord, loan_id)
        if loan is None:
            raise NotFoundError("Loan", loan_id)
        return loan

    def active_loans_for_user(self, user_id: str) -> List[LoanRecord]:
        return self.store.scan(
            LoanRecord,
            LoanRecord.user_id == user_id,
            LoanRecord.status == LoanStatus.ACTIVE,
            order_by=LoanRecord.borrowed_at.desc(),
        )

    def loan_history_for_user(self, user_id: str) -> List[LoanRecord]:
        return self.store.scan(
            LoanRecord, LoanRecord.user_id == user_id, order_by=LoanRecord.borrowed_at.desc()
        )

    def loan_history_for_book(self, book_id: str) -> List[LoanRecord]:
        return self.store.scan(
            LoanRecord, LoanRecord.book_id == book_id, order_by=LoanRecord.borrowed_at.desc()
        )

    def active_loan_for_book(self, book_id: str) -> Optional[LoanRecord]:
        active = self.store.scan(
            LoanRecord, LoanRecord.book_id == book_id, LoanRecord.status == LoanStatus.ACTIVE
        )
        return active[0] if active else None

    def is_book_borrowed(self, book_id: str) -> bool:
        return self.active_loan_for_book(book_id) is not None

    def overdue_loans(self, now: datetime = None) -> List[LoanRecord]:
        now = now or self.clock()
        return self.store.scan(
            LoanRecord,
            LoanRecord.status == LoanStatus.ACTIVE,
            LoanRecord.due_date < now,
            order_by=LoanRecord.due_date.asc(),
        )

    def loans_with_details(self, user_id: str) -> List[dict]:
        """All of a user's loans joined with book and library details.

        Loans whose book or library no longer exists are skipped.
        """
        details = []
        with self.store.transaction() as tx:
            for loan in tx.scan(
                LoanRecord, LoanRecord.user_id == user_id, order_by=LoanRecord.borrowed_at.desc()
            ):
                book = tx.get(Book, loan.book_id)
                library = tx.get(Library, loan.library_id)
                if book is None or library is None:
                    continue
                item = loan.to_dict()
                item.update({
                    "bookTitle": book.title,
                    "bookAuthor": book.author,
                    "bookCoverImage": book.cover_image,
                    "libraryName": library.name,
                    "isOverdue": self.is_overdue(loan),
                    "daysRemaining": self.days_remaining(loan) if loan.status == LoanStatus.ACTIVE else None,
                })
                details.append(item)
        return details
