import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from circulation.errors import ConflictError, NotFoundError, ValidationError
from circulation.models import Book, BookStatus, Library
from circulation.services.events import EventBus, LibraryDeleted
from circulation.services.inventory_store import InventoryStore, StoreTransaction
from circulation.services.locks import KeyedLocks, book_key, library_key
from circulation.services.reconciliation_cache import ReconciliationCache
from circulation.utils.timezone import now_local

logger = logging.getLogger(__name__)

# field -> max length
LIBRARY_REQUIRED = {"name": 200}
LIBRARY_OPTIONAL = {"description": 2000, "location": 255}
BOOK_REQUIRED = {"title": 500, "author": 200}
BOOK_OPTIONAL = {
    "edition": 100,
    "publication_date": 10,
    "isbn": 20,
    "cover_image": 2000,
}

# Every legal book status change. Loans drive the BORROWED edges.
TRANSITIONS = {
    BookStatus.AVAILABLE: {BookStatus.BORROWED, BookStatus.UNAVAILABLE},
    BookStatus.BORROWED: {BookStatus.AVAILABLE},
    BookStatus.UNAVAILABLE: {BookStatus.AVAILABLE},
}

LIBRARY_HAS_BORROWED_BOOKS = (
    "Cannot delete library with borrowed books. "
    "Please ensure all books are returned first."
)


def _required(field: str, value: Any, max_length: int) -> str:
    cleaned = value.strip() if isinstance(value, str) else ""
    if not cleaned:
        raise ValidationError(f"{field} required", field=field)
    if len(cleaned) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters", field=field)
    return cleaned


def _optional(field: str, value: Any, max_length: int) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field=field)
    cleaned = value.strip()
    if len(cleaned) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters", field=field)
    return cleaned or None


def _parse_status(value: Any) -> BookStatus:
    try:
        return BookStatus(value)
    except ValueError:
        raise ValidationError(f"unknown status '{value}'", field="status")


class CatalogManager:
    """Owns the Library and Book lifecycle, including deletion safety."""

    def __init__(
        self,
        store: InventoryStore,
        locks: KeyedLocks,
        cache: ReconciliationCache,
        events: EventBus,
        clock: Callable[[], datetime] = now_local,
    ):
        self.store = store
        self.locks = locks
        self.cache = cache
        self.events = events
        self.clock = clock

    # ---- libraries

    def create_library(
        self,
        name: str,
        created_by: str,
        description: Optional[str] = None,
        location: Optional[str] = None,
    ) -> Library:
        library = Library(
            name=_required("name", name, LIBRARY_REQUIRED["name"]),
            description=_optional("description", description, LIBRARY_OPTIONAL["description"]),
            location=_optional("location", location, LIBRARY_OPTIONAL["location"]),
            created_by=created_by,
        )
        library = self.store.put(library)
        self.cache.upsert(library)
        logger.info(f"Library {library.id} '{library.name}' created by {created_by}")
        return library

    def get_library(self, library_id: str) -> Library:
        library = self.store.get(Library, library_id)
        if library is None:
            raise NotFoundError("Library", library_id)
        return library

    def list_libraries(self) -> List[Library]:
        return self.store.scan(Library, order_by=Library.name)

    def update_library(self, library_id: str, changes: Mapping[str, Any]) -> Library:
        cleaned: Dict[str, Any] = {}
        for field, value in changes.items():
            if field in LIBRARY_REQUIRED:
                cleaned[field] = _required(field, value, LIBRARY_REQUIRED[field])
            elif field in LIBRARY_OPTIONAL:
                cleaned[field] = _optional(field, value, LIBRARY_OPTIONAL[field])
            else:
                raise ValidationError(f"{field} cannot be updated", field=field)

        with self.locks.hold(library_key(library_id)):
            with self.store.transaction() as tx:
                library = tx.get(Library, library_id)
                if library is None:
                    raise NotFoundError("Library", library_id)
                for field, value in cleaned.items():
                    setattr(library, field, value)
                tx.put(library)
            self.cache.upsert(library)

        logger.info(f"Library {library_id} updated: {sorted(cleaned)}")
        return library

    def count_borrowed_in_library(self, library_id: str) -> int:
        return self.store.count(
            Book, Book.library_id == library_id, Book.status == BookStatus.BORROWED
        )

    def can_delete_library(self, library_id: str) -> bool:
        """True iff no book of the library is borrowed. Reads the store, never the cache."""
        return self.count_borrowed_in_library(library_id) == 0

    def delete_library(self, library_id: str) -> None:
        with self.locks.hold(library_key(library_id)):
            with self.store.transaction() as tx:
                library = tx.get(Library, library_id)
                if library is None:
                    raise NotFoundError("Library", library_id)
                borrowed = tx.count(
                    Book, Book.library_id == library_id, Book.status == BookStatus.BORROWED
                )
                if borrowed:
                    logger.warning(f"Refused to delete library {library_id}: {borrowed} book(s) borrowed")
                    raise ConflictError("library has borrowed books", LIBRARY_HAS_BORROWED_BOOKS)
                library_name = library.name
                tx.delete(Library, library_id)
            self.cache.remove(Library, library_id)

        logger.info(f"Library {library_id} '{library_name}' deleted")
        self.events.publish(LibraryDeleted(
            occurred_at=self.clock(), library_id=library_id, library_name=library_name,
        ))

    # ---- books

    def _book_fields(self, fields: Mapping[str, Any]) -> Dict[str, Any]:
        cleaned = {
            field: _required(field, fields.get(field), max_length)
            for field, max_length in BOOK_REQUIRED.items()
        }
        for field, max_length in BOOK_OPTIONAL.items():
            cleaned[field] = _optional(field, fields.get(field), max_length)
        return cleaned

    def create_book(
        self,
        library_id: str,
        title: str,
        author: str,
        added_by: str,
        edition: Optional[str] = None,
        publication_date: Optional[str] = None,
        isbn: Optional[str] = None,
        cover_image: Optional[str] = None,
    ) -> Book:
        cleaned = self._book_fields({
            "title": title,
            "author": author,
            "edition": edition,
            "publication_date": publication_date,
            "isbn": isbn,
            "cover_image": cover_image,
        })

        # The library lock keeps a concurrent delete_library from orphaning the new book
        with self.locks.hold(library_key(library_id)):
            with self.store.transaction() as tx:
                if tx.get(Library, library_id) is None:
                    raise NotFoundError("Library", library_id)
                book = tx.put(Book(
                    library_id=library_id,
                    status=BookStatus.AVAILABLE,
                    added_by=added_by,
                    **cleaned,
                ))
            self.cache.upsert(book)

        logger.info(f"Book {book.id} '{book.title}' added to library {library_id} by {added_by}")
        return book

    def create_book_from_candidate(self, library_id: str, candidate, added_by: str) -> Book:
        """Create a book from external catalog metadata (a BookCandidate)."""
        return self.create_book(
            library_id,
            title=candidate.title,
            author=candidate.author,
            added_by=added_by,
            edition=candidate.edition,
            publication_date=candidate.publication_date,
            isbn=candidate.isbn,
            cover_image=candidate.cover_image,
        )

    def get_book(self, book_id: str) -> Book:
        book = self.store.get(Book, book_id)
        if book is None:
            raise NotFoundError("Book", book_id)
        return book

    def list_books(self, library_id: str) -> List[Book]:
        return self.store.scan(Book, Book.library_id == library_id, order_by=Book.title)

    def search_books(self, library_id: str, query: str) -> List[Book]:
        """Case-insensitive substring match on title or author. Blank query lists all."""
        needle = (query or "").strip().lower()
        if not needle:
            return self.list_books(library_id)
        pattern = f"%{needle}%"
        return self.store.scan(
            Book,
            Book.library_id == library_id,
            Book.title.ilike(pattern) | Book.author.ilike(pattern),
            order_by=Book.title,
        )

    def update_book(self, book_id: str, changes: Mapping[str, Any]) -> Book:
        cleaned: Dict[str, Any] = {}
        new_status = None
        for field, value in changes.items():
            if field in BOOK_REQUIRED:
                cleaned[field] = _required(field, value, BOOK_REQUIRED[field])
            elif field in BOOK_OPTIONAL:
                cleaned[field] = _optional(field, value, BOOK_OPTIONAL[field])
            elif field == "status":
                new_status = _parse_status(value)
            else:
                raise ValidationError(f"{field} cannot be updated", field=field)

        with self.locks.hold(book_key(book_id)):
            with self.store.transaction() as tx:
                book = tx.get(Book, book_id)
                if book is None:
                    raise NotFoundError("Book", book_id)
                if new_status is not None and new_status != book.status:
                    if BookStatus.BORROWED in (new_status, book.status):
                        raise ConflictError(
                            "status managed by loans",
                            "Borrowed status can only change by borrowing or returning the book.",
                        )
                    self.mark_status(tx, book, new_status)
                for field, value in cleaned.items():
                    setattr(book, field, value)
                tx.put(book)
            self.cache.upsert(book)

        logger.info(f"Book {book_id} updated: {sorted(changes)}")
        return book

    def mark_status(self, tx: StoreTransaction, book: Book, status: BookStatus) -> Book:
        """Apply a status transition inside the caller's open transaction.

        The caller must already hold the book's lock.
        """
        if status not in TRANSITIONS[book.status]:
            raise ConflictError(
                "invalid status transition",
                f"Book cannot change from {book.status.value} to {status.value}.",
            )
        book.status = status
        return tx.put(book)

    def delete_book(self, book_id: str) -> None:
        book = self.get_book(book_id)
        with self.locks.hold(library_key(book.library_id), book_key(book_id)):
            with self.store.transaction() as tx:
                book = tx.get(Book, book_id)
                if book is None:
                    raise NotFoundError("Book", book_id)
                if book.status == BookStatus.BORROWED:
                    logger.warning(f"Refused to delete borrowed book {book_id}")
                    raise ConflictError(
                        "book is borrowed",
                        "Cannot delete a borrowed book. It must be returned first.",
                    )
                tx.delete(Book, book_id)
            self.cache.remove(Book, book_id)

        logger.info(f"Book {book_id} deleted from library {book.library_id}")
