from .book import Library, Book, BookStatus
from .loan import LoanRecord, LoanStatus

__all__ = [
    "Library",
    "Book",
    "BookStatus",
    "LoanRecord",
    "LoanStatus",
]
