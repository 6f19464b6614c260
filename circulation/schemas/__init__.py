from .library import LibraryBase, LibraryCreate, LibraryUpdate, LibraryResponse, CanDeleteResponse
from .book import (
    BookBase, BookCreate, BookUpdate, BookResponse,
    BookCandidate, BookCandidateCreate,
)
from .loan import LoanCreate, LoanResponse, LoanDetailResponse, EligibilityResponse

__all__ = [
    "LibraryBase", "LibraryCreate", "LibraryUpdate", "LibraryResponse", "CanDeleteResponse",
    "BookBase", "BookCreate", "BookUpdate", "BookResponse",
    "BookCandidate", "BookCandidateCreate",
    "LoanCreate", "LoanResponse", "LoanDetailResponse", "EligibilityResponse",
]
