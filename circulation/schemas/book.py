from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from typing import Optional
from datetime import datetime
from circulation.models.book import BookStatus

class BookBase(BaseModel):
    edition: Optional[str] = None
    publication_date: Optional[str] = None  # YYYY or YYYY-MM-DD
    isbn: Optional[str] = None
    cover_image: Optional[str] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True

class BookCreate(BookBase):
    library_id: str
    title: str
    author: str

class BookUpdate(BookBase):
    title: Optional[str] = None
    author: Optional[str] = None
    # Administrative only: AVAILABLE <-> UNAVAILABLE
    status: Optional[BookStatus] = None

class BookCandidate(BookBase):
    """Metadata from an external catalog. Nothing is guaranteed present."""
    title: Optional[str] = None
    author: Optional[str] = None

class BookCandidateCreate(BookCandidate):
    library_id: str

class BookResponse(BaseModel):
    id: str
    libraryId: str
    title: str
    author: str
    edition: Optional[str] = None
    publicationDate: Optional[str] = None
    isbn: Optional[str] = None
    coverImage: Optional[str] = None
    status: BookStatus
    addedBy: str
    createdAt: datetime
    updatedAt: datetime
