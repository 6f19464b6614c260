import enum
from sqlalchemy import Column, String, Text, Enum
from circulation.database import Base, UTCDateTime


class BookStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    BORROWED = "BORROWED"
    UNAVAILABLE = "UNAVAILABLE"


class Library(Base):
    __tablename__ = "library"

    id = Column(String(36), primary_key=True)
    name = Column(String(200), nullable=False, index=True)
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    created_by = Column(String(100), nullable=False)
    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "location": self.location,
            "createdBy": self.created_by,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class Book(Base):
    __tablename__ = "book"

    id = Column(String(36), primary_key=True)
    # No FK constraint: the catalog manager owns referential rules
    library_id = Column(String(36), nullable=False, index=True)
    title = Column(String(500), nullable=False, index=True)
    author = Column(String(200), nullable=False)
    edition = Column(String(100), nullable=True)
    publication_date = Column(String(10), nullable=True)  # YYYY or YYYY-MM-DD
    isbn = Column(String(20), nullable=True)
    cover_image = Column(Text, nullable=True)  # URL or data URI
    status = Column(
        Enum(BookStatus, native_enum=False, length=20, name="book_status"),
        default=BookStatus.AVAILABLE,
        nullable=False,
        index=True,
    )
    added_by = Column(String(100), nullable=False)
    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "libraryId": self.library_id,
            "title": self.title,
            "author": self.author,
            "edition": self.edition,
            "publicationDate": self.publication_date,
            "isbn": self.isbn,
            "coverImage": self.cover_image,
            "status": self.status.value if self.status else None,
            "addedBy": self.added_by,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
