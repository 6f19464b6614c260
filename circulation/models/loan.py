import enum
from sqlalchemy import Column, String, Enum
from circulation.database import Base, UTCDateTime


class LoanStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    RETURNED = "RETURNED"


class LoanRecord(Base):
    """A single borrowing episode. Append-only: returned, never deleted."""

    __tablename__ = "loan_record"

    id = Column(String(36), primary_key=True)
    book_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(100), nullable=False, index=True)
    library_id = Column(String(36), nullable=False, index=True)
    status = Column(
        Enum(LoanStatus, native_enum=False, length=20, name="loan_status"),
        default=LoanStatus.ACTIVE,
        nullable=False,
        index=True,
    )
    borrowed_at = Column(UTCDateTime, nullable=False)
    due_date = Column(UTCDateTime, nullable=True, index=True)
    returned_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "bookId": self.book_id,
            "userId": self.user_id,
            "libraryId": self.library_id,
            "status": self.status.value if self.status else None,
            "borrowedAt": self.borrowed_at.isoformat() if self.borrowed_at else None,
            "dueDate": self.due_date.isoformat() if self.due_date else None,
            "returnedAt": self.returned_at.isoformat() if self.returned_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
