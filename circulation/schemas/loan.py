from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from typing import Optional
from datetime import datetime
from circulation.models.loan import LoanStatus

class LoanCreate(BaseModel):
    user_id: str
    book_id: str
    library_id: str

    class Config:
        alias_generator = to_camel
        populate_by_name = True

class LoanResponse(BaseModel):
    id: str
    bookId: str
    userId: str
    libraryId: str
    status: LoanStatus
    borrowedAt: datetime
    dueDate: Optional[datetime] = None
    returnedAt: Optional[datetime] = None
    createdAt: datetime
    updatedAt: datetime
    isOverdue: bool = False
    daysRemaining: Optional[int] = None

class LoanDetailResponse(LoanResponse):
    bookTitle: str
    bookAuthor: str
    bookCoverImage: Optional[str] = None
    libraryName: str

class EligibilityResponse(BaseModel):
    eligible: bool
    reason: Optional[str] = None
    message: Optional[str] = None
