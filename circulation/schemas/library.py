from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from typing import Optional
from datetime import datetime

class LibraryBase(BaseModel):
    description: Optional[str] = None
    location: Optional[str] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True

class LibraryCreate(LibraryBase):
    # Trimmed and length-checked by the catalog manager
    name: str

class LibraryUpdate(LibraryBase):
    name: Optional[str] = None

class LibraryResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    location: Optional[str] = None
    createdBy: str
    createdAt: datetime
    updatedAt: datetime

class CanDeleteResponse(BaseModel):
    libraryId: str
    canDelete: bool
    borrowedCount: int
