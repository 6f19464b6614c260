from fastapi import APIRouter, Depends, Response, status
from typing import List
from circulation.dependencies import get_actor_id, get_catalog, get_circulation
from circulation.services.catalog import CatalogManager
from circulation.services.loans import CirculationManager
from circulation.schemas.book import BookCreate, BookUpdate, BookResponse, BookCandidateCreate
from circulation.schemas.loan import LoanResponse
from circulation.routes.loan import loan_response

router = APIRouter(prefix="/books", tags=["Books"])

@router.post("", response_model=BookResponse, status_code=status.HTTP_201_CREATED)
def create_book(
    payload: BookCreate,
    actor_id: str = Depends(get_actor_id),
    catalog: CatalogManager = Depends(get_catalog),
):
    """Add a book (one physical copy) to a library."""
    book = catalog.create_book(
        payload.library_id,
        title=payload.title,
        author=payload.author,
        added_by=actor_id,
        edition=payload.edition,
        publication_date=payload.publication_date,
        isbn=payload.isbn,
        cover_image=payload.cover_image,
    )
    return BookResponse(**book.to_dict())

@router.post("/from-candidate", response_model=BookResponse, status_code=status.HTTP_201_CREATED)
def create_book_from_candidate(
    payload: BookCandidateCreate,
    actor_id: str = Depends(get_actor_id),
    catalog: CatalogManager = Depends(get_catalog),
):
    """Add a book from external catalog metadata. Title and author are still required."""
    book = catalog.create_book_from_candidate(payload.library_id, payload, added_by=actor_id)
    return BookResponse(**book.to_dict())

@router.get("/{book_id}", response_model=BookResponse)
def get_book(book_id: str, catalog: CatalogManager = Depends(get_catalog)):
    """Get book details by ID."""
    return BookResponse(**catalog.get_book(book_id).to_dict())

@router.patch("/{book_id}", response_model=BookResponse)
def update_book(
    book_id: str,
    payload: BookUpdate,
    catalog: CatalogManager = Depends(get_catalog),
):
    """Partially update a book. Status may only toggle AVAILABLE/UNAVAILABLE."""
    book = catalog.update_book(book_id, payload.model_dump(exclude_unset=True))
    return BookResponse(**book.to_dict())

@router.delete("/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_book(book_id: str, catalog: CatalogManager = Depends(get_catalog)):
    """Delete a book. 409 while it is borrowed."""
    catalog.delete_book(book_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@router.get("/{book_id}/loans", response_model=List[LoanResponse])
def get_book_loans(book_id: str, circulation: CirculationManager = Depends(get_circulation)):
    """Lending history of a book, newest first."""
    return [loan_response(circulation, loan) for loan in circulation.loan_history_for_book(book_id)]
