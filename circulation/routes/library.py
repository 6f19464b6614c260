from fastapi import APIRouter, Depends, Query, Response, status
from typing import List, Optional
from circulation.dependencies import get_actor_id, get_cache, get_catalog
from circulation.services.catalog import CatalogManager
from circulation.services.reconciliation_cache import ReconciliationCache
from circulation.schemas.library import LibraryCreate, LibraryUpdate, LibraryResponse, CanDeleteResponse
from circulation.schemas.book import BookResponse

router = APIRouter(prefix="/libraries", tags=["Libraries"])

@router.get("", response_model=List[LibraryResponse])
def list_libraries(cache: ReconciliationCache = Depends(get_cache)):
    """List libraries sorted by name (served from the reconciliation cache)."""
    return [LibraryResponse(**lib) for lib in cache.libraries()]

@router.post("", response_model=LibraryResponse, status_code=status.HTTP_201_CREATED)
def create_library(
    payload: LibraryCreate,
    actor_id: str = Depends(get_actor_id),
    catalog: CatalogManager = Depends(get_catalog),
):
    """Create a library."""
    library = catalog.create_library(
        payload.name,
        created_by=actor_id,
        description=payload.description,
        location=payload.location,
    )
    return LibraryResponse(**library.to_dict())

@router.get("/{library_id}", response_model=LibraryResponse)
def get_library(library_id: str, catalog: CatalogManager = Depends(get_catalog)):
    """Get library details by ID."""
    return LibraryResponse(**catalog.get_library(library_id).to_dict())

@router.patch("/{library_id}", response_model=LibraryResponse)
def update_library(
    library_id: str,
    payload: LibraryUpdate,
    catalog: CatalogManager = Depends(get_catalog),
):
    """Partially update a library. Only fields present in the body change."""
    library = catalog.update_library(library_id, payload.model_dump(exclude_unset=True))
    return LibraryResponse(**library.to_dict())

@router.delete("/{library_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_library(library_id: str, catalog: CatalogManager = Depends(get_catalog)):
    """Delete a library. 409 while any of its books is borrowed."""
    catalog.delete_library(library_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@router.get("/{library_id}/can-delete", response_model=CanDeleteResponse)
def can_delete_library(library_id: str, catalog: CatalogManager = Depends(get_catalog)):
    """Advisory deletion check. DELETE re-checks under lock."""
    borrowed = catalog.count_borrowed_in_library(library_id)
    return CanDeleteResponse(libraryId=library_id, canDelete=borrowed == 0, borrowedCount=borrowed)

@router.get("/{library_id}/books", response_model=List[BookResponse])
def list_library_books(
    library_id: str,
    search: Optional[str] = Query(None, description="Search by title or author"),
    cache: ReconciliationCache = Depends(get_cache),
    catalog: CatalogManager = Depends(get_catalog),
):
    """List a library's books sorted by title, optionally filtered."""
    catalog.get_library(library_id)
    return [BookResponse(**book) for book in cache.books_in_library(library_id, search)]
