"""Sample libraries and books for local development (``SEED_DEMO_DATA=true``)."""

import logging
from circulation.services.catalog import CatalogManager

logger = logging.getLogger(__name__)

DEMO_LIBRARIES = [
    {
        "name": "Main Library",
        "description": "The primary collection of technical books and resources",
        "location": "Building A, Floor 2",
        "books": [
            {"title": "Clean Code", "author": "Robert C. Martin", "edition": "1st Edition",
             "publication_date": "2008", "isbn": "978-0132350884"},
            {"title": "The Pragmatic Programmer", "author": "Andrew Hunt", "edition": "2nd Edition",
             "publication_date": "2019", "isbn": "978-0135957059"},
            {"title": "Design Patterns", "author": "Erich Gamma",
             "publication_date": "1994", "isbn": "978-0201633610"},
        ],
    },
    {
        "name": "Design Library",
        "description": "Books about UX, UI, and graphic design",
        "location": "Building B, Floor 3",
        "books": [
            {"title": "Don't Make Me Think", "author": "Steve Krug", "edition": "3rd Edition",
             "publication_date": "2014", "isbn": "978-0321965516"},
            {"title": "The Design of Everyday Things", "author": "Don Norman",
             "publication_date": "2013", "isbn": "978-0465050659"},
            {"title": "Refactoring UI", "author": "Adam Wathan", "publication_date": "2018"},
        ],
    },
    {
        "name": "Fiction Corner",
        "description": "Novels and fiction for leisure reading",
        "location": "Lounge Area",
        "books": [
            {"title": "The Hobbit", "author": "J.R.R. Tolkien",
             "publication_date": "1937", "isbn": "978-0547928227"},
            {"title": "1984", "author": "George Orwell",
             "publication_date": "1949", "isbn": "978-0451524935"},
            {"title": "To Kill a Mockingbird", "author": "Harper Lee",
             "publication_date": "1960", "isbn": "978-0061120084"},
            {"title": "The Great Gatsby", "author": "F. Scott Fitzgerald",
             "publication_date": "1925", "isbn": "978-0743273565"},
        ],
    },
]


def seed_demo_data(catalog: CatalogManager, actor_id: str) -> int:
    """Create the demo catalog when no library exists yet. Returns books created."""
    if catalog.list_libraries():
        logger.info("Libraries already present, skipping demo seed")
        return 0

    created = 0
    for spec in DEMO_LIBRARIES:
        library = catalog.create_library(
            spec["name"],
            created_by=actor_id,
            description=spec["description"],
            location=spec["location"],
        )
        for book in spec["books"]:
            catalog.create_book(library.id, added_by=actor_id, **book)
            created += 1

    logger.info(f"Seeded {len(DEMO_LIBRARIES)} libraries with {created} books")
    return created
