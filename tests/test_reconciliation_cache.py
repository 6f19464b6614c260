from circulation.models import Book, Library
from circulation.services.reconciliation_cache import DELETE, REBUILD, UPSERT, ReconciliationCache


def test_catalog_writes_are_mirrored(components, catalog, library, make_book):
    book = make_book()
    assert components.cache.get(Library, library.id)["name"] == "Main Library"
    assert components.cache.get(Book, book.id)["title"] == "Clean Code"

    catalog.update_library(library.id, {"name": "Central Library"})
    assert [l["name"] for l in components.cache.libraries()] == ["Central Library"]


def test_snapshots_are_copies(components, library):
    snapshot = components.cache.get(Library, library.id)
    snapshot["name"] = "Tampered"
    assert components.cache.get(Library, library.id)["name"] == "Main Library"


def test_books_in_library_filters_and_sorts(components, catalog, library, make_book):
    other = catalog.create_library("Fiction Corner", created_by="admin")
    make_book("Refactoring", "Martin Fowler")
    make_book("Clean Code", "Robert C. Martin")
    make_book("The Hobbit", "J.R.R. Tolkien", library_id=other.id)

    titles = [b["title"] for b in components.cache.books_in_library(library.id)]
    assert titles == ["Clean Code", "Refactoring"]
    assert [b["title"] for b in components.cache.books_in_library(library.id, "fowler")] == ["Refactoring"]
    assert components.cache.books_in_library(library.id, "hobbit") == []


def test_subscribers_receive_changes(components, catalog, library, make_book):
    changes = []
    unsubscribe = components.cache.subscribe(changes.append)

    book = make_book()
    catalog.delete_book(book.id)
    unsubscribe()
    make_book("Refactoring", "Martin Fowler")

    assert [(c.kind, c.action) for c in changes] == [("Book", UPSERT), ("Book", DELETE)]
    assert changes[0].snapshot["id"] == book.id


def test_failing_subscriber_does_not_break_writes(components, catalog, library):
    def broken(change):
        raise RuntimeError("subscriber down")

    components.cache.subscribe(broken)
    catalog.update_library(library.id, {"location": "Building C"})
    assert catalog.get_library(library.id).location == "Building C"


def test_rebuild_from_store(components, library, make_book):
    make_book()
    fresh = ReconciliationCache()
    changes = []
    fresh.subscribe(changes.append)

    fresh.rebuild(components.store)

    assert fresh.get(Library, library.id)["name"] == "Main Library"
    assert len(fresh.list(Book)) == 1
    assert {c.action for c in changes} == {REBUILD}
    assert fresh.version == 1


def test_version_increments(components, catalog, library):
    before = components.cache.version
    catalog.update_library(library.id, {"description": "Tech"})
    components.cache.remove(Library, "missing")
    assert components.cache.version == before + 1
