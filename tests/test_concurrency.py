"""Racing circulation writes from several threads against one store."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from circulation.errors import ConflictError, IneligibleError, NotFoundError
from circulation.models import Book, BookStatus, Library, LoanRecord, LoanStatus


def run_together(*calls):
    """Start every call at the same moment; return (result, exception) pairs in order."""
    barrier = threading.Barrier(len(calls))

    def runner(call):
        barrier.wait()
        try:
            return call(), None
        except Exception as e:
            return None, e

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        futures = [pool.submit(runner, call) for call in calls]
        return [f.result() for f in futures]


def test_one_winner_when_many_users_borrow_the_same_book(components, circulation, library, make_book):
    book = make_book()
    users = [f"user-{i}" for i in range(8)]

    outcomes = run_together(*[
        (lambda u=u: circulation.create_loan(u, book.id, library.id)) for u in users
    ])

    loans = [loan for loan, error in outcomes if error is None]
    errors = [error for _, error in outcomes if error is not None]
    assert len(loans) == 1
    assert all(isinstance(e, IneligibleError) for e in errors)
    assert {e.reason for e in errors} == {"already borrowed"}

    active = components.store.scan(
        LoanRecord, LoanRecord.book_id == book.id, LoanRecord.status == LoanStatus.ACTIVE
    )
    assert [l.id for l in active] == [loans[0].id]
    assert components.store.get(Book, book.id).status == BookStatus.BORROWED


def test_borrow_ceiling_holds_under_parallel_requests(components, circulation, library, make_book):
    books = [make_book(f"Book {i}") for i in range(6)]

    outcomes = run_together(*[
        (lambda b=b: circulation.create_loan("alice", b.id, library.id)) for b in books
    ])

    loans = [loan for loan, error in outcomes if error is None]
    errors = [error for _, error in outcomes if error is not None]
    assert len(loans) == 3
    assert {e.reason for e in errors} == {"borrow limit reached"}
    assert components.store.count(
        LoanRecord, LoanRecord.user_id == "alice", LoanRecord.status == LoanStatus.ACTIVE
    ) == 3
    assert components.store.count(Book, Book.status == BookStatus.BORROWED) == 3


@pytest.mark.parametrize("attempt", range(5))
def test_library_delete_racing_a_loan(components, catalog, circulation, library, make_book, attempt):
    book = make_book()

    (loan, loan_error), (_, delete_error) = run_together(
        lambda: circulation.create_loan("alice", book.id, library.id),
        lambda: catalog.delete_library(library.id),
    )

    library_exists = components.store.get(Library, library.id) is not None
    active_loans = components.store.count(
        LoanRecord, LoanRecord.library_id == library.id, LoanRecord.status == LoanStatus.ACTIVE
    )

    if loan_error is None:
        # Loan won: the delete must have been refused
        assert isinstance(delete_error, ConflictError)
        assert library_exists
        assert active_loans == 1
    else:
        # Delete won: the loan saw the library gone
        assert isinstance(loan_error, NotFoundError)
        assert delete_error is None
        assert not library_exists
        assert active_loans == 0
        assert components.store.get(Book, book.id).status == BookStatus.AVAILABLE


def test_double_return_race_has_one_winner(catalog, circulation, library, make_book):
    book = make_book()
    loan = circulation.create_loan("alice", book.id, library.id)

    outcomes = run_together(*[(lambda: circulation.return_loan(loan.id)) for _ in range(4)])

    errors = [error for _, error in outcomes if error is not None]
    assert len(errors) == 3
    assert all(isinstance(e, ConflictError) and e.reason == "already returned" for e in errors)
    assert catalog.get_book(book.id).status == BookStatus.AVAILABLE


def test_cache_updates_follow_store_order(components, circulation, library, make_book):
    """A slow cache update from a borrow must not land after the return that follows it."""
    book = make_book()
    borrow_mirroring = threading.Event()
    release_borrow = threading.Event()
    loan_ids = []

    def stall_first_active_loan(change):
        if change.kind == "LoanRecord" and change.snapshot["status"] == "ACTIVE" and not loan_ids:
            loan_ids.append(change.entity_id)
            borrow_mirroring.set()
            release_borrow.wait(timeout=5)

    components.cache.subscribe(stall_first_active_loan)

    borrower = threading.Thread(target=circulation.create_loan, args=("alice", book.id, library.id))
    borrower.start()
    assert borrow_mirroring.wait(timeout=5)

    returner = threading.Thread(target=circulation.return_loan, args=(loan_ids[0],))
    returner.start()
    # The return waits on the book lock while the borrow is still mirroring
    returner.join(timeout=0.2)
    release_borrow.set()
    borrower.join(timeout=5)
    returner.join(timeout=5)

    assert components.store.get(Book, book.id).status == BookStatus.AVAILABLE
    assert components.cache.get(Book, book.id)["status"] == "AVAILABLE"
    assert components.cache.get(LoanRecord, loan_ids[0])["status"] == "RETURNED"
