import logging

from circulation.services.events import (
    EventBus,
    LibraryDeleted,
    LoanCreated,
    audit_log_handler,
)


def test_loan_events_carry_loan_fields(components, circulation, library, make_book, clock):
    book = make_book()
    loan = circulation.create_loan("alice", book.id, library.id)
    circulation.return_loan(loan.id)

    created, returned = components.published[-2:]
    assert created.name == "LoanCreated"
    assert (created.loan_id, created.book_id, created.user_id) == (loan.id, book.id, "alice")
    assert returned.name == "LoanReturned"
    assert returned.returned_at == clock()


def test_to_dict_serializes_datetimes(clock):
    event = LibraryDeleted(occurred_at=clock(), library_id="lib-1", library_name="Main Library")
    assert event.to_dict() == {
        "event": "LibraryDeleted",
        "occurred_at": clock().isoformat(),
        "library_id": "lib-1",
        "library_name": "Main Library",
    }


def test_failing_handler_is_logged_and_skipped(clock, caplog):
    bus = EventBus()
    received = []

    def broken(event):
        raise RuntimeError("sink offline")

    bus.subscribe(broken)
    bus.subscribe(received.append)
    event = LibraryDeleted(occurred_at=clock(), library_id="lib-1")

    with caplog.at_level(logging.ERROR):
        bus.publish(event)

    assert received == [event]
    assert "sink offline" in caplog.text


def test_failing_handler_does_not_undo_the_loan(components, circulation, library, make_book):
    def broken(event):
        raise RuntimeError("sink offline")

    components.events.subscribe(broken)
    loan = circulation.create_loan("alice", make_book().id, library.id)
    assert circulation.get_loan(loan.id).id == loan.id


def test_unsubscribe(clock):
    bus = EventBus()
    received = []
    unsubscribe = bus.subscribe(received.append)
    unsubscribe()
    unsubscribe()
    bus.publish(LibraryDeleted(occurred_at=clock(), library_id="lib-1"))
    assert received == []


def test_audit_log_handler(clock, caplog):
    event = LoanCreated(
        occurred_at=clock(),
        loan_id="loan-1",
        book_id="book-1",
        user_id="alice",
        library_id="lib-1",
        due_date=clock(),
    )
    with caplog.at_level(logging.INFO, logger="circulation.services.events"):
        audit_log_handler(event)
    assert "[audit]" in caplog.text
    assert "loan-1" in caplog.text
