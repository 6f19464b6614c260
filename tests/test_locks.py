import threading
import time

import pytest

from circulation.errors import LockTimeoutError
from circulation.services.locks import KeyedLocks, book_key, library_key, user_key


def test_hold_releases_all_keys():
    locks = KeyedLocks(timeout=1.0)
    with locks.hold(user_key("u1"), book_key("b1"), library_key("l1")):
        assert set(locks.active_keys()) == {("library", "l1"), ("book", "b1"), ("user", "u1")}
    assert locks.active_keys() == []


def test_duplicate_keys_are_held_once():
    locks = KeyedLocks(timeout=1.0)
    with locks.hold(book_key("b1"), book_key("b1")):
        assert locks.active_keys() == [("book", "b1")]


def test_timeout_when_key_is_held_elsewhere():
    locks = KeyedLocks(timeout=1.0)
    errors = []

    def contender():
        try:
            with locks.hold(book_key("b1"), timeout=0.05):
                pass
        except LockTimeoutError as e:
            errors.append(e)

    with locks.hold(book_key("b1")):
        worker = threading.Thread(target=contender)
        worker.start()
        worker.join()

    assert len(errors) == 1
    assert errors[0].code == "LOCK_TIMEOUT"
    assert errors[0].key == "book:b1"
    assert locks.active_keys() == []


def test_partial_acquisition_is_released_on_timeout():
    locks = KeyedLocks(timeout=1.0)
    done = threading.Event()

    def contender():
        # library:l1 is free, user:u1 is held by the main thread
        with pytest.raises(LockTimeoutError):
            with locks.hold(library_key("l1"), user_key("u1"), timeout=0.05):
                pass
        done.set()

    with locks.hold(user_key("u1")):
        worker = threading.Thread(target=contender)
        worker.start()
        worker.join()

    assert done.is_set()
    # library:l1 must be free again
    with locks.hold(library_key("l1"), timeout=0.05):
        pass


def test_opposite_request_orders_do_not_deadlock():
    locks = KeyedLocks(timeout=2.0)
    completed = []

    def worker(keys):
        for _ in range(50):
            with locks.hold(*keys):
                time.sleep(0)
        completed.append(keys)

    a = threading.Thread(target=worker, args=([user_key("u1"), book_key("b1"), library_key("l1")],))
    b = threading.Thread(target=worker, args=([library_key("l1"), book_key("b1"), user_key("u1")],))
    a.start()
    b.start()
    a.join()
    b.join()

    assert len(completed) == 2
