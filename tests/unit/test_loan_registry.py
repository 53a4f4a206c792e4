import pytest

from app.core.errors import AlreadyBorrowed, AlreadyReturned, Forbidden, NotFound
from app.db.gateway import open_gateway
from app.db.models import Loan, LoanStatus
from app.services.loan_registry import LoanRegistry


def test_open_then_close(make_book, make_user):
    book_id = make_book()
    user_id = make_user()

    with open_gateway() as gateway:
        registry = LoanRegistry(gateway)
        assert not registry.has_active_loan(user_id, book_id)
        loan = registry.open(user_id, book_id)
        gateway.commit()

    assert loan.status == LoanStatus.ACTIVE
    assert loan.returned_at is None

    with open_gateway() as gateway:
        registry = LoanRegistry(gateway)
        assert registry.has_active_loan(user_id, book_id)
        assert registry.count_active(book_id) == 1
        closed = registry.close(loan.id, user_id)
        gateway.commit()

    assert closed.status == LoanStatus.RETURNED
    assert closed.returned_at is not None


def test_second_active_loan_for_same_pair_is_rejected(make_book, make_user):
    book_id = make_book(total_copies=5)
    user_id = make_user()

    with open_gateway() as gateway:
        registry = LoanRegistry(gateway)
        registry.open(user_id, book_id)
        with pytest.raises(AlreadyBorrowed):
            registry.open(user_id, book_id)


def test_unique_index_guards_active_pair(make_book, make_user, db_session):
    """Aunque alguien salte la comprobación, la BD no admite dos activos."""
    book_id = make_book(total_copies=5)
    user_id = make_user()

    db_session.add(Loan(user_id=user_id, book_id=book_id, status=LoanStatus.ACTIVE))
    db_session.commit()

    with open_gateway() as gateway:
        registry = LoanRegistry(gateway)
        gateway.find_active_loan = lambda *_: None  # simula una comprobación obsoleta
        with pytest.raises(AlreadyBorrowed):
            registry.open(user_id, book_id)


def test_returned_loans_do_not_block_a_new_one(make_book, make_user):
    book_id = make_book()
    user_id = make_user()

    with open_gateway() as gateway:
        registry = LoanRegistry(gateway)
        first = registry.open(user_id, book_id)
        registry.close(first.id, user_id)
        second = registry.open(user_id, book_id)
        gateway.commit()

    assert second.id != first.id


def test_close_errors(make_book, make_user):
    book_id = make_book()
    owner = make_user()
    stranger = make_user()

    with open_gateway() as gateway:
        registry = LoanRegistry(gateway)
        loan = registry.open(owner, book_id)
        gateway.commit()

    with open_gateway() as gateway:
        registry = LoanRegistry(gateway)
        with pytest.raises(NotFound):
            registry.close(999_999, owner)
        with pytest.raises(Forbidden):
            registry.close(loan.id, stranger)
        registry.close(loan.id, owner)
        with pytest.raises(AlreadyReturned):
            registry.close(loan.id, owner)


def test_history_is_newest_first(make_book, make_user):
    user_id = make_user()
    books = [make_book(), make_book()]

    with open_gateway() as gateway:
        registry = LoanRegistry(gateway)
        ids = [registry.open(user_id, b).id for b in books]
        gateway.commit()

    with open_gateway() as gateway:
        history = LoanRegistry(gateway).history_for_user(user_id)

    assert [loan.id for loan in history] == list(reversed(ids))
