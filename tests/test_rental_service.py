"""Test the rental lifecycle: booking, pickup, return, cancellation."""
import asyncio
import uuid
from datetime import timedelta

import pytest
from pydantic import ValidationError as SchemaError

from core.database import session_scope
from core.errors import (
    ConflictError,
    ConflictReason,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from verticals.rentals.models.schemas import BookUpdate, PricingUpdate, StockUpdate
from verticals.rentals.repository import PaymentRepository


async def _available(catalog, book_id) -> int:
    return (await catalog.get_book(book_id)).stock_available


async def _payment(session_factory, rental_id):
    async with session_scope(session_factory) as session:
        return await PaymentRepository(session).get_for_rental(rental_id)


async def _paid_and_picked_up(rentals, rental):
    await rentals.update_payment_status(rental.id, "paid")
    return await rentals.pickup(rental.id)


# -- rent --

@pytest.mark.asyncio
async def test_rent_books_a_copy(rentals, catalog, make_book, clock):
    book = await make_book(total=2)
    rental = await rentals.rent("alice", str(book.id), 3)

    assert rental.status == "booked"
    assert rental.payment_status == "pending"
    assert rental.user_id == "alice"
    assert rental.book_id == book.id
    assert rental.cost == 30.0
    assert rental.fine == 0
    assert rental.borrow_date == clock.now
    assert rental.due_date == clock.now + timedelta(days=3)
    assert await _available(catalog, book.id) == 1


@pytest.mark.asyncio
async def test_rent_prices_each_term(rentals, make_book):
    book = await make_book(total=3)
    costs = [(await rentals.rent("alice", book.id, days)).cost for days in (3, 5, 7)]
    assert costs == [30.0, 45.0, 60.0]


@pytest.mark.asyncio
async def test_rent_rejects_unpriced_term(rentals, catalog, make_book):
    book = await make_book(total=1)
    with pytest.raises(ValidationError):
        await rentals.rent("alice", book.id, 4)
    assert await _available(catalog, book.id) == 1


@pytest.mark.asyncio
async def test_rent_rejects_malformed_book_id(rentals):
    with pytest.raises(ValidationError, match="Invalid book id"):
        await rentals.rent("alice", "not-an-id", 3)


@pytest.mark.asyncio
async def test_rent_out_of_stock_creates_nothing(rentals, make_book):
    book = await make_book(total=1, available=0)
    with pytest.raises(ConflictError) as exc:
        await rentals.rent("alice", book.id, 3)
    assert exc.value.conflict_reason == ConflictReason.UNAVAILABLE
    assert await rentals.history("alice") == []


@pytest.mark.asyncio
async def test_cost_survives_price_change(rentals, catalog, make_book):
    book = await make_book(total=1)
    rental = await rentals.rent("alice", book.id, 3)
    await catalog.update_book(book.id, BookUpdate(pricing=PricingUpdate(day3=99.0)))

    [stored] = await rentals.history("alice")
    assert stored.id == rental.id
    assert stored.cost == 30.0
    assert (await catalog.get_book(book.id)).price_day3 == 99.0


# -- pickup --

@pytest.mark.asyncio
async def test_pickup_requires_payment(rentals, make_book):
    book = await make_book()
    rental = await rentals.rent("alice", book.id, 3)
    with pytest.raises(ConflictError) as exc:
        await rentals.pickup(rental.id)
    assert exc.value.conflict_reason == ConflictReason.PAYMENT_NOT_CONFIRMED


@pytest.mark.asyncio
async def test_pickup_keeps_due_date(rentals, make_book, clock):
    book = await make_book()
    rental = await rentals.rent("alice", book.id, 5)
    due = rental.due_date

    clock.advance(days=1)
    await rentals.update_payment_status(rental.id, "paid")
    picked = await rentals.pickup(rental.id)

    assert picked.status == "rented"
    assert picked.borrow_date == clock.now
    assert picked.due_date == due


@pytest.mark.asyncio
async def test_pickup_twice_is_a_status_conflict(rentals, make_book):
    book = await make_book()
    rental = await rentals.rent("alice", book.id, 3)
    await _paid_and_picked_up(rentals, rental)
    with pytest.raises(ConflictError) as exc:
        await rentals.pickup(rental.id)
    assert exc.value.conflict_reason == ConflictReason.INVALID_STATUS


# -- return --

@pytest.mark.asyncio
async def test_late_return_charges_fine_and_restocks(rentals, catalog, make_book, clock):
    book = await make_book(total=1)
    rental = await rentals.rent("alice", book.id, 3)
    await _paid_and_picked_up(rentals, rental)
    assert await _available(catalog, book.id) == 0

    clock.now = rental.due_date + timedelta(hours=25)
    returned = await rentals.return_book(rental.id)

    assert returned.status == "returned"
    assert returned.fine == 20
    assert returned.return_date == clock.now
    assert await _available(catalog, book.id) == 1


@pytest.mark.asyncio
async def test_on_time_return_is_free(rentals, make_book, clock):
    book = await make_book()
    rental = await rentals.rent("alice", book.id, 7)
    await _paid_and_picked_up(rentals, rental)

    clock.now = rental.due_date
    assert (await rentals.return_book(rental.id)).fine == 0


@pytest.mark.asyncio
async def test_return_requires_rented(rentals, make_book):
    book = await make_book()
    rental = await rentals.rent("alice", book.id, 3)
    with pytest.raises(ConflictError) as exc:
        await rentals.return_book(rental.id)
    assert exc.value.conflict_reason == ConflictReason.INVALID_STATUS


@pytest.mark.asyncio
async def test_second_return_does_not_release_again(rentals, catalog, make_book):
    book = await make_book(total=2)
    first = await rentals.rent("alice", book.id, 3)
    await rentals.rent("bob", book.id, 3)
    await _paid_and_picked_up(rentals, first)

    await rentals.return_book(first.id)
    with pytest.raises(ConflictError):
        await rentals.return_book(first.id)
    assert await _available(catalog, book.id) == 1


# -- cancel --

@pytest.mark.asyncio
async def test_cancel_by_other_member_is_forbidden(rentals, catalog, make_book):
    book = await make_book()
    rental = await rentals.rent("alice", book.id, 3)
    with pytest.raises(ForbiddenError):
        await rentals.cancel(rental.id, "mallory")
    assert await _available(catalog, book.id) == 0


@pytest.mark.asyncio
async def test_cancel_after_pickup_is_a_conflict(rentals, make_book):
    book = await make_book()
    rental = await rentals.rent("alice", book.id, 3)
    await _paid_and_picked_up(rentals, rental)
    with pytest.raises(ConflictError) as exc:
        await rentals.cancel(rental.id, "alice")
    assert exc.value.conflict_reason == ConflictReason.INVALID_STATUS


@pytest.mark.asyncio
async def test_cancel_unpaid_booking(rentals, catalog, make_book, session_factory):
    book = await make_book()
    rental = await rentals.rent("alice", book.id, 3)
    cancelled = await rentals.cancel(rental.id, "alice")

    assert cancelled.status == "cancelled"
    assert cancelled.payment_status == "cancelled"
    assert await _available(catalog, book.id) == 1
    assert await _payment(session_factory, rental.id) is None


@pytest.mark.asyncio
async def test_cancel_paid_booking_flags_refund(rentals, make_book, session_factory):
    book = await make_book()
    rental = await rentals.rent("alice", book.id, 3)
    await rentals.update_payment_status(rental.id, "paid")

    cancelled = await rentals.cancel(rental.id, "alice")

    assert cancelled.payment_status == "refund_verification"
    payment = await _payment(session_factory, rental.id)
    assert payment.status == "refund_verification"
    assert payment.amount == 30.0


@pytest.mark.asyncio
async def test_cancel_twice_releases_once(rentals, catalog, make_book):
    book = await make_book(total=2)
    rental = await rentals.rent("alice", book.id, 3)
    await rentals.rent("bob", book.id, 3)

    await rentals.cancel(rental.id, "alice")
    with pytest.raises(ConflictError):
        await rentals.cancel(rental.id, "alice")
    assert await _available(catalog, book.id) == 1


# -- lookups --

@pytest.mark.asyncio
async def test_unknown_rental_is_not_found(rentals):
    missing = uuid.uuid4()
    with pytest.raises(NotFoundError):
        await rentals.pickup(missing)
    with pytest.raises(NotFoundError):
        await rentals.return_book(missing)
    with pytest.raises(NotFoundError):
        await rentals.cancel(missing, "alice")


@pytest.mark.asyncio
async def test_malformed_rental_id_is_rejected(rentals):
    for op in (rentals.pickup, rentals.return_book):
        with pytest.raises(ValidationError):
            await op("12345")
    with pytest.raises(ValidationError):
        await rentals.cancel("12345", "alice")


@pytest.mark.asyncio
async def test_history_newest_first(rentals, make_book, clock):
    book = await make_book(total=3)
    older = await rentals.rent("alice", book.id, 3)
    clock.advance(hours=1)
    newer = await rentals.rent("alice", book.id, 5)
    await rentals.rent("bob", book.id, 7)

    history = await rentals.history("alice")
    assert [r.id for r in history] == [newer.id, older.id]


@pytest.mark.asyncio
async def test_overdue_lists_late_rented_copies(rentals, make_book, clock):
    book = await make_book(total=3)
    late = await rentals.rent("alice", book.id, 3)
    await _paid_and_picked_up(rentals, late)
    await rentals.rent("bob", book.id, 3)

    assert await rentals.overdue() == []
    clock.advance(days=4)
    assert [r.id for r in await rentals.overdue()] == [late.id]


# -- payment seam --

@pytest.mark.asyncio
async def test_payment_confirmation_creates_record(rentals, make_book, session_factory):
    book = await make_book()
    rental = await rentals.rent("alice", book.id, 5)
    updated = await rentals.update_payment_status(rental.id, "paid")

    assert updated.payment_status == "paid"
    payment = await _payment(session_factory, rental.id)
    assert payment.status == "paid"
    assert payment.amount == 45.0
    assert payment.user_id == "alice"


@pytest.mark.asyncio
async def test_refund_settles_after_cancel(rentals, make_book, session_factory):
    book = await make_book()
    rental = await rentals.rent("alice", book.id, 3)
    await rentals.update_payment_status(rental.id, "paid")
    await rentals.cancel(rental.id, "alice")

    refunded = await rentals.update_payment_status(rental.id, "refunded")
    assert refunded.payment_status == "refunded"
    assert (await _payment(session_factory, rental.id)).status == "refunded"


@pytest.mark.asyncio
async def test_payment_cannot_be_confirmed_on_cancelled(rentals, make_book):
    book = await make_book()
    rental = await rentals.rent("alice", book.id, 3)
    await rentals.cancel(rental.id, "alice")
    with pytest.raises(ConflictError):
        await rentals.update_payment_status(rental.id, "paid")


@pytest.mark.asyncio
async def test_unknown_payment_status(rentals, make_book):
    book = await make_book()
    rental = await rentals.rent("alice", book.id, 3)
    with pytest.raises(ValidationError):
        await rentals.update_payment_status(rental.id, "bounced")


# -- end to end --

@pytest.mark.asyncio
async def test_last_copy_changes_hands(rentals, catalog, make_book):
    book = await make_book(total=1)

    a = await rentals.rent("A", book.id, 3)
    assert a.cost == book.price_day3
    assert await _available(catalog, book.id) == 0

    with pytest.raises(ConflictError) as exc:
        await rentals.rent("B", book.id, 3)
    assert exc.value.conflict_reason == ConflictReason.UNAVAILABLE

    cancelled = await rentals.cancel(a.id, "A")
    assert cancelled.payment_status == "cancelled"
    assert await _available(catalog, book.id) == 1

    b = await rentals.rent("B", book.id, 3)
    assert b.status == "booked"
    assert await _available(catalog, book.id) == 0


# -- concurrent transitions --

@pytest.mark.asyncio
async def test_concurrent_returns_release_once(rentals, catalog, make_book):
    book = await make_book(total=2)
    first = await rentals.rent("alice", book.id, 3)
    second = await rentals.rent("bob", book.id, 3)
    await _paid_and_picked_up(rentals, first)
    await _paid_and_picked_up(rentals, second)

    results = await asyncio.gather(
        rentals.return_book(first.id),
        rentals.return_book(first.id),
        return_exceptions=True,
    )

    conflicts = [r for r in results if isinstance(r, ConflictError)]
    assert len(conflicts) == 1
    assert conflicts[0].conflict_reason == ConflictReason.INVALID_STATUS
    assert await _available(catalog, book.id) == 1


@pytest.mark.asyncio
async def test_concurrent_cancels_release_once(rentals, catalog, make_book):
    book = await make_book(total=2)
    rental = await rentals.rent("alice", book.id, 3)
    await rentals.rent("bob", book.id, 3)

    results = await asyncio.gather(
        rentals.cancel(rental.id, "alice"),
        rentals.cancel(rental.id, "alice"),
        return_exceptions=True,
    )

    assert sum(isinstance(r, ConflictError) for r in results) == 1
    assert await _available(catalog, book.id) == 1


@pytest.mark.asyncio
async def test_cancel_racing_pickup_keeps_stock_consistent(rentals, catalog, make_book):
    book = await make_book(total=1)
    rental = await rentals.rent("alice", book.id, 3)
    await rentals.update_payment_status(rental.id, "paid")

    results = await asyncio.gather(
        rentals.cancel(rental.id, "alice"),
        rentals.pickup(rental.id),
        return_exceptions=True,
    )

    assert sum(isinstance(r, ConflictError) for r in results) == 1
    [stored] = await rentals.history("alice")
    expected = {"cancelled": 1, "rented": 0}[stored.status]
    assert await _available(catalog, book.id) == expected


# -- catalog --

@pytest.mark.asyncio
async def test_book_update_applies_columns_and_total_together(catalog, make_book):
    book = await make_book(total=2)
    updated = await catalog.update_book(
        book.id, BookUpdate(title="Dune Messiah", stock=StockUpdate(total=4))
    )
    assert updated.title == "Dune Messiah"
    assert (updated.stock_total, updated.stock_available) == (4, 4)


@pytest.mark.asyncio
async def test_refused_total_leaves_book_untouched(rentals, catalog, make_book):
    book = await make_book(total=3)
    await rentals.rent("alice", book.id, 3)
    await rentals.rent("bob", book.id, 3)

    with pytest.raises(ConflictError) as exc:
        await catalog.update_book(
            book.id, BookUpdate(title="Renamed", stock=StockUpdate(total=1))
        )
    assert exc.value.conflict_reason == ConflictReason.STOCK_IN_USE

    current = await catalog.get_book(book.id)
    assert current.title == "Dune"
    assert (current.stock_total, current.stock_available) == (3, 1)


def test_book_update_rejects_null_required_columns():
    for field in ("title", "author", "category", "status"):
        with pytest.raises(SchemaError):
            BookUpdate.model_validate({field: None, "stock": {"total": 5}})
    assert BookUpdate.model_validate({"description": None}).to_columns() == {"description": None}


@pytest.mark.asyncio
async def test_delete_unrented_book(catalog, make_book):
    book = await make_book()
    assert await catalog.delete_book(book.id) == "Dune"
    with pytest.raises(NotFoundError):
        await catalog.get_book(book.id)
    with pytest.raises(NotFoundError):
        await catalog.delete_book(book.id)


@pytest.mark.asyncio
async def test_delete_refused_once_rented(rentals, catalog, make_book):
    book = await make_book(total=2)
    rental = await rentals.rent("alice", book.id, 3)
    await rentals.cancel(rental.id, "alice")

    with pytest.raises(ConflictError) as exc:
        await catalog.delete_book(book.id)
    assert exc.value.conflict_reason == ConflictReason.HAS_RENTALS
    assert (await catalog.get_book(book.id)).stock_available == 2


@pytest.mark.asyncio
async def test_search_filters_by_category(catalog, make_book):
    await make_book(title="Dune")
    poems = await make_book(title="Dune Poems", category="poetry")

    books, total = await catalog.search_books(category="poetry")
    assert total == 1
    assert [b.id for b in books] == [poems.id]

    books, total = await catalog.search_books("dune", category="poetry")
    assert [b.id for b in books] == [poems.id]
    assert (await catalog.search_books("dune"))[1] == 2
