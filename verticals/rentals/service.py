"""Rental and catalog services.

RentalService coordinates the inventory ledger with the rental state
machine. A copy is taken at most once per booking and given back exactly
once per rental:

- rent: reserve a copy, then write the booking. No copy, no booking.
- pickup / return / cancel: validate on a read, then claim the transition
  with a conditional update of the rental. Return and cancel release the
  copy in the same unit of work as the claim, so only the request that
  wins the claim releases, and a failed write puts nothing back.

Reserve commits before the booking is written. A failure between the two
leaves a copy out of circulation until reconciled; it is not surfaced as a
request error.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.database import session_scope
from core.errors import (
    ConflictError,
    ConflictReason,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from core.models.base import utcnow
from patterns.domain_config import RentalConfig
from patterns.rules_engine import RuleResult
from patterns.workflow_states import WorkflowTransition
from verticals.rentals.ledger import InventoryLedger
from verticals.rentals.models.db_models import Book, Rental
from verticals.rentals.models.schemas import BookCreate, BookUpdate
from verticals.rentals.repository import BookRepository, PaymentRepository, RentalRepository
from verticals.rentals.rules import (
    check_cancellable,
    check_ownership,
    check_payment_confirmed,
    check_rental_term,
    check_status,
    compute_fine,
    evaluate_rules,
    reconcile_payment_on_cancel,
)
from verticals.rentals.workflow import (
    PaymentStatus,
    RentalStatus,
    payment_workflow,
    rental_workflow,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_CONFLICT_REASONS = {
    "payment_confirmed": ConflictReason.PAYMENT_NOT_CONFIRMED,
}


def parse_id(value: Any, label: str) -> UUID:
    """Parse a record id, rejecting malformed input before any lookup."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {label} id: {value!r}")


def _conflict(rule: RuleResult) -> ConflictError:
    reason = _CONFLICT_REASONS.get(rule.rule_name, ConflictReason.INVALID_STATUS)
    return ConflictError(rule.message, reason)


def _log_transition(record: WorkflowTransition, field: str = "status") -> None:
    logger.info(
        "rental %s %s %s -> %s by %s",
        record.workflow_id, field, record.from_state, record.to_state, record.actor,
    )


async def _load_rental(repo: RentalRepository, rental_id: UUID) -> Rental:
    rental = await repo.get(rental_id)
    if rental is None:
        raise NotFoundError("Rental not found")
    return rental


# ---------------------------------------------------------------------------
# Rental service
# ---------------------------------------------------------------------------

class RentalService:
    """Rental lifecycle operations. Each call is one request-sized unit."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ledger: InventoryLedger | None = None,
        config: RentalConfig | None = None,
        clock: Clock = utcnow,
    ):
        self.session_factory = session_factory
        self.ledger = ledger or InventoryLedger(session_factory)
        self.config = config or RentalConfig.default()
        self.clock = clock

    async def rent(self, user_id: str, book_id: Any, days: int) -> Rental:
        """Reserve a copy and open a booking for it."""
        book_uuid = parse_id(book_id, "book")
        term = check_rental_term(days, self.config.terms.allowed_days)
        if not term.passed:
            raise ValidationError(term.message)

        book = await self.ledger.reserve(book_uuid)

        now = self.clock()
        async with session_scope(self.session_factory) as session:
            rental = await RentalRepository(session).create({
                "user_id": user_id,
                "book_id": book.id,
                "status": RentalStatus.BOOKED.value,
                "payment_status": PaymentStatus.PENDING.value,
                "rental_days": days,
                "borrow_date": now,
                "due_date": now + timedelta(days=days),
                "cost": book.price_for(days),
                "fine": 0.0,
                "created_at": now,
            })

        logger.info(
            "rental %s booked user=%s book=%s days=%d cost=%.2f",
            rental.id, user_id, book.id, days, rental.cost,
        )
        return rental

    async def pickup(self, rental_id: Any, actor: str = "admin") -> Rental:
        """Hand over a paid booking. The due date set at booking stands."""
        rental_uuid = parse_id(rental_id, "rental")
        async with session_scope(self.session_factory) as session:
            rental = await _load_rental(RentalRepository(session), rental_uuid)

        checks = evaluate_rules(
            check_payment_confirmed(rental),
            check_status(rental, RentalStatus.BOOKED),
        )
        if not checks.all_passed:
            raise _conflict(checks.first_failure)

        now = self.clock()
        record = rental_workflow(rental).transition(RentalStatus.RENTED, actor=actor, at=now)
        rental = await self._claim(rental, record, {"borrow_date": now})

        _log_transition(record)
        return rental

    async def _claim(
        self,
        rental: Rental,
        record: WorkflowTransition,
        values: dict[str, Any],
        payment_status: PaymentStatus | None = None,
        release: bool = False,
    ) -> Rental:
        """Commit a transition only if the rental still holds the state it was checked in.

        The status claim, the payment record update and the copy's release
        commit as one unit. Losing the race to a concurrent request for the
        same rental is a status conflict and leaves the ledger untouched.
        """
        async with session_scope(self.session_factory) as session:
            claimed = await RentalRepository(session).claim_transition(
                rental.id,
                {"status": record.to_state, **values},
                status=RentalStatus(record.from_state),
                payment_status=rental.payment_status,
            )
            if claimed is not None:
                if payment_status == PaymentStatus.REFUND_VERIFICATION:
                    await PaymentRepository(session).set_status_for_rental(
                        rental.id, payment_status.value
                    )
                if release:
                    await self.ledger.release(claimed.book_id, session=session)

        if claimed is None:
            logger.info(
                "rental %s moved before %s -> %s", rental.id, record.from_state, record.to_state
            )
            raise ConflictError(
                f"Rental is no longer {record.from_state}", ConflictReason.INVALID_STATUS
            )
        return claimed

    async def return_book(self, rental_id: Any, actor: str = "admin") -> Rental:
        """Take a rented copy back, charging any late fine."""
        rental_uuid = parse_id(rental_id, "rental")
        async with session_scope(self.session_factory) as session:
            rental = await _load_rental(RentalRepository(session), rental_uuid)

        status = check_status(rental, RentalStatus.RENTED)
        if not status.passed:
            raise _conflict(status)

        now = self.clock()
        fine = compute_fine(rental.due_date, now, self.config.fines.per_day)
        record = rental_workflow(rental).transition(
            RentalStatus.RETURNED, actor=actor, metadata={"fine": fine}, at=now
        )
        rental = await self._claim(
            rental, record, {"return_date": now, "fine": fine}, release=True
        )

        _log_transition(record)
        if fine:
            logger.info("rental %s returned late, fine=%.2f", rental.id, fine)
        return rental

    async def cancel(self, rental_id: Any, user_id: str) -> Rental:
        """Owner cancels a booking before pickup; the copy goes back on the shelf."""
        rental_uuid = parse_id(rental_id, "rental")
        async with session_scope(self.session_factory) as session:
            rental = await _load_rental(RentalRepository(session), rental_uuid)

        owner = check_ownership(user_id, rental)
        if not owner.passed:
            logger.warning("rental %s cancel refused for user=%s", rental.id, user_id)
            raise ForbiddenError(owner.message)

        cancellable = check_cancellable(rental)
        if not cancellable.passed:
            raise _conflict(cancellable)

        payment_status = reconcile_payment_on_cancel(rental.payment_status)
        record = rental_workflow(rental).transition(
            RentalStatus.CANCELLED,
            actor=user_id,
            metadata={"payment_status": payment_status.value},
            at=self.clock(),
        )
        rental = await self._claim(
            rental,
            record,
            {"payment_status": payment_status.value},
            payment_status=payment_status,
            release=True,
        )

        _log_transition(record)
        return rental

    async def update_payment_status(
        self, rental_id: Any, status: Any, actor: str = "payments"
    ) -> Rental:
        """Entry point for the payment collaborator: confirm or settle a refund."""
        rental_uuid = parse_id(rental_id, "rental")
        try:
            new_status = PaymentStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown payment status: {status!r}")

        async with session_scope(self.session_factory) as session:
            rental = await _load_rental(RentalRepository(session), rental_uuid)

        if new_status == PaymentStatus.PAID:
            booked = check_status(rental, RentalStatus.BOOKED)
            if not booked.passed:
                raise _conflict(booked)

        workflow = payment_workflow(rental)
        if not workflow.can_transition(new_status):
            raise ConflictError(
                f"Cannot move payment from {rental.payment_status} to {new_status.value}",
                ConflictReason.INVALID_STATUS,
            )
        record = workflow.transition(new_status, actor=actor, at=self.clock())

        async with session_scope(self.session_factory) as session:
            claimed = await RentalRepository(session).claim_transition(
                rental.id,
                {"payment_status": record.to_state},
                status=RentalStatus(rental.status),
                payment_status=record.from_state,
            )
            if claimed is not None:
                await PaymentRepository(session).upsert_for_rental(claimed, record.to_state)

        if claimed is None:
            raise ConflictError(
                f"Rental changed while moving payment to {new_status.value}",
                ConflictReason.INVALID_STATUS,
            )
        _log_transition(record, field="payment")
        return claimed

    async def history(self, user_id: str) -> list[Rental]:
        """A member's rentals, newest first."""
        async with session_scope(self.session_factory) as session:
            return await RentalRepository(session).list_for_user(user_id)

    async def overdue(self) -> list[Rental]:
        async with session_scope(self.session_factory) as session:
            return await RentalRepository(session).list_overdue(self.clock())


# ---------------------------------------------------------------------------
# Catalog service
# ---------------------------------------------------------------------------

class CatalogService:
    """Book records the rental core reads from. Stock changes go through the ledger."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ledger: InventoryLedger | None = None,
    ):
        self.session_factory = session_factory
        self.ledger = ledger or InventoryLedger(session_factory)

    async def create_book(self, request: BookCreate) -> Book:
        async with session_scope(self.session_factory) as session:
            book = await BookRepository(session).create(request.to_columns())
        logger.info("book %s created total=%d", book.id, book.stock_total)
        return book

    async def get_book(self, book_id: Any) -> Book:
        book_uuid = parse_id(book_id, "book")
        async with session_scope(self.session_factory) as session:
            book = await BookRepository(session).get(book_uuid)
        if book is None:
            raise NotFoundError("Book not found")
        return book

    async def search_books(
        self,
        query: str | None = None,
        category: str | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[Book], int]:
        async with session_scope(self.session_factory) as session:
            return await BookRepository(session).search(
                query, category=category, page=page, limit=limit
            )

    async def update_book(self, book_id: Any, request: BookUpdate) -> Book:
        """Apply column edits and a new total as one unit: both land or neither."""
        book_uuid = parse_id(book_id, "book")
        async with session_scope(self.session_factory) as session:
            repo = BookRepository(session)
            book = await repo.get(book_uuid)
            if book is None:
                raise NotFoundError("Book not found")
            columns = request.to_columns()
            if columns:
                await repo.update(book, columns)
            if request.stock is not None:
                await self.ledger.adjust_total(book.id, request.stock.total, session=session)
                await session.refresh(book)
        return book

    async def delete_book(self, book_id: Any) -> str:
        """Remove a title that has never been rented. Returns the deleted title.

        Rentals keep a reference to their book for history and reporting,
        so a title with any rental on record stays and can be disabled instead.
        """
        book_uuid = parse_id(book_id, "book")
        async with session_scope(self.session_factory) as session:
            repo = BookRepository(session)
            title = await repo.delete_unreferenced(book_uuid)
            if title is None:
                if await repo.get(book_uuid) is None:
                    raise NotFoundError("Book not found")
                raise ConflictError(
                    "Book has rentals on record; set its status to unavailable instead",
                    ConflictReason.HAS_RENTALS,
                )
        logger.info("book %s deleted title=%r", book_uuid, title)
        return title
