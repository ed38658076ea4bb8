"""Rental repositories: async database access.

Extends BaseRepository with rental-specific queries: a member's history,
overdue listing, per-window counts for the dashboard, and the payment
status write used during cancellation.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import delete, exists, func, select, update

from patterns.repository import BaseRepository
from verticals.rentals.models.db_models import Book, Payment, Rental
from verticals.rentals.workflow import RentalStatus


# ---------------------------------------------------------------------------
# Book repository
# ---------------------------------------------------------------------------

class BookRepository(BaseRepository[Book]):
    """Read side of the catalog plus non-stock column updates."""

    model = Book

    async def search(
        self,
        query: str | None = None,
        category: str | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[Book], int]:
        """Case-insensitive title search; everything when query is blank."""
        if not query or not query.strip():
            return await self.list(page=page, limit=limit, filters={"category": category})

        pattern = f"%{query.strip()}%"
        stmt = select(Book).where(Book.title.ilike(pattern))
        count_stmt = select(func.count()).select_from(Book).where(Book.title.ilike(pattern))
        if category:
            stmt = stmt.where(Book.category == category)
            count_stmt = count_stmt.where(Book.category == category)

        offset = (page - 1) * limit
        stmt = stmt.order_by(Book.title).offset(offset).limit(limit)

        result = await self.session.execute(stmt)
        books = list(result.scalars().all())

        count_result = await self.session.execute(count_stmt)
        total = count_result.scalar() or 0

        return books, total

    async def delete_unreferenced(self, book_id: UUID) -> str | None:
        """Delete a title no rental points at. Returns its title, or None."""
        stmt = (
            delete(Book)
            .where(
                Book.id == book_id,
                ~exists().where(Rental.book_id == book_id),
            )
            .returning(Book.title)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Rental repository
# ---------------------------------------------------------------------------

def _created_between(stmt, window: tuple[datetime, datetime] | None):
    if window is None:
        return stmt
    start, end = window
    return stmt.where(Rental.created_at >= start, Rental.created_at <= end)


class RentalRepository(BaseRepository[Rental]):
    """Repository for rental records."""

    model = Rental

    async def list_for_user(self, user_id: str) -> list[Rental]:
        """A member's rentals, newest first."""
        stmt = (
            select(Rental)
            .where(Rental.user_id == user_id)
            .order_by(Rental.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_overdue(self, now: datetime) -> list[Rental]:
        """Rented copies past their due date, most overdue first."""
        stmt = (
            select(Rental)
            .where(
                Rental.status == RentalStatus.RENTED.value,
                Rental.due_date < now,
            )
            .order_by(Rental.due_date)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_created_between(
        self, window: tuple[datetime, datetime] | None
    ) -> list[Rental]:
        stmt = _created_between(select(Rental), window).order_by(Rental.created_at.desc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count(
        self,
        window: tuple[datetime, datetime] | None = None,
        status: RentalStatus | None = None,
        due_before: datetime | None = None,
    ) -> int:
        stmt = _created_between(select(func.count()).select_from(Rental), window)
        if status is not None:
            stmt = stmt.where(Rental.status == status.value)
        if due_before is not None:
            stmt = stmt.where(Rental.due_date < due_before)
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def claim_transition(
        self,
        rental_id: UUID,
        values: dict[str, Any],
        status: RentalStatus,
        payment_status: str | None = None,
    ) -> Rental | None:
        """Apply a state change only if the rental is still where the caller saw it.

        One conditional UPDATE ... RETURNING, so of two concurrent requests for
        the same move exactly one gets the row back. None means the rental
        moved on (or never existed).
        """
        stmt = update(Rental).where(Rental.id == rental_id, Rental.status == status.value)
        if payment_status is not None:
            stmt = stmt.where(Rental.payment_status == payment_status)
        stmt = stmt.values(**values).returning(Rental)
        result = await self.session.execute(stmt)
        return result.scalars().one_or_none()


# ---------------------------------------------------------------------------
# Payment repository
# ---------------------------------------------------------------------------

class PaymentRepository(BaseRepository[Payment]):
    """The slice of the payment collaborator's records the core touches."""

    model = Payment

    async def get_for_rental(self, rental_id: UUID) -> Payment | None:
        stmt = select(Payment).where(Payment.rental_id == rental_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def set_status_for_rental(self, rental_id: UUID, status: str) -> bool:
        """Update the status of the rental's payment, if it has one."""
        stmt = (
            update(Payment)
            .where(Payment.rental_id == rental_id)
            .values(status=status)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def upsert_for_rental(self, rental: Rental, status: str) -> Payment:
        payment = await self.get_for_rental(rental.id)
        if payment is None:
            data: dict[str, Any] = {
                "rental_id": rental.id,
                "user_id": rental.user_id,
                "amount": rental.cost,
                "status": status,
            }
            return await self.create(data)
        return await self.update(payment, {"status": status})
