"""SQLAlchemy models for the rental vertical.

Each model inherits from Base and uses RecordMixin for ids and audit
timestamps. The to_dict() method provides a standard serialisation
interface used by services and routers.
"""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Float, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from core.models.base import Base, RecordMixin, UTCDateTime


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class Book(RecordMixin, Base):
    """A rentable title and its stock counters."""

    __tablename__ = "books"
    __table_args__ = (
        CheckConstraint("stock_total >= 0", name="ck_books_total_non_negative"),
        CheckConstraint("stock_available >= 0", name="ck_books_available_non_negative"),
        CheckConstraint(
            "stock_available <= stock_total", name="ck_books_available_within_total"
        ),
    )

    title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    author: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False, default="general")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    cover_image: Mapped[str | None] = mapped_column(String(500), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="available")

    stock_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    stock_available: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    price_day3: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    price_day5: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    price_day7: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    def price_for(self, days: int) -> float:
        """Fee for a term length. Only 3, 5 and 7 day terms are priced."""
        return {3: self.price_day3, 5: self.price_day5, 7: self.price_day7}[days]

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "title": self.title,
            "author": self.author,
            "category": self.category,
            "description": self.description,
            "cover_image": self.cover_image,
            "status": self.status,
            "stock": {"total": self.stock_total, "available": self.stock_available},
            "pricing": {
                "day3": self.price_day3,
                "day5": self.price_day5,
                "day7": self.price_day7,
            },
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Rental(RecordMixin, Base):
    """One member holding (or about to hold) one copy of a book."""

    __tablename__ = "rentals"
    __table_args__ = (
        CheckConstraint("fine >= 0", name="ck_rentals_fine_non_negative"),
    )

    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    book_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("books.id"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    payment_status: Mapped[str] = mapped_column(String(32), nullable=False)

    rental_days: Mapped[int] = mapped_column(Integer, nullable=False)
    borrow_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    due_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    return_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    cost: Mapped[float] = mapped_column(Float, nullable=False)
    fine: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "user_id": self.user_id,
            "book_id": str(self.book_id),
            "status": self.status,
            "payment_status": self.payment_status,
            "rental_days": self.rental_days,
            "borrow_date": _iso(self.borrow_date),
            "due_date": _iso(self.due_date),
            "return_date": _iso(self.return_date),
            "cost": self.cost,
            "fine": self.fine,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Payment(RecordMixin, Base):
    """Payment record owned by the payment collaborator, one per rental."""

    __tablename__ = "payments"

    rental_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("rentals.id"), nullable=False, unique=True
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "rental_id": str(self.rental_id),
            "user_id": self.user_id,
            "amount": self.amount,
            "status": self.status,
            "created_at": _iso(self.created_at),
        }
