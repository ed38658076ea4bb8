"""Inventory ledger: the only writer of a book's stock counters.

Every operation is one conditional UPDATE ... RETURNING statement, so two
concurrent reservations can never both take the last copy and no
read-then-write window exists. Each runs in its own committed unit of work
unless the caller passes a session to join.
"""

import logging
from uuid import UUID

from sqlalchemy import case, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.database import session_scope
from core.errors import ConflictError, ConflictReason, NotFoundError
from verticals.rentals.models.db_models import Book
from verticals.rentals.workflow import BookStatus

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "Book is not available for rent"


class InventoryLedger:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def reserve(self, book_id: UUID) -> Book:
        """Take one copy. Returns the post-decrement book.

        A missing id, zero stock and a disabled title all fail the same
        way so callers cannot map the catalog.
        """
        stmt = (
            update(Book)
            .where(
                Book.id == book_id,
                Book.stock_available > 0,
                Book.status == BookStatus.AVAILABLE.value,
            )
            .values(stock_available=Book.stock_available - 1)
            .returning(Book)
        )
        async with session_scope(self.session_factory) as session:
            book = (await session.execute(stmt)).scalars().one_or_none()

        if book is None:
            logger.info("reserve rejected book=%s", book_id)
            raise ConflictError(NOT_AVAILABLE, ConflictReason.UNAVAILABLE)
        logger.info(
            "reserved book=%s available=%d/%d",
            book_id, book.stock_available, book.stock_total,
        )
        return book

    async def release(self, book_id: UUID, session: AsyncSession | None = None) -> Book | None:
        """Put one copy back, never past the total.

        Given a session, the increment commits together with the caller's
        other writes in that unit of work.
        """
        if session is None:
            async with session_scope(self.session_factory) as own:
                return await self.release(book_id, session=own)

        stmt = (
            update(Book)
            .where(Book.id == book_id)
            .values(
                stock_available=case(
                    (Book.stock_available < Book.stock_total, Book.stock_available + 1),
                    else_=Book.stock_total,
                )
            )
            .returning(Book)
            .execution_options(synchronize_session=False, populate_existing=True)
        )
        book = (await session.execute(stmt)).scalars().one_or_none()

        if book is None:
            logger.warning("release skipped, book=%s no longer exists", book_id)
            return None
        logger.info(
            "released book=%s available=%d/%d",
            book_id, book.stock_available, book.stock_total,
        )
        return book

    async def adjust_total(
        self,
        book_id: UUID,
        new_total: int,
        session: AsyncSession | None = None,
    ) -> Book:
        """Change the number of owned copies, shifting available by the delta.

        Refused when the new total is below the copies currently out. Given a
        session, the change joins that unit of work and commits with it.
        """
        if session is None:
            async with session_scope(self.session_factory) as own:
                return await self.adjust_total(book_id, new_total, session=own)

        stmt = (
            update(Book)
            .where(
                Book.id == book_id,
                Book.stock_total - Book.stock_available <= new_total,
            )
            .values(
                stock_available=Book.stock_available + (new_total - Book.stock_total),
                stock_total=new_total,
            )
            .returning(Book)
            .execution_options(synchronize_session=False, populate_existing=True)
        )
        book = (await session.execute(stmt)).scalars().one_or_none()
        if book is None:
            exists = await session.get(Book, book_id)
            if exists is None:
                raise NotFoundError("Book not found")
            raise ConflictError(
                f"Cannot set total to {new_total}: "
                f"{exists.stock_total - exists.stock_available} copies are out",
                ConflictReason.STOCK_IN_USE,
            )

        logger.info(
            "adjusted book=%s available=%d/%d",
            book_id, book.stock_available, book.stock_total,
        )
        return book
