"""Async repository pattern for database access.

Provides a generic base repository with get/create/list/update operations
and pagination. Entity repositories subclass this to add domain-specific
queries. Records are never deleted, so there is no delete operation.

Example: RentalRepository extending BaseRepository.
"""

from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.models.base import Base

# ---------------------------------------------------------------------------
# Type variable for model classes
# ---------------------------------------------------------------------------

ModelT = TypeVar("ModelT", bound=Base)

_IMMUTABLE_COLUMNS = ("id", "created_at")


# ---------------------------------------------------------------------------
# Base repository
# ---------------------------------------------------------------------------

class BaseRepository(Generic[ModelT]):
    """Generic async repository with get/create/list/update + pagination.

    Subclass and set `model` to your SQLAlchemy model::

        class RentalRepository(BaseRepository[Rental]):
            model = Rental

            async def list_for_user(self, user_id: str):
                stmt = select(self.model).where(self.model.user_id == user_id)
                result = await self.session.execute(stmt)
                return list(result.scalars().all())

    Methods return ORM instances; callers serialise with to_dict().
    """

    model: type[ModelT]

    def __init__(self, session: AsyncSession):
        self.session = session

    # -- List with pagination --

    async def list(
        self,
        page: int = 1,
        limit: int = 50,
        filters: dict[str, Any] | None = None,
    ) -> tuple[list[ModelT], int]:
        """List items with pagination and optional equality filters.

        Returns (items, total_count).
        """
        stmt = select(self.model)
        count_stmt = select(func.count()).select_from(self.model)

        if filters:
            for col_name, value in filters.items():
                if hasattr(self.model, col_name) and value is not None:
                    stmt = stmt.where(getattr(self.model, col_name) == value)
                    count_stmt = count_stmt.where(getattr(self.model, col_name) == value)

        offset = (page - 1) * limit
        stmt = stmt.order_by(self.model.created_at.desc()).offset(offset).limit(limit)

        result = await self.session.execute(stmt)
        items = list(result.scalars().all())

        count_result = await self.session.execute(count_stmt)
        total = count_result.scalar() or 0

        return items, total

    # -- Get by ID --

    async def get(self, item_id: UUID) -> ModelT | None:
        """Get a single item by ID."""
        return await self.session.get(self.model, item_id)

    # -- Create --

    async def create(self, data: dict[str, Any]) -> ModelT:
        """Create a new item."""
        item = self.model(**data)
        self.session.add(item)
        await self.session.flush()
        return item

    # -- Update --

    async def update(self, item: ModelT, data: dict[str, Any]) -> ModelT:
        """Apply column updates to a loaded item and flush."""
        for key, value in data.items():
            if hasattr(item, key) and key not in _IMMUTABLE_COLUMNS:
                setattr(item, key, value)

        await self.session.flush()
        return item
