"""Pydantic schemas for API request/response validation."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from verticals.rentals.workflow import BookStatus, PaymentStatus


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class Stock(BaseModel):
    total: int = Field(..., ge=0)
    available: int = Field(..., ge=0)

    @model_validator(mode="after")
    def available_within_total(self):
        if self.available > self.total:
            raise ValueError("available copies cannot exceed total copies")
        return self


class Pricing(BaseModel):
    day3: float = Field(..., ge=0)
    day5: float = Field(..., ge=0)
    day7: float = Field(..., ge=0)


class BookCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    author: str = Field(..., min_length=1, max_length=200)
    category: str = Field("general", min_length=1, max_length=100)
    description: Optional[str] = None
    cover_image: Optional[str] = None
    status: BookStatus = BookStatus.AVAILABLE
    stock: Stock
    pricing: Pricing

    def to_columns(self) -> dict:
        return {
            "title": self.title,
            "author": self.author,
            "category": self.category,
            "description": self.description,
            "cover_image": self.cover_image,
            "status": self.status.value,
            "stock_total": self.stock.total,
            "stock_available": self.stock.available,
            "price_day3": self.pricing.day3,
            "price_day5": self.pricing.day5,
            "price_day7": self.pricing.day7,
        }


class StockUpdate(BaseModel):
    """Only the owned total is editable; available follows through the ledger."""

    total: int = Field(..., ge=0)


class PricingUpdate(BaseModel):
    day3: Optional[float] = Field(None, ge=0)
    day5: Optional[float] = Field(None, ge=0)
    day7: Optional[float] = Field(None, ge=0)


class BookUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    author: Optional[str] = Field(None, min_length=1, max_length=200)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    cover_image: Optional[str] = None
    status: Optional[BookStatus] = None
    stock: Optional[StockUpdate] = None
    pricing: Optional[PricingUpdate] = None

    @field_validator("title", "author", "category", "status")
    @classmethod
    def omitted_not_null(cls, value):
        if value is None:
            raise ValueError("may be omitted but not set to null")
        return value

    def to_columns(self) -> dict:
        """Column updates for everything except stock."""
        columns = self.model_dump(
            exclude_unset=True, exclude={"stock", "pricing", "status"}
        )
        if self.status is not None:
            columns["status"] = self.status.value
        if self.pricing is not None:
            for term, price in self.pricing.model_dump(exclude_unset=True).items():
                if price is not None:
                    columns[f"price_{term}"] = price
        return columns


class RentRequest(BaseModel):
    book_id: str = Field(..., alias="bookId")
    days: int

    model_config = {"populate_by_name": True}


class PaymentStatusUpdate(BaseModel):
    status: PaymentStatus


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------

class ReportSummary(BaseModel):
    active_bookings: int = Field(..., serialization_alias="activeBookings")
    active_rentals: int = Field(..., serialization_alias="activeRentals")
    overdue_rentals: int = Field(..., serialization_alias="overdueRentals")
    revenue: float

