"""Rental API routers: member and admin rental operations, catalog.

Demonstrates the standard router pattern:
- Caller identity from middleware (get_current_caller)
- Explicit authorization predicates at the top of each admin operation
- Services injected via FastAPI Depends
- Domain errors raised as core.errors and mapped by the app handler
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.middleware import get_current_caller
from core.database import async_session_factory
from core.errors import ForbiddenError
from core.identity import CallerIdentity
from verticals.rentals.config import config
from verticals.rentals.ledger import InventoryLedger
from verticals.rentals.models.schemas import (
    BookCreate,
    BookUpdate,
    PaymentStatusUpdate,
    RentRequest,
)
from verticals.rentals.reporting import ReportingAggregator
from verticals.rentals.rules import check_admin
from verticals.rentals.service import CatalogService, RentalService

router = APIRouter()


# ---------------------------------------------------------------------------
# Dependency factories
# ---------------------------------------------------------------------------

def get_rental_service() -> RentalService:
    return RentalService(async_session_factory, InventoryLedger(async_session_factory), config)


def get_catalog_service() -> CatalogService:
    return CatalogService(async_session_factory)


def get_reporting() -> ReportingAggregator:
    return ReportingAggregator(async_session_factory, config)


async def require_admin() -> CallerIdentity:
    caller = get_current_caller()
    result = check_admin(caller)
    if not result.passed:
        raise ForbiddenError(result.message)
    return caller


# ============================================================================
# Member Endpoints
# ============================================================================

@router.post("/rentals/rent", status_code=201)
async def rent_book(
    request: RentRequest,
    service: RentalService = Depends(get_rental_service),
):
    """Book a copy for 3, 5 or 7 days."""
    caller = get_current_caller()
    rental = await service.rent(caller.user_id, request.book_id, request.days)
    return rental.to_dict()


@router.get("/rentals/my-history")
async def my_history(service: RentalService = Depends(get_rental_service)):
    caller = get_current_caller()
    rentals = await service.history(caller.user_id)
    return {"data": [r.to_dict() for r in rentals], "count": len(rentals)}


@router.patch("/rentals/{rental_id}/cancel")
async def cancel_rental(
    rental_id: str,
    service: RentalService = Depends(get_rental_service),
):
    """Cancel one of your own bookings before pickup."""
    caller = get_current_caller()
    rental = await service.cancel(rental_id, caller.user_id)
    return rental.to_dict()


# ============================================================================
# Admin Endpoints
# ============================================================================

@router.get("/rentals/dashboard")
async def dashboard(
    date: Optional[str] = None,
    admin: CallerIdentity = Depends(require_admin),
    reporting: ReportingAggregator = Depends(get_reporting),
):
    """Counts and revenue for one day (YYYY-MM-DD) or everything (omit or "all")."""
    report = await reporting.report(date)
    return report.to_dict()


@router.get("/rentals/overdue")
async def overdue_rentals(
    admin: CallerIdentity = Depends(require_admin),
    service: RentalService = Depends(get_rental_service),
):
    rentals = await service.overdue()
    return {"data": [r.to_dict() for r in rentals], "count": len(rentals)}


@router.get("/rentals/admin/user-history/{user_id}")
async def user_history(
    user_id: str,
    admin: CallerIdentity = Depends(require_admin),
    service: RentalService = Depends(get_rental_service),
):
    rentals = await service.history(user_id)
    return {"data": [r.to_dict() for r in rentals], "count": len(rentals)}


@router.patch("/rentals/{rental_id}/pickup")
async def pickup_rental(
    rental_id: str,
    admin: CallerIdentity = Depends(require_admin),
    service: RentalService = Depends(get_rental_service),
):
    rental = await service.pickup(rental_id, actor=admin.user_id)
    return rental.to_dict()


@router.patch("/rentals/{rental_id}/return")
async def return_rental(
    rental_id: str,
    admin: CallerIdentity = Depends(require_admin),
    service: RentalService = Depends(get_rental_service),
):
    rental = await service.return_book(rental_id, actor=admin.user_id)
    return rental.to_dict()


@router.patch("/rentals/{rental_id}/payment")
async def update_payment(
    rental_id: str,
    request: PaymentStatusUpdate,
    admin: CallerIdentity = Depends(require_admin),
    service: RentalService = Depends(get_rental_service),
):
    """Record the payment collaborator's verdict on a rental's payment."""
    rental = await service.update_payment_status(
        rental_id, request.status, actor=admin.user_id
    )
    return rental.to_dict()


# ============================================================================
# Catalog Endpoints
# ============================================================================

@router.get("/books")
async def list_books(
    search: Optional[str] = None,
    category: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    catalog: CatalogService = Depends(get_catalog_service),
):
    books, total = await catalog.search_books(
        search, category=category, page=page, limit=limit
    )
    return {
        "data": [b.to_dict() for b in books],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": (total + limit - 1) // limit,
        },
    }


@router.get("/books/{book_id}")
async def get_book(
    book_id: str,
    catalog: CatalogService = Depends(get_catalog_service),
):
    book = await catalog.get_book(book_id)
    return book.to_dict()


@router.post("/books", status_code=201)
async def create_book(
    request: BookCreate,
    admin: CallerIdentity = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog_service),
):
    book = await catalog.create_book(request)
    return book.to_dict()


@router.patch("/books/{book_id}")
async def update_book(
    book_id: str,
    request: BookUpdate,
    admin: CallerIdentity = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog_service),
):
    """Edit details, pricing, status or the owned total of a title."""
    book = await catalog.update_book(book_id, request)
    return book.to_dict()


@router.delete("/books/{book_id}")
async def delete_book(
    book_id: str,
    admin: CallerIdentity = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog_service),
):
    """Delete a title with no rentals on record."""
    title = await catalog.delete_book(book_id)
    return {"message": "Book deleted", "deleted_book": title}
