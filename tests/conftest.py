"""Shared fixtures: a file-backed SQLite database per test and a fake clock."""
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from core.database import init_db, make_session_factory
from patterns.domain_config import RentalConfig
from verticals.rentals.ledger import InventoryLedger
from verticals.rentals.models.schemas import BookCreate, Pricing, Stock
from verticals.rentals.reporting import ReportingAggregator
from verticals.rentals.service import CatalogService, RentalService
from verticals.rentals.workflow import BookStatus

T0 = datetime(2026, 3, 10, 5, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += timedelta(**delta)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'rentals.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger(session_factory):
    return InventoryLedger(session_factory)


@pytest.fixture
def catalog(session_factory, ledger):
    return CatalogService(session_factory, ledger)


@pytest.fixture
def rentals(session_factory, ledger, clock):
    return RentalService(session_factory, ledger, RentalConfig.default(), clock=clock)


@pytest.fixture
def reporting(session_factory, clock):
    return ReportingAggregator(session_factory, RentalConfig.default(), clock=clock)


@pytest.fixture
def make_book(catalog):
    async def _make(
        total: int = 1,
        available: int | None = None,
        status: BookStatus = BookStatus.AVAILABLE,
        title: str = "Dune",
        category: str = "sci-fi",
    ):
        return await catalog.create_book(BookCreate(
            title=title,
            author="Frank Herbert",
            category=category,
            status=status,
            stock=Stock(total=total, available=total if available is None else available),
            pricing=Pricing(day3=30.0, day5=45.0, day7=60.0),
        ))
    return _make
