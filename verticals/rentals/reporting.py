"""Dashboard rollups over rental records. Read-only."""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.database import session_scope
from core.errors import ValidationError
from core.models.base import utcnow
from patterns.domain_config import RentalConfig
from verticals.rentals.models.db_models import Rental
from verticals.rentals.models.schemas import ReportSummary
from verticals.rentals.repository import RentalRepository
from verticals.rentals.service import Clock
from verticals.rentals.workflow import PaymentStatus, RentalStatus

logger = logging.getLogger(__name__)


@dataclass
class Report:
    summary: ReportSummary
    transactions: list[Rental] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "summaryData": self.summary.model_dump(by_alias=True),
            "transactions": [r.to_dict() for r in self.transactions],
        }


def day_window(
    date_string: str | None, config: RentalConfig
) -> tuple[datetime, datetime] | None:
    """UTC bounds of one calendar day in the reporting time zone.

    None (or the "all" sentinel) means no date filter.
    """
    if not date_string or date_string == config.reporting.all_dates_sentinel:
        return None
    try:
        day = date.fromisoformat(date_string)
    except ValueError:
        raise ValidationError(f"Invalid report date {date_string!r}, expected YYYY-MM-DD")

    tz = ZoneInfo(config.reporting.timezone)
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day, time.max, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def revenue_of(rentals: list[Rental]) -> float:
    """Paid fees of rentals that were not cancelled; cancelled ones are owed back."""
    return sum(
        r.cost
        for r in rentals
        if r.payment_status == PaymentStatus.PAID.value
        and r.status != RentalStatus.CANCELLED.value
    )


class ReportingAggregator:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: RentalConfig | None = None,
        clock: Clock = utcnow,
    ):
        self.session_factory = session_factory
        self.config = config or RentalConfig.default()
        self.clock = clock

    async def report(self, date_string: str | None = None) -> Report:
        window = day_window(date_string, self.config)
        now = self.clock()

        async with session_scope(self.session_factory) as session:
            repo = RentalRepository(session)
            transactions = await repo.list_created_between(window)
            active_bookings = await repo.count(window, status=RentalStatus.BOOKED)
            active_rentals = await repo.count(window, status=RentalStatus.RENTED)
            overdue_rentals = await repo.count(
                window, status=RentalStatus.RENTED, due_before=now
            )

        summary = ReportSummary(
            active_bookings=active_bookings,
            active_rentals=active_rentals,
            overdue_rentals=overdue_rentals,
            revenue=revenue_of(transactions),
        )
        logger.debug("report date=%s rentals=%d", date_string or "all", len(transactions))
        return Report(summary=summary, transactions=transactions)
