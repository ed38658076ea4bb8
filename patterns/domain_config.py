"""Dataclass-based domain configuration pattern.

The rental domain defines its terms, fines and reporting settings as a
frozen dataclass. This gives you:
- Type safety (IDE autocompletion, mypy checking)
- Default values (sensible out-of-the-box)
- Immutability (frozen=True prevents accidental mutation)
- Easy overrides (from env vars)
"""

from dataclasses import dataclass, field


# ---------------------------------------------------------------------------
# Nested config sections
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TermConfig:
    """Rental terms. Each term has its own price column on the book."""

    allowed_days: tuple[int, ...] = (3, 5, 7)


@dataclass(frozen=True)
class FineConfig:
    """Late-return penalty."""

    per_day: float = 10.0  # per started day overdue


@dataclass(frozen=True)
class ReportingConfig:
    """Dashboard reporting settings."""

    timezone: str = "Asia/Bangkok"  # calendar day boundaries for ?date=
    all_dates_sentinel: str = "all"


# ---------------------------------------------------------------------------
# Top-level domain config
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RentalConfig:
    """Complete configuration for the rental vertical.

    Usage::

        config = RentalConfig.default()
        if days not in config.terms.allowed_days:
            reject()
    """

    terms: TermConfig = field(default_factory=TermConfig)
    fines: FineConfig = field(default_factory=FineConfig)
    reporting: ReportingConfig = field(default_factory=ReportingConfig)

    @classmethod
    def default(cls) -> "RentalConfig":
        """Create config with all defaults."""
        return cls()

    @classmethod
    def from_env(cls, prefix: str = "BOOKRENTAL_") -> "RentalConfig":
        """Create config from environment variables.

        Example: BOOKRENTAL_FINE_PER_DAY=20, BOOKRENTAL_REPORT_TIMEZONE=UTC
        """
        import os

        overrides = {}
        per_day = os.getenv(f"{prefix}FINE_PER_DAY")
        if per_day:
            overrides["fines"] = FineConfig(per_day=float(per_day))
        tz = os.getenv(f"{prefix}REPORT_TIMEZONE")
        if tz:
            overrides["reporting"] = ReportingConfig(timezone=tz)

        return cls(**overrides)
