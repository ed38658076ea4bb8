"""Rental vertical configuration.

Re-exports RentalConfig from the patterns module, loaded from the
environment once at import.
"""

from patterns.domain_config import RentalConfig

config = RentalConfig.from_env()
