"""
Standard type definitions for database models.

Provides consistent types for monetary and timestamp fields across all models.
"""

from datetime import UTC, datetime

from sqlalchemy import DECIMAL, DateTime
from sqlalchemy.types import TypeDecorator

# Standard money type for amounts, balances, rewards
# Precision: 18 digits total, 8 after decimal point
# Suitable for: USDT amounts, balances, rewards
# Range: up to 9,999,999,999.99999999
MoneyType = DECIMAL(18, 8)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime stored in UTC.

    Backends without native timezone support (SQLite) return naive values;
    they are tagged as UTC on load so comparisons with utc_now() work.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value
