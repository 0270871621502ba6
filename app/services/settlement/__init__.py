"""
Deposit settlement package.

Matches exchange deposits to waiting intents and applies their effects.
"""

from app.services.settlement.engine import (
    PollStats,
    SettlementEngine,
    SettlementOutcome,
)
from app.services.settlement.tx_cache import SeenTxCache

__all__ = [
    "PollStats",
    "SeenTxCache",
    "SettlementEngine",
    "SettlementOutcome",
]
