"""
Ledger service package.

Balance, eligibility, points and referral payouts for users.
"""

from app.services.ledger.service import LedgerService

__all__ = [
    "LedgerService",
]
