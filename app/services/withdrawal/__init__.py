"""
Withdrawal services package.

This package provides modular withdrawal management functionality:
- withdrawal_validator: Validation logic for withdrawal requests
  - withdrawal_basic_checks: Amount, address, network and balance checks
  - withdrawal_tier_checks: First-withdrawal, referral and tier cap checks
- withdrawal_balance_manager: Outbox reservation, compensation, recording
- withdrawal_request_handler: Withdrawal request submission
- withdrawal_reconciler: Resolution of interrupted submissions
- withdrawal_lifecycle_handler: Review decisions and queries
- withdrawal_status_sync: Exchange-driven transfer status

All components are re-exported for easy importing.
"""

from app.services.withdrawal.withdrawal_balance_manager import (
    WithdrawalBalanceManager,
)
from app.services.withdrawal.withdrawal_lifecycle_handler import (
    WithdrawalLifecycleHandler,
)
from app.services.withdrawal.withdrawal_reconciler import (
    WithdrawalReconciler,
)
from app.services.withdrawal.withdrawal_request_handler import (
    WithdrawalRequestHandler,
    WithdrawalResult,
)
from app.services.withdrawal.withdrawal_status_sync import (
    WithdrawalStatusSync,
)
from app.services.withdrawal.withdrawal_validator import (
    ValidationResult,
    WithdrawalValidator,
)


__all__ = [
    "WithdrawalBalanceManager",
    "WithdrawalValidator",
    "ValidationResult",
    "WithdrawalRequestHandler",
    "WithdrawalResult",
    "WithdrawalReconciler",
    "WithdrawalLifecycleHandler",
    "WithdrawalStatusSync",
]
