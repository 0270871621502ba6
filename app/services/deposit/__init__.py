"""
Deposit Services Module.

- intent_service: deposit intent creation, status and history queries
"""

from .intent_service import DepositInstructions, IntentService


__all__ = [
    "DepositInstructions",
    "IntentService",
]
