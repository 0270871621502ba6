"""
Exchange gateway package.

Access to the custodial exchange: deposit history, deposit address,
withdrawal submission and withdrawal history.
"""

from app.services.exchange.base import (
    DepositEvent,
    ExchangeGateway,
    ExchangeWithdrawal,
    WithdrawalReceipt,
)
from app.services.exchange.binance import BinanceGateway
from app.services.exchange.errors import (
    ExchangeError,
    ExchangeRequestNotSentError,
    ExchangeTimeoutError,
)

__all__ = [
    "BinanceGateway",
    "DepositEvent",
    "ExchangeError",
    "ExchangeGateway",
    "ExchangeRequestNotSentError",
    "ExchangeTimeoutError",
    "ExchangeWithdrawal",
    "WithdrawalReceipt",
]
