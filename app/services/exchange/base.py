"""Exchange gateway interface and value types.

The settlement engine and the withdrawal processor only talk to the
custodial exchange through ``ExchangeGateway``; tests substitute a fake.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from app.config.business_constants import EXCHANGE_DEPOSIT_SUCCESS

__all__ = [
    "DepositEvent",
    "ExchangeGateway",
    "ExchangeWithdrawal",
    "WithdrawalReceipt",
    "WITHDRAWAL_PROCESSING",
    "WITHDRAWAL_COMPLETED",
    "WITHDRAWAL_FAILED",
]

WITHDRAWAL_PROCESSING = "processing"
WITHDRAWAL_COMPLETED = "completed"
WITHDRAWAL_FAILED = "failed"


@dataclass(frozen=True)
class DepositEvent:
    """A deposit reported by the exchange.

    Attributes:
        tx_id: On-chain transaction id
        amount: Deposited amount
        status: Exchange status code
        network: Network the deposit arrived on
        coin: Asset symbol
        insert_time: When the exchange registered the deposit
    """
    tx_id: str
    amount: Decimal
    status: int
    network: str
    coin: str = "USDT"
    insert_time: datetime | None = None

    @property
    def is_confirmed(self) -> bool:
        return self.status == EXCHANGE_DEPOSIT_SUCCESS


@dataclass(frozen=True)
class WithdrawalReceipt:
    """Exchange acknowledgement of a withdrawal submission."""
    id: str


@dataclass(frozen=True)
class ExchangeWithdrawal:
    """A withdrawal as listed in the exchange history.

    Attributes:
        id: Exchange withdrawal id
        client_order_id: withdrawOrderId supplied at submission, if any
        amount: Withdrawn amount
        status_code: Raw exchange status code
        state: processing | completed | failed
        tx_id: On-chain transaction id once broadcast
    """
    id: str
    client_order_id: str | None
    amount: Decimal
    status_code: int
    state: str
    tx_id: str | None = None


class ExchangeGateway(ABC):
    """Outbound calls to the custodial exchange.

    Implementations must bound every call with a timeout and raise
    ``ExchangeError`` on rejection and ``ExchangeTimeoutError`` when the
    outcome is unknown.
    """

    @abstractmethod
    async def get_deposit_address(self, coin: str, network: str) -> str:
        """Return the deposit address for coin on network."""

    @abstractmethod
    async def get_deposit_history(
        self,
        start_time: datetime,
        end_time: datetime | None = None,
    ) -> list[DepositEvent]:
        """Return deposits registered between start_time and end_time."""

    @abstractmethod
    async def create_withdrawal(
        self,
        address: str,
        amount: Decimal,
        network: str,
        client_order_id: str | None = None,
    ) -> WithdrawalReceipt:
        """Submit a withdrawal transfer."""

    @abstractmethod
    async def get_withdrawal_history(
        self,
        start_time: datetime,
        end_time: datetime | None = None,
    ) -> list[ExchangeWithdrawal]:
        """Return withdrawals applied between start_time and end_time."""

    async def close(self) -> None:
        """Release network resources."""
