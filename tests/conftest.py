"""Pytest configuration and shared fixtures for all tests."""

import os
import sys
from pathlib import Path

# Minimal environment for Settings; must be set before app imports
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "123456789:ABCdefGHIjklMNOpqrsTUVwxyz123456789")
os.environ.setdefault("ADMIN_TELEGRAM_IDS", "900001,900002")
os.environ.setdefault("BINANCE_API_KEY", "test-api-key")
os.environ.setdefault("BINANCE_API_SECRET", "test-api-secret")
os.environ.setdefault("FALLBACK_DEPOSIT_ADDRESS", "TFallbackDepositAddress")
os.environ.setdefault("LOG_FILE", "logs/test.log")

# Add project root to PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from datetime import UTC, datetime, timedelta  # noqa: E402
from decimal import Decimal  # noqa: E402
from unittest.mock import AsyncMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.models import Base, User  # noqa: E402
from app.services.exchange.base import (  # noqa: E402
    WITHDRAWAL_PROCESSING,
    DepositEvent,
    ExchangeGateway,
    ExchangeWithdrawal,
    WithdrawalReceipt,
)
from app.services.notification import (  # noqa: E402
    NotificationService,
    NotificationSink,
)

ADMIN_IDS = [900001, 900002]


class FakeClock:
    """Settable clock; call it to get the current time."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 15, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeGateway(ExchangeGateway):
    """In-memory exchange."""

    def __init__(self) -> None:
        self.address = "TExchangeDepositAddress"
        self.deposits: list[DepositEvent] = []
        self.withdrawals: list[ExchangeWithdrawal] = []
        self.created: list[dict] = []

        self.address_error: Exception | None = None
        self.history_error: Exception | None = None
        self.withdrawal_error: Exception | None = None
        self.withdrawal_history_error: Exception | None = None
        # Simulate a transfer that went through before the call failed
        self.execute_before_error = False

        self.history_calls = 0
        self._next_id = 1

    def add_deposit(
        self,
        tx_id: str,
        amount: str | Decimal,
        status: int = 1,
        network: str = "TRX",
    ) -> DepositEvent:
        event = DepositEvent(
            tx_id=tx_id, amount=Decimal(str(amount)), status=status, network=network
        )
        self.deposits.append(event)
        return event

    async def get_deposit_address(self, coin: str, network: str) -> str:
        if self.address_error:
            raise self.address_error
        return self.address

    async def get_deposit_history(self, start_time, end_time=None):
        self.history_calls += 1
        if self.history_error:
            raise self.history_error
        return list(self.deposits)

    def _record_withdrawal(self, amount, client_order_id) -> str:
        withdrawal_id = f"W{self._next_id}"
        self._next_id += 1
        self.withdrawals.append(
            ExchangeWithdrawal(
                id=withdrawal_id,
                client_order_id=client_order_id,
                amount=amount,
                status_code=4,
                state=WITHDRAWAL_PROCESSING,
            )
        )
        return withdrawal_id

    async def create_withdrawal(
        self, address, amount, network, client_order_id=None
    ) -> WithdrawalReceipt:
        self.created.append(
            {
                "address": address,
                "amount": amount,
                "network": network,
                "client_order_id": client_order_id,
            }
        )
        if self.withdrawal_error:
            if self.execute_before_error:
                self._record_withdrawal(amount, client_order_id)
            raise self.withdrawal_error
        return WithdrawalReceipt(
            id=self._record_withdrawal(amount, client_order_id)
        )

    async def get_withdrawal_history(self, start_time, end_time=None):
        if self.withdrawal_history_error:
            raise self.withdrawal_history_error
        return list(self.withdrawals)

    def set_withdrawal_state(self, withdrawal_id, status_code, state):
        self.withdrawals = [
            ExchangeWithdrawal(
                id=w.id,
                client_order_id=w.client_order_id,
                amount=w.amount,
                status_code=status_code,
                state=state,
                tx_id=w.tx_id,
            )
            if w.id == withdrawal_id
            else w
            for w in self.withdrawals
        ]


class RecordingSink(NotificationSink):
    """Keeps every message instead of sending it."""

    def __init__(self) -> None:
        self.messages: list[tuple[int, str, str]] = []

    async def send(self, recipient: int, subject: str, body: str) -> None:
        self.messages.append((recipient, subject, body))

    def subjects_for(self, recipient: int) -> list[str]:
        return [s for r, s, _ in self.messages if r == recipient]


@pytest_asyncio.fixture
async def db_engine():
    """In-memory SQLite engine with the full schema."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def notifier(sink):
    return NotificationService(sink, admin_ids=ADMIN_IDS)


@pytest.fixture
def create_user(session_factory):
    """Factory persisting a user in its own transaction."""
    counter = {"n": 0}

    async def _create(**kwargs) -> User:
        counter["n"] += 1
        n = counter["n"]
        data = {
            "name": f"User {n}",
            "email": f"user{n}@example.com",
            "telegram_id": 100000 + n,
            "balance": Decimal("0"),
        }
        data.update(kwargs)
        async with session_factory() as session:
            user = User(**data)
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user

    return _create


@pytest.fixture
def load(session_factory):
    """Read a row in a fresh session."""

    async def _load(model, id_):
        async with session_factory() as session:
            return await session.get(model, id_)

    return _load


@pytest.fixture
def mock_session():
    """Mock AsyncSession for tests without a database."""
    session = AsyncMock()
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session


@pytest.fixture
def mock_bot():
    """Mock Telegram Bot."""
    bot = AsyncMock()
    bot.send_message = AsyncMock()
    bot.session = AsyncMock()
    bot.session.close = AsyncMock()
    return bot
