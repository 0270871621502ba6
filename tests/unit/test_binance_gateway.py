"""
Tests for the Binance gateway helpers.

Covers request signing, failures before sending and parsing of history
entries; no network access.
"""

import hashlib
import hmac
from datetime import UTC, datetime
from decimal import Decimal

import pytest

from app.services.exchange import (
    BinanceGateway,
    ExchangeError,
    ExchangeRequestNotSentError,
    ExchangeTimeoutError,
)
from app.services.exchange.base import (
    WITHDRAWAL_COMPLETED,
    WITHDRAWAL_FAILED,
    WITHDRAWAL_PROCESSING,
)
from app.services.exchange.binance import (
    map_withdrawal_status,
    parse_deposit,
    parse_withdrawal,
)


@pytest.fixture
def gateway():
    return BinanceGateway(
        api_key="key",
        api_secret="secret",
        base_url="https://api.example.com/",
    )


class TestSigning:
    """HMAC-SHA256 signature of the query string."""

    def test_sign(self, gateway):
        expected = hmac.new(
            b"secret", b"coin=USDT&timestamp=1", hashlib.sha256
        ).hexdigest()

        assert gateway.sign("coin=USDT&timestamp=1") == expected

    def test_build_query_appends_timestamp_and_signature(self, gateway):
        query = gateway.build_query(
            {"coin": "USDT", "network": None, "amount": "1"}, 1700000000000
        )

        unsigned = "coin=USDT&amount=1&timestamp=1700000000000"
        assert query == f"{unsigned}&signature={gateway.sign(unsigned)}"

    def test_base_url_trailing_slash_removed(self, gateway):
        assert gateway.base_url == "https://api.example.com"


class TestNotSent:
    """Failures raised before the request leaves the process."""

    @pytest.mark.asyncio
    async def test_missing_credentials(self, gateway):
        gateway.api_secret = ""

        with pytest.raises(ExchangeRequestNotSentError) as exc_info:
            await gateway.create_withdrawal("TAddr", Decimal("1"), "TRX")

        assert not isinstance(exc_info.value, ExchangeTimeoutError)
        assert gateway._session is None

    @pytest.mark.asyncio
    async def test_unencodable_parameters(self, gateway, monkeypatch):
        def broken_query(params, timestamp):
            raise TypeError("not a valid non-string sequence")

        monkeypatch.setattr(gateway, "build_query", broken_query)

        with pytest.raises(ExchangeRequestNotSentError, match="withdraw/apply"):
            await gateway.create_withdrawal("TAddr", Decimal("1"), "TRX")

        assert gateway._session is None

class TestParsing:
    """History entries become value objects."""

    def test_parse_deposit(self):
        event = parse_deposit(
            {
                "txId": "0xabc",
                "amount": "3.47",
                "status": 1,
                "network": "TRX",
                "coin": "USDT",
                "insertTime": 1767528000000,
            }
        )

        assert event.tx_id == "0xabc"
        assert event.amount == Decimal("3.47")
        assert event.is_confirmed is True
        assert event.insert_time == datetime(2026, 1, 4, 12, 0, tzinfo=UTC)

    def test_parse_pending_deposit(self):
        event = parse_deposit({"txId": "0xabc", "amount": "3.47", "status": 0})

        assert event.is_confirmed is False

    def test_parse_deposit_rejects_garbage_amount(self):
        with pytest.raises(ExchangeError):
            parse_deposit({"txId": "0xabc", "amount": "n/a", "status": 1})

    def test_parse_withdrawal(self):
        withdrawal = parse_withdrawal(
            {
                "id": "b6ae22b3",
                "withdrawOrderId": "order-1",
                "amount": "5",
                "status": 6,
                "txId": "0xdef",
            }
        )

        assert withdrawal.id == "b6ae22b3"
        assert withdrawal.client_order_id == "order-1"
        assert withdrawal.amount == Decimal("5")
        assert withdrawal.status_code == 6
        assert withdrawal.state == WITHDRAWAL_COMPLETED
        assert withdrawal.tx_id == "0xdef"

    def test_parse_withdrawal_without_order_id(self):
        withdrawal = parse_withdrawal({"id": "1", "amount": "5", "status": 4})

        assert withdrawal.client_order_id is None
        assert withdrawal.state == WITHDRAWAL_PROCESSING


class TestStatusMapping:
    """Binance withdrawal status codes."""

    @pytest.mark.parametrize(
        ("code", "state"),
        [
            (0, WITHDRAWAL_PROCESSING),
            (1, WITHDRAWAL_FAILED),
            (2, WITHDRAWAL_PROCESSING),
            (3, WITHDRAWAL_FAILED),
            (4, WITHDRAWAL_PROCESSING),
            (5, WITHDRAWAL_FAILED),
            (6, WITHDRAWAL_COMPLETED),
        ],
    )
    def test_map(self, code, state):
        assert map_withdrawal_status(code) == state
