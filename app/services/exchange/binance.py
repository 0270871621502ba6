"""
Binance gateway.

Signed calls to the Binance capital (wallet) API over aiohttp.
Every request carries a ``timestamp`` and an HMAC-SHA256 ``signature`` of
the query string; the API key travels in the ``X-MBX-APIKEY`` header.
"""

import asyncio
import hashlib
import hmac
import json
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any
from urllib.parse import urlencode

import aiohttp
from loguru import logger

from app.config.business_constants import (
    EXCHANGE_WITHDRAWAL_COMPLETED,
    EXCHANGE_WITHDRAWAL_FAILED,
)
from app.config.settings import settings
from app.services.exchange.base import (
    WITHDRAWAL_COMPLETED,
    WITHDRAWAL_FAILED,
    WITHDRAWAL_PROCESSING,
    DepositEvent,
    ExchangeGateway,
    ExchangeWithdrawal,
    WithdrawalReceipt,
)
from app.services.exchange.errors import (
    ExchangeError,
    ExchangeRequestNotSentError,
    ExchangeTimeoutError,
)
from app.utils.datetime_utils import from_millis, to_millis, utc_now

DEPOSIT_HISTORY_PATH = "/sapi/v1/capital/deposit/hisrec"
DEPOSIT_ADDRESS_PATH = "/sapi/v1/capital/deposit/address"
WITHDRAW_APPLY_PATH = "/sapi/v1/capital/withdraw/apply"
WITHDRAW_HISTORY_PATH = "/sapi/v1/capital/withdraw/history"


def map_withdrawal_status(status_code: int) -> str:
    """Collapse Binance withdrawal status codes to processing/completed/failed."""
    if status_code == EXCHANGE_WITHDRAWAL_COMPLETED:
        return WITHDRAWAL_COMPLETED
    if status_code in EXCHANGE_WITHDRAWAL_FAILED:
        return WITHDRAWAL_FAILED
    return WITHDRAWAL_PROCESSING


def _to_decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ExchangeError(f"Invalid amount in exchange response: {value!r}") from e


def parse_deposit(item: dict[str, Any]) -> DepositEvent:
    """Build a DepositEvent from one deposit history entry."""
    return DepositEvent(
        tx_id=str(item.get("txId") or ""),
        amount=_to_decimal(item.get("amount", "0")),
        status=int(item.get("status", -1)),
        network=str(item.get("network") or ""),
        coin=str(item.get("coin") or ""),
        insert_time=from_millis(item.get("insertTime")),
    )


def parse_withdrawal(item: dict[str, Any]) -> ExchangeWithdrawal:
    """Build an ExchangeWithdrawal from one withdrawal history entry."""
    status_code = int(item.get("status", -1))
    return ExchangeWithdrawal(
        id=str(item.get("id") or ""),
        client_order_id=item.get("withdrawOrderId") or None,
        amount=_to_decimal(item.get("amount", "0")),
        status_code=status_code,
        state=map_withdrawal_status(status_code),
        tx_id=item.get("txId") or None,
    )


class BinanceGateway(ExchangeGateway):
    """
    Binance implementation of the exchange gateway.

    One aiohttp session is reused for the gateway's lifetime; call
    ``close()`` on shutdown.
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_secret: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        coin: str | None = None,
    ) -> None:
        self.api_key = api_key or settings.binance_api_key or ""
        self.api_secret = api_secret or settings.binance_api_secret or ""
        self.base_url = (base_url or settings.binance_api_url).rstrip("/")
        self.timeout = aiohttp.ClientTimeout(
            total=timeout or settings.exchange_request_timeout
        )
        self.coin = coin or settings.deposit_coin
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def sign(self, query_string: str) -> str:
        """HMAC-SHA256 hex digest of the query string."""
        return hmac.new(
            self.api_secret.encode("utf-8"),
            query_string.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def build_query(self, params: dict[str, Any], timestamp: int) -> str:
        """Encode params with timestamp and append the signature."""
        payload = {k: v for k, v in params.items() if v is not None}
        payload["timestamp"] = timestamp
        query_string = urlencode(payload)
        return f"{query_string}&signature={self.sign(query_string)}"

    async def _request(
        self, method: str, path: str, params: dict[str, Any]
    ) -> Any:
        """
        Send a signed request.

        Returns:
            Parsed JSON body, or [] for an empty body

        Raises:
            ExchangeRequestNotSentError: missing credentials or unencodable
                parameters
            ExchangeTimeoutError: timeout or transport failure
            ExchangeError: non-2xx response or unparsable body
        """
        if not self.api_key or not self.api_secret:
            raise ExchangeRequestNotSentError(
                "Exchange credentials not configured"
            )
        try:
            query = self.build_query(params, to_millis(utc_now()))
        except (TypeError, ValueError) as e:
            raise ExchangeRequestNotSentError(
                f"Could not build request to {path}: {e}"
            ) from e
        url = f"{self.base_url}{path}?{query}"
        headers = {"X-MBX-APIKEY": self.api_key}

        session = await self._get_session()
        try:
            async with session.request(method, url, headers=headers) as response:
                text = await response.text()
                status = response.status
        except (asyncio.TimeoutError, aiohttp.ClientError) as e:
            logger.warning(
                "Exchange request failed in transport",
                extra={"path": path, "method": method, "error": str(e)},
            )
            raise ExchangeTimeoutError(
                f"Exchange request to {path} failed: {e!r}"
            ) from e

        if status >= 400:
            message, code = text, None
            try:
                body = json.loads(text)
                message = body.get("msg") or body.get("message") or text
                code = body.get("code")
            except (ValueError, AttributeError):
                pass
            logger.error(
                "Exchange API error response",
                extra={"path": path, "status": status, "error": message},
            )
            # 5xx: the exchange does not know whether it executed the request
            error_cls = ExchangeTimeoutError if status >= 500 else ExchangeError
            raise error_cls(
                f"Exchange API error ({status}): {message}",
                status=status,
                code=code,
            )

        if not text or not text.strip():
            logger.warning("Exchange returned empty response", extra={"path": path})
            return []

        try:
            return json.loads(text)
        except ValueError as e:
            raise ExchangeError(
                f"Invalid JSON response from exchange: {text[:100]}",
                status=status,
            ) from e

    async def get_deposit_address(self, coin: str, network: str) -> str:
        data = await self._request(
            "GET", DEPOSIT_ADDRESS_PATH, {"coin": coin, "network": network}
        )
        address = data.get("address") if isinstance(data, dict) else None
        if not address:
            raise ExchangeError("Exchange returned no deposit address")
        return address

    async def get_deposit_history(
        self,
        start_time: datetime,
        end_time: datetime | None = None,
    ) -> list[DepositEvent]:
        params = {
            "coin": self.coin,
            "startTime": to_millis(start_time),
            "endTime": to_millis(end_time) if end_time else None,
        }
        data = await self._request("GET", DEPOSIT_HISTORY_PATH, params)
        if not isinstance(data, list):
            raise ExchangeError("Unexpected deposit history payload")
        return [parse_deposit(item) for item in data]

    async def create_withdrawal(
        self,
        address: str,
        amount: Decimal,
        network: str,
        client_order_id: str | None = None,
    ) -> WithdrawalReceipt:
        params = {
            "coin": self.coin,
            "address": address,
            "amount": str(amount),
            "network": network,
            "withdrawOrderId": client_order_id,
        }
        data = await self._request("POST", WITHDRAW_APPLY_PATH, params)
        withdrawal_id = data.get("id") if isinstance(data, dict) else None
        if not withdrawal_id:
            raise ExchangeError("Exchange accepted withdrawal without an id")

        logger.info(
            "Exchange withdrawal submitted",
            extra={
                "withdrawal_id": withdrawal_id,
                "client_order_id": client_order_id,
                "amount": str(amount),
                "network": network,
            },
        )
        return WithdrawalReceipt(id=str(withdrawal_id))

    async def get_withdrawal_history(
        self,
        start_time: datetime,
        end_time: datetime | None = None,
    ) -> list[ExchangeWithdrawal]:
        params = {
            "coin": self.coin,
            "startTime": to_millis(start_time),
            "endTime": to_millis(end_time) if end_time else None,
        }
        data = await self._request("GET", WITHDRAW_HISTORY_PATH, params)
        if not isinstance(data, list):
            raise ExchangeError("Unexpected withdrawal history payload")
        return [parse_withdrawal(item) for item in data]
