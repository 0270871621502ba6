"""
Deposit intent service.

Issues deposit intents: a unique expected amount per waiting intent, a
deposit address, and instructions sent to the user. Also answers status
and history queries for intents.
"""

import random
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.business_constants import (
    CENT,
    DEPOSIT_AMOUNT_MAX_ATTEMPTS,
    DEPOSIT_AMOUNT_MAX_CENTS,
    DEPOSIT_AMOUNT_MIN_CENTS,
    Category,
    round_money,
)
from app.config.settings import settings
from app.models.deposit_intent import DepositIntent
from app.models.enums import IntentStatus
from app.repositories.deposit_intent_repository import DepositIntentRepository
from app.repositories.user_repository import UserRepository
from app.services.exchange.base import ExchangeGateway
from app.services.notification import NotificationService
from app.utils.datetime_utils import utc_now
from app.utils.exceptions import (
    AmountGenerationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)


@dataclass
class DepositInstructions:
    """What the user needs to make the deposit."""

    intent: DepositIntent
    address: str | None
    address_is_fallback: bool

    @property
    def amount(self) -> Decimal:
        return self.intent.expected_amount


class IntentService:
    """
    Deposit intent service.

    The expected amount is the only key that ties an exchange deposit to a
    user, so two waiting intents never share one. The partial unique index
    on waiting amounts backs the in-code check.
    """

    def __init__(
        self,
        session: AsyncSession,
        gateway: ExchangeGateway,
        notifier: NotificationService,
        clock: Callable[[], datetime] = utc_now,
        rng: random.Random | None = None,
    ) -> None:
        self.session = session
        self.gateway = gateway
        self.notifier = notifier
        self.clock = clock
        self.rng = rng or random.SystemRandom()
        self.intent_repo = DepositIntentRepository(session)
        self.user_repo = UserRepository(session)

    async def create_intent(
        self,
        user_id: int,
        category: str | None = None,
        base_amount: Decimal | None = None,
    ) -> DepositInstructions:
        """
        Create a deposit intent for user.

        Args:
            user_id: Owner
            category: Plan category being purchased (Silver/Gold/Platinum)
            base_amount: Plan price; also the floor of the amount band

        Returns:
            DepositInstructions with the persisted intent and address

        Raises:
            NotFoundError: Unknown user
            ValidationError: Bad category or base amount
            ConflictError: User already has an active intent
            AmountGenerationError: Amount band exhausted
        """
        self._validate_request(category, base_amount)

        user = await self.user_repo.get_by_id(user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")

        now = self.clock()

        # Intents past expiry that the sweep has not reached yet do not
        # block a new one.
        expired = await self.intent_repo.expire_stale_for_user(user_id, now)
        if expired:
            await self.session.commit()
            logger.info(
                "Expired stale intents before creating a new one",
                extra={"user_id": user_id, "expired": expired},
            )

        await self._ensure_no_active_intent(user_id, now)

        floor = (
            round_money(base_amount)
            if base_amount is not None
            else settings.deposit_amount_floor
        )
        intent = await self._insert_with_unique_amount(
            user_id, floor, category, base_amount, now
        )

        address, is_fallback = await self._resolve_address(intent)
        intent.deposit_address = address
        intent.address_is_fallback = is_fallback
        await self.session.commit()

        logger.info(
            "Deposit intent created",
            extra={
                "user_id": user_id,
                "intent_id": intent.id,
                "expected_amount": str(intent.expected_amount),
                "category": category,
                "address_is_fallback": is_fallback,
            },
        )

        user = await self.user_repo.get_by_id(user_id)
        if address:
            await self.notifier.notify_deposit_instructions(
                user, intent, address
            )
        if is_fallback:
            await self.notifier.notify_admins_fallback_address(
                user, intent, address
            )

        return DepositInstructions(
            intent=intent,
            address=address,
            address_is_fallback=is_fallback,
        )

    def _validate_request(
        self, category: str | None, base_amount: Decimal | None
    ) -> None:
        if category is not None and category not in Category.ALL:
            raise ValidationError(
                f"Unknown category: {category}", code="invalid_category"
            )
        if base_amount is not None and base_amount <= 0:
            raise ValidationError(
                "Base amount must be positive", code="invalid_base_amount"
            )

    async def _ensure_no_active_intent(
        self, user_id: int, now: datetime
    ) -> None:
        active = await self.intent_repo.get_active_for_user(user_id, now)
        if active:
            raise ConflictError(
                "You already have an active deposit request. "
                "Complete it or wait until it expires.",
                code="active_intent_exists",
            )

    def _candidate_amounts(self, floor: Decimal) -> list[Decimal]:
        """Random order over the whole band, one attempt per value."""
        cents = list(
            range(DEPOSIT_AMOUNT_MIN_CENTS, DEPOSIT_AMOUNT_MAX_CENTS + 1)
        )
        self.rng.shuffle(cents)
        return [
            (floor + CENT * c).quantize(CENT)
            for c in cents[:DEPOSIT_AMOUNT_MAX_ATTEMPTS]
        ]

    async def _insert_with_unique_amount(
        self,
        user_id: int,
        floor: Decimal,
        category: str | None,
        base_amount: Decimal | None,
        now: datetime,
    ) -> DepositIntent:
        """
        Insert the intent with the first free amount.

        A unique violation means either another request took the amount
        first (try the next one) or this user got an intent concurrently
        (conflict).
        """
        for amount in self._candidate_amounts(floor):
            if await self.intent_repo.is_amount_waiting(amount):
                continue

            try:
                intent = await self.intent_repo.create(
                    user_id=user_id,
                    expected_amount=amount,
                    base_amount=base_amount,
                    category=category,
                    coin=settings.deposit_coin,
                    network=settings.deposit_network,
                    status=IntentStatus.WAITING.value,
                    created_at=now,
                    expires_at=now + timedelta(
                        minutes=settings.deposit_intent_ttl_minutes
                    ),
                )
                await self.session.commit()
                return intent
            except IntegrityError:
                await self.session.rollback()
                logger.debug(
                    "Intent insert collided, retrying",
                    extra={"user_id": user_id, "amount": str(amount)},
                )
                await self._ensure_no_active_intent(user_id, now)

        logger.error(
            "Deposit amount band exhausted",
            extra={"user_id": user_id, "floor": str(floor)},
        )
        raise AmountGenerationError(
            "Too many pending deposits right now, please try again shortly."
        )

    async def _resolve_address(
        self, intent: DepositIntent
    ) -> tuple[str | None, bool]:
        """Ask the exchange for the address; fall back to the static one."""
        try:
            address = await self.gateway.get_deposit_address(
                intent.coin, intent.network
            )
            return address, False
        except Exception as e:
            logger.warning(
                "Exchange deposit address unavailable, using fallback",
                extra={
                    "intent_id": intent.id,
                    "error": str(e),
                    "fallback_configured": bool(
                        settings.fallback_deposit_address
                    ),
                },
            )
            return settings.fallback_deposit_address, True

    async def get_deposit_status(self, user_id: int) -> DepositIntent | None:
        """
        Get the user's active intent.

        A waiting intent found past its expiry is expired on the spot.
        """
        intent = await self.intent_repo.get_latest_active_for_user(user_id)
        if intent is None:
            return None

        now = self.clock()
        if not intent.is_active(now):
            await self.intent_repo.expire_stale_for_user(user_id, now)
            await self.session.commit()
            return None
        return intent

    async def get_deposit_history(
        self, user_id: int, limit: int = 20
    ) -> list[DepositIntent]:
        """Get the user's intents, newest first."""
        return await self.intent_repo.get_history(user_id, limit=limit)

    async def list_intents(
        self,
        page: int = 1,
        per_page: int = 20,
        status: str | None = None,
    ) -> tuple[list[DepositIntent], int]:
        """
        List all intents for operators.

        Returns:
            Tuple of (items, total_count)
        """
        if status is not None and status not in {s.value for s in IntentStatus}:
            raise ValidationError(f"Unknown status: {status}")
        filters = {"status": status} if status else {}
        return await self.intent_repo.find_paginated(
            page=page, per_page=per_page, **filters
        )
