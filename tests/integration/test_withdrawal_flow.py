"""
Integration tests for withdrawal requests and the withdrawal outbox.

Covers:
- First withdrawal exact-amount rule and tiered validation
- Compensation when the exchange rejects a transfer
- Ambiguous outcome on timeout and its reconciliation
"""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from app.models import (
    ReferralReward,
    User,
    Withdrawal,
    WithdrawalSubmission,
)
from app.models.enums import ReviewStatus, SubmissionState, TransferStatus
from app.services.exchange import (
    ExchangeError,
    ExchangeRequestNotSentError,
    ExchangeTimeoutError,
)
from app.services.withdrawal import (
    WithdrawalReconciler,
    WithdrawalRequestHandler,
)

ADDRESS = "TQn9Y2khEsLJW1ChVWFMSMeRDow5KcbLSE"
ADMIN_ID = 900001


@pytest.fixture
def request_withdrawal(session_factory, gateway, notifier, clock):
    """Submit a withdrawal request in its own session."""

    async def _request(user_id, amount, address=ADDRESS, network="TRC20"):
        async with session_factory() as session:
            handler = WithdrawalRequestHandler(
                session, gateway, notifier, clock=clock
            )
            return await handler.request_withdrawal(
                user_id, Decimal(str(amount)), address, network
            )

    return _request


@pytest.fixture
def add_referral(session_factory, create_user):
    """Give a user one qualified referral."""

    async def _add(referrer: User) -> None:
        referred = await create_user(referrer_id=referrer.id)
        async with session_factory() as session:
            session.add(
                ReferralReward(
                    referrer_id=referrer.id,
                    referred_user_id=referred.id,
                    amount=Decimal("3"),
                    points=1000,
                )
            )
            await session.commit()

    return _add


@pytest.fixture
def all_submissions(session_factory):
    async def _all() -> list[WithdrawalSubmission]:
        async with session_factory() as session:
            result = await session.execute(
                select(WithdrawalSubmission).order_by(WithdrawalSubmission.id)
            )
            return list(result.scalars().all())

    return _all


@pytest.fixture
def withdrawal_count(session_factory):
    async def _count() -> int:
        async with session_factory() as session:
            result = await session.execute(
                select(func.count()).select_from(Withdrawal)
            )
            return result.scalar()

    return _count


@pytest.fixture
def reconciler(session_factory, gateway, notifier, clock):
    return WithdrawalReconciler(
        session_factory,
        gateway,
        notifier,
        clock=clock,
        reconcile_after_minutes=15,
    )


class TestFirstWithdrawal:
    """The first withdrawal must be exactly 1 USDT."""

    @pytest.mark.asyncio
    async def test_first_withdrawal_of_one_succeeds(
        self, request_withdrawal, create_user, gateway, sink, load,
        all_submissions,
    ):
        user = await create_user(balance=Decimal("10"), category="Gold")

        result = await request_withdrawal(user.id, "1")

        assert result.success is True
        assert result.error_code is None

        withdrawal = await load(Withdrawal, result.withdrawal.id)
        assert withdrawal.review_status == ReviewStatus.PENDING
        assert withdrawal.transfer_status == TransferStatus.PROCESSING
        assert withdrawal.external_tx_id == "W1"
        assert withdrawal.network == "TRX"
        assert withdrawal.amount == Decimal("1")

        assert (await load(User, user.id)).balance == Decimal("9")

        [submission] = await all_submissions()
        assert submission.state == SubmissionState.SUBMITTED
        assert submission.withdrawal_id == withdrawal.id
        assert submission.client_order_id == withdrawal.client_order_id

        assert gateway.created[0]["network"] == "TRX"
        assert gateway.created[0]["client_order_id"] == submission.client_order_id

    @pytest.mark.asyncio
    async def test_user_and_admins_are_notified(
        self, request_withdrawal, create_user, sink
    ):
        user = await create_user(balance=Decimal("10"), category="Gold")

        await request_withdrawal(user.id, "1")

        assert "Withdrawal submitted" in sink.subjects_for(user.telegram_id)
        assert "New withdrawal" in sink.subjects_for(ADMIN_ID)

    @pytest.mark.asyncio
    async def test_first_withdrawal_other_amount_rejected(
        self, request_withdrawal, create_user, gateway, load
    ):
        user = await create_user(balance=Decimal("10"), category="Gold")

        result = await request_withdrawal(user.id, "2")

        assert result.success is False
        assert result.error_code == "FIRST_WITHDRAWAL_AMOUNT"
        assert gateway.created == []
        assert (await load(User, user.id)).balance == Decimal("10")

    @pytest.mark.asyncio
    async def test_first_withdrawal_needs_balance(
        self, request_withdrawal, create_user
    ):
        user = await create_user(balance=Decimal("0.50"), category="Gold")

        result = await request_withdrawal(user.id, "1")

        assert result.error_code == "INSUFFICIENT_BALANCE"


class TestLaterWithdrawals:
    """Referral requirement, minimum and tier cap after the first one."""

    @pytest.mark.asyncio
    async def test_second_withdrawal_requires_referral(
        self, request_withdrawal, create_user, gateway, load
    ):
        user = await create_user(balance=Decimal("10"), category="Gold")
        assert (await request_withdrawal(user.id, "1")).success

        result = await request_withdrawal(user.id, "5")

        assert result.success is False
        assert result.error_code == "REFERRAL_REQUIRED"
        assert len(gateway.created) == 1
        assert (await load(User, user.id)).balance == Decimal("9")

    @pytest.mark.asyncio
    async def test_second_withdrawal_with_referral_succeeds(
        self, request_withdrawal, create_user, add_referral, load
    ):
        user = await create_user(balance=Decimal("10"), category="Gold")
        assert (await request_withdrawal(user.id, "1")).success
        await add_referral(user)

        result = await request_withdrawal(user.id, "5")

        assert result.success is True
        assert result.withdrawal.external_tx_id == "W2"
        assert (await load(User, user.id)).balance == Decimal("4")

    @pytest.mark.asyncio
    async def test_ambiguous_submission_counts_as_prior_withdrawal(
        self, request_withdrawal, create_user, gateway
    ):
        """A timed out first withdrawal may have gone through."""
        user = await create_user(balance=Decimal("10"), category="Gold")
        gateway.withdrawal_error = ExchangeTimeoutError("timeout")
        await request_withdrawal(user.id, "1")
        gateway.withdrawal_error = None

        result = await request_withdrawal(user.id, "1")

        assert result.error_code == "REFERRAL_REQUIRED"

    @pytest.mark.asyncio
    async def test_compensated_submission_does_not_count(
        self, request_withdrawal, create_user, gateway
    ):
        user = await create_user(balance=Decimal("10"), category="Gold")
        gateway.withdrawal_error = ExchangeError("rejected", status=400)
        await request_withdrawal(user.id, "1")
        gateway.withdrawal_error = None

        result = await request_withdrawal(user.id, "1")

        assert result.success is True

    @pytest.mark.asyncio
    async def test_below_minimum(
        self, request_withdrawal, create_user, add_referral
    ):
        user = await create_user(balance=Decimal("10"), category="Gold")
        assert (await request_withdrawal(user.id, "1")).success
        await add_referral(user)

        result = await request_withdrawal(user.id, "1.99")

        assert result.error_code == "MIN_AMOUNT"

    @pytest.mark.asyncio
    async def test_above_tier_cap(
        self, request_withdrawal, create_user, add_referral
    ):
        """Silver level 1 is capped at 10."""
        user = await create_user(balance=Decimal("100"), category="Silver")
        assert (await request_withdrawal(user.id, "1")).success
        await add_referral(user)

        result = await request_withdrawal(user.id, "10.01")

        assert result.error_code == "MAX_AMOUNT"
        assert (await request_withdrawal(user.id, "10")).success

    @pytest.mark.asyncio
    async def test_no_tier_without_category(
        self, request_withdrawal, create_user, add_referral
    ):
        user = await create_user(balance=Decimal("100"), category=None)
        assert (await request_withdrawal(user.id, "1")).success
        await add_referral(user)

        result = await request_withdrawal(user.id, "5")

        assert result.error_code == "NO_TIER"

    @pytest.mark.asyncio
    async def test_higher_level_raises_cap(
        self, request_withdrawal, create_user, add_referral
    ):
        user = await create_user(
            balance=Decimal("100"), category="Gold", level=3
        )
        assert (await request_withdrawal(user.id, "1")).success
        await add_referral(user)

        result = await request_withdrawal(user.id, "50")

        assert result.success is True


class TestRequestShape:
    """Checks that run before any user lookup."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("amount", "address", "network", "code"),
        [
            ("0", ADDRESS, "TRC20", "INVALID_AMOUNT"),
            ("-1", ADDRESS, "TRC20", "INVALID_AMOUNT"),
            ("1.001", ADDRESS, "TRC20", "INVALID_AMOUNT"),
            ("1", "", "TRC20", "MISSING_ADDRESS"),
            ("1", "   ", "TRC20", "MISSING_ADDRESS"),
            ("1", ADDRESS, "BEP20", "UNSUPPORTED_NETWORK"),
            ("1", ADDRESS, None, "UNSUPPORTED_NETWORK"),
        ],
    )
    async def test_invalid_request(
        self, request_withdrawal, create_user, amount, address, network, code
    ):
        user = await create_user(balance=Decimal("10"), category="Gold")

        result = await request_withdrawal(user.id, amount, address, network)

        assert result.success is False
        assert result.error_code == code

    @pytest.mark.asyncio
    async def test_network_alias_accepted(
        self, request_withdrawal, create_user
    ):
        user = await create_user(balance=Decimal("10"), category="Gold")

        result = await request_withdrawal(user.id, "1", network="trx")

        assert result.success is True

    @pytest.mark.asyncio
    async def test_unknown_user(self, request_withdrawal):
        result = await request_withdrawal(424242, "1")

        assert result.error_code == "USER_NOT_FOUND"


class TestExchangeOutcomes:
    """Outbox settlement for each exchange outcome."""

    @pytest.mark.asyncio
    async def test_rejection_restores_balance(
        self, request_withdrawal, create_user, gateway, load,
        all_submissions, withdrawal_count,
    ):
        user = await create_user(balance=Decimal("10"), category="Gold")
        gateway.withdrawal_error = ExchangeError(
            "Insufficient exchange balance", status=400, code=-4026
        )

        result = await request_withdrawal(user.id, "1")

        assert result.success is False
        assert result.error_code == "EXCHANGE_REJECTED"
        assert (await load(User, user.id)).balance == Decimal("10")
        assert await withdrawal_count() == 0

        [submission] = await all_submissions()
        assert submission.state == SubmissionState.COMPENSATED
        assert "Insufficient exchange balance" in submission.last_error

    @pytest.mark.asyncio
    async def test_request_not_sent_restores_balance_at_once(
        self, request_withdrawal, create_user, gateway, sink, load,
        all_submissions,
    ):
        """A request that never left the process cannot have executed."""
        user = await create_user(balance=Decimal("10"), category="Gold")
        gateway.withdrawal_error = ExchangeRequestNotSentError(
            "Exchange credentials not configured"
        )

        result = await request_withdrawal(user.id, "1")

        assert result.error_code == "EXCHANGE_REJECTED"
        assert (await load(User, user.id)).balance == Decimal("10")
        [submission] = await all_submissions()
        assert submission.state == SubmissionState.COMPENSATED
        assert "⏳ Withdrawal pending verification" not in sink.subjects_for(
            ADMIN_ID
        )

    @pytest.mark.asyncio
    async def test_timeout_keeps_funds_reserved(
        self, request_withdrawal, create_user, gateway, sink, load,
        all_submissions, withdrawal_count,
    ):
        user = await create_user(balance=Decimal("10"), category="Gold")
        gateway.withdrawal_error = ExchangeTimeoutError("read timeout")

        result = await request_withdrawal(user.id, "1")

        assert result.success is False
        assert result.error_code == "PENDING_VERIFICATION"
        assert (await load(User, user.id)).balance == Decimal("9")
        assert await withdrawal_count() == 0

        [submission] = await all_submissions()
        assert submission.state == SubmissionState.AMBIGUOUS
        assert "⏳ Withdrawal pending verification" in sink.subjects_for(ADMIN_ID)

    @pytest.mark.asyncio
    async def test_unexpected_error_is_ambiguous(
        self, request_withdrawal, create_user, gateway, load, all_submissions
    ):
        user = await create_user(balance=Decimal("10"), category="Gold")
        gateway.withdrawal_error = RuntimeError("connection reset")

        result = await request_withdrawal(user.id, "1")

        assert result.error_code == "PENDING_VERIFICATION"
        assert (await load(User, user.id)).balance == Decimal("9")
        [submission] = await all_submissions()
        assert submission.state == SubmissionState.AMBIGUOUS


class TestReconciler:
    """WithdrawalReconciler resolves stale unresolved submissions."""

    @pytest.mark.asyncio
    async def test_executed_transfer_is_recorded(
        self, request_withdrawal, create_user, gateway, clock, reconciler,
        load, all_submissions, sink,
    ):
        user = await create_user(balance=Decimal("10"), category="Gold")
        gateway.withdrawal_error = ExchangeTimeoutError("timeout")
        gateway.execute_before_error = True
        await request_withdrawal(user.id, "1")

        clock.advance(minutes=16)
        stats = await reconciler.reconcile()

        assert stats["checked"] == 1
        assert stats["submitted"] == 1
        [submission] = await all_submissions()
        assert submission.state == SubmissionState.SUBMITTED

        withdrawal = await load(Withdrawal, submission.withdrawal_id)
        assert withdrawal.external_tx_id == "W1"
        assert withdrawal.client_order_id == submission.client_order_id
        assert withdrawal.review_status == ReviewStatus.PENDING
        assert withdrawal.transfer_status == TransferStatus.PROCESSING
        assert (await load(User, user.id)).balance == Decimal("9")
        assert "New withdrawal" in sink.subjects_for(ADMIN_ID)

    @pytest.mark.asyncio
    async def test_missing_transfer_is_compensated(
        self, request_withdrawal, create_user, gateway, clock, reconciler,
        load, all_submissions, withdrawal_count,
    ):
        user = await create_user(balance=Decimal("10"), category="Gold")
        gateway.withdrawal_error = ExchangeTimeoutError("timeout")
        await request_withdrawal(user.id, "1")

        clock.advance(minutes=16)
        stats = await reconciler.reconcile()

        assert stats["compensated"] == 1
        [submission] = await all_submissions()
        assert submission.state == SubmissionState.COMPENSATED
        assert (await load(User, user.id)).balance == Decimal("10")
        assert await withdrawal_count() == 0

    @pytest.mark.asyncio
    async def test_recent_submission_left_alone(
        self, request_withdrawal, create_user, gateway, clock, reconciler,
        all_submissions,
    ):
        user = await create_user(balance=Decimal("10"), category="Gold")
        gateway.withdrawal_error = ExchangeTimeoutError("timeout")
        await request_withdrawal(user.id, "1")

        clock.advance(minutes=5)
        stats = await reconciler.reconcile()

        assert stats["checked"] == 0
        [submission] = await all_submissions()
        assert submission.state == SubmissionState.AMBIGUOUS

    @pytest.mark.asyncio
    async def test_history_error_leaves_submission_unresolved(
        self, request_withdrawal, create_user, gateway, clock, reconciler,
        load, all_submissions,
    ):
        user = await create_user(balance=Decimal("10"), category="Gold")
        gateway.withdrawal_error = ExchangeTimeoutError("timeout")
        await request_withdrawal(user.id, "1")
        gateway.withdrawal_history_error = ExchangeTimeoutError("timeout")

        clock.advance(minutes=16)
        stats = await reconciler.reconcile()

        assert stats["submitted"] == 0
        assert stats["compensated"] == 0
        [submission] = await all_submissions()
        assert submission.state == SubmissionState.AMBIGUOUS
        assert (await load(User, user.id)).balance == Decimal("9")

    @pytest.mark.asyncio
    async def test_resolved_submissions_are_ignored(
        self, request_withdrawal, create_user, clock, reconciler
    ):
        user = await create_user(balance=Decimal("10"), category="Gold")
        assert (await request_withdrawal(user.id, "1")).success

        clock.advance(hours=1)
        stats = await reconciler.reconcile()

        assert stats["checked"] == 0

    @pytest.mark.asyncio
    async def test_second_run_does_not_compensate_twice(
        self, request_withdrawal, create_user, gateway, clock, reconciler,
        load,
    ):
        user = await create_user(balance=Decimal("10"), category="Gold")
        gateway.withdrawal_error = ExchangeTimeoutError("timeout")
        await request_withdrawal(user.id, "1")

        clock.advance(minutes=16)
        await reconciler.reconcile()
        stats = await reconciler.reconcile()

        assert stats["checked"] == 0
        assert (await load(User, user.id)).balance == Decimal("10")
