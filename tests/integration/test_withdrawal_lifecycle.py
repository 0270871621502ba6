"""
Integration tests for withdrawal review decisions and transfer status sync.
"""

from decimal import Decimal

import pytest

from app.models import User, Withdrawal
from app.models.enums import ReviewStatus, TransferStatus
from app.services.exchange import ExchangeTimeoutError
from app.services.exchange.base import (
    WITHDRAWAL_COMPLETED,
    WITHDRAWAL_FAILED,
    WITHDRAWAL_PROCESSING,
)
from app.services.withdrawal import (
    WithdrawalLifecycleHandler,
    WithdrawalRequestHandler,
    WithdrawalStatusSync,
)
from app.utils.exceptions import (
    InvalidStatusTransition,
    NotFoundError,
    ValidationError,
)

ADDRESS = "TQn9Y2khEsLJW1ChVWFMSMeRDow5KcbLSE"
ADMIN_ID = 900001


@pytest.fixture
def submitted_withdrawal(session_factory, create_user, gateway, notifier, clock):
    """A user with balance 10 who withdrew 1."""

    async def _create() -> tuple[User, Withdrawal]:
        user = await create_user(balance=Decimal("10"), category="Gold")
        async with session_factory() as session:
            handler = WithdrawalRequestHandler(
                session, gateway, notifier, clock=clock
            )
            result = await handler.request_withdrawal(
                user.id, Decimal("1"), ADDRESS, "TRC20"
            )
        assert result.success
        return user, result.withdrawal

    return _create


@pytest.fixture
def status_sync(session_factory, gateway, notifier, clock):
    return WithdrawalStatusSync(session_factory, gateway, notifier, clock=clock)


class TestReviewDecision:
    """WithdrawalLifecycleHandler.update_withdrawal_status."""

    @pytest.mark.asyncio
    async def test_approve_pending_withdrawal(
        self, session, notifier, clock, submitted_withdrawal, sink, load
    ):
        user, withdrawal = await submitted_withdrawal()
        handler = WithdrawalLifecycleHandler(session, notifier, clock=clock)

        updated = await handler.update_withdrawal_status(
            withdrawal.id, "Approved"
        )

        assert updated.review_status == ReviewStatus.APPROVED
        stored = await load(Withdrawal, withdrawal.id)
        assert stored.review_status == ReviewStatus.APPROVED
        assert stored.reviewed_at == clock.now
        assert stored.transfer_status == TransferStatus.PROCESSING
        assert "Withdrawal Approved" in sink.subjects_for(user.telegram_id)

    @pytest.mark.asyncio
    async def test_review_does_not_touch_balance(
        self, session, notifier, clock, submitted_withdrawal, load
    ):
        user, withdrawal = await submitted_withdrawal()
        handler = WithdrawalLifecycleHandler(session, notifier, clock=clock)

        await handler.update_withdrawal_status(
            withdrawal.id, ReviewStatus.REJECTED
        )

        assert (await load(User, user.id)).balance == Decimal("9")

    @pytest.mark.asyncio
    async def test_decided_review_cannot_change(
        self, session, notifier, clock, submitted_withdrawal, load
    ):
        _, withdrawal = await submitted_withdrawal()
        handler = WithdrawalLifecycleHandler(session, notifier, clock=clock)
        await handler.update_withdrawal_status(withdrawal.id, "Approved")

        with pytest.raises(InvalidStatusTransition):
            await handler.update_withdrawal_status(withdrawal.id, "Rejected")

        stored = await load(Withdrawal, withdrawal.id)
        assert stored.review_status == ReviewStatus.APPROVED

    @pytest.mark.asyncio
    async def test_pending_keeps_review_open(
        self, session, notifier, clock, submitted_withdrawal, sink, load
    ):
        """Pending on a pending withdrawal only reminds the owner."""
        user, withdrawal = await submitted_withdrawal()
        handler = WithdrawalLifecycleHandler(session, notifier, clock=clock)

        updated = await handler.update_withdrawal_status(
            withdrawal.id, "Pending"
        )

        assert updated.review_status == ReviewStatus.PENDING
        stored = await load(Withdrawal, withdrawal.id)
        assert stored.review_status == ReviewStatus.PENDING
        assert stored.reviewed_at is None
        assert "Withdrawal Pending" in sink.subjects_for(user.telegram_id)

        # Still open for a decision
        await handler.update_withdrawal_status(withdrawal.id, "Approved")
        stored = await load(Withdrawal, withdrawal.id)
        assert stored.review_status == ReviewStatus.APPROVED

    @pytest.mark.asyncio
    async def test_decided_review_cannot_return_to_pending(
        self, session, notifier, clock, submitted_withdrawal, load
    ):
        _, withdrawal = await submitted_withdrawal()
        handler = WithdrawalLifecycleHandler(session, notifier, clock=clock)
        await handler.update_withdrawal_status(withdrawal.id, "Rejected")

        with pytest.raises(InvalidStatusTransition):
            await handler.update_withdrawal_status(withdrawal.id, "Pending")

        stored = await load(Withdrawal, withdrawal.id)
        assert stored.review_status == ReviewStatus.REJECTED

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["Done", "approved", "pending", ""])
    async def test_invalid_status_value(
        self, session, notifier, clock, submitted_withdrawal, status
    ):
        _, withdrawal = await submitted_withdrawal()
        handler = WithdrawalLifecycleHandler(session, notifier, clock=clock)

        with pytest.raises(ValidationError) as exc_info:
            await handler.update_withdrawal_status(withdrawal.id, status)

        assert exc_info.value.code == "invalid_status"

    @pytest.mark.asyncio
    async def test_unknown_withdrawal(self, session, notifier, clock):
        handler = WithdrawalLifecycleHandler(session, notifier, clock=clock)

        with pytest.raises(NotFoundError):
            await handler.update_withdrawal_status(999, "Approved")


class TestWithdrawalQueries:
    """Listing withdrawals for admins and users."""

    @pytest.mark.asyncio
    async def test_list_and_filter(
        self, session, notifier, clock, submitted_withdrawal
    ):
        _, first = await submitted_withdrawal()
        _, second = await submitted_withdrawal()
        handler = WithdrawalLifecycleHandler(session, notifier, clock=clock)
        await handler.update_withdrawal_status(first.id, "Approved")

        items, total = await handler.list_withdrawals()
        assert total == 2
        assert [w.id for w in items] == [second.id, first.id]

        items, total = await handler.list_withdrawals(review_status="Pending")
        assert total == 1
        assert items[0].id == second.id

        items, total = await handler.list_withdrawals(page=2, per_page=1)
        assert total == 2
        assert [w.id for w in items] == [first.id]

    @pytest.mark.asyncio
    async def test_list_with_unknown_filter(self, session, notifier, clock):
        handler = WithdrawalLifecycleHandler(session, notifier, clock=clock)

        with pytest.raises(ValidationError):
            await handler.list_withdrawals(review_status="Lost")

    @pytest.mark.asyncio
    async def test_user_withdrawals(
        self, session, notifier, clock, submitted_withdrawal
    ):
        user, withdrawal = await submitted_withdrawal()
        await submitted_withdrawal()
        handler = WithdrawalLifecycleHandler(session, notifier, clock=clock)

        withdrawals = await handler.get_user_withdrawals(user.id)

        assert [w.id for w in withdrawals] == [withdrawal.id]


class TestTransferStatusSync:
    """WithdrawalStatusSync follows the exchange history."""

    @pytest.mark.asyncio
    async def test_completed_transfer(
        self, submitted_withdrawal, gateway, status_sync, clock, load
    ):
        _, withdrawal = await submitted_withdrawal()
        gateway.set_withdrawal_state("W1", 6, WITHDRAWAL_COMPLETED)
        clock.advance(minutes=10)

        stats = await status_sync.sync()

        assert stats["completed"] == 1
        stored = await load(Withdrawal, withdrawal.id)
        assert stored.transfer_status == TransferStatus.COMPLETED
        assert stored.external_status == "6"
        assert stored.transfer_updated_at == clock.now
        assert stored.review_status == ReviewStatus.PENDING

    @pytest.mark.asyncio
    async def test_failed_transfer_alerts_admins(
        self, submitted_withdrawal, gateway, status_sync, sink, load
    ):
        user, withdrawal = await submitted_withdrawal()
        gateway.set_withdrawal_state("W1", 5, WITHDRAWAL_FAILED)

        stats = await status_sync.sync()

        assert stats["failed"] == 1
        stored = await load(Withdrawal, withdrawal.id)
        assert stored.transfer_status == TransferStatus.FAILED
        assert stored.external_status == "5"
        assert "❌ Withdrawal transfer failed" in sink.subjects_for(ADMIN_ID)
        # No automatic refund
        assert (await load(User, user.id)).balance == Decimal("9")

    @pytest.mark.asyncio
    async def test_processing_only_mirrors_status(
        self, submitted_withdrawal, gateway, status_sync, load
    ):
        _, withdrawal = await submitted_withdrawal()
        gateway.set_withdrawal_state("W1", 2, WITHDRAWAL_PROCESSING)

        stats = await status_sync.sync()

        assert stats["unchanged"] == 1
        stored = await load(Withdrawal, withdrawal.id)
        assert stored.transfer_status == TransferStatus.PROCESSING
        assert stored.external_status == "2"

    @pytest.mark.asyncio
    async def test_terminal_transfer_is_not_revisited(
        self, submitted_withdrawal, gateway, status_sync, load
    ):
        _, withdrawal = await submitted_withdrawal()
        gateway.set_withdrawal_state("W1", 6, WITHDRAWAL_COMPLETED)
        await status_sync.sync()
        gateway.set_withdrawal_state("W1", 5, WITHDRAWAL_FAILED)

        stats = await status_sync.sync()

        assert stats["checked"] == 0
        stored = await load(Withdrawal, withdrawal.id)
        assert stored.transfer_status == TransferStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_history_error_changes_nothing(
        self, submitted_withdrawal, gateway, status_sync, load
    ):
        _, withdrawal = await submitted_withdrawal()
        gateway.set_withdrawal_state("W1", 6, WITHDRAWAL_COMPLETED)
        gateway.withdrawal_history_error = ExchangeTimeoutError("timeout")

        stats = await status_sync.sync()

        assert stats["checked"] == 0
        stored = await load(Withdrawal, withdrawal.id)
        assert stored.transfer_status == TransferStatus.PROCESSING
