"""
Exception handling utilities.

Domain exception types plus categories for deciding how a failure is
handled: ignored, logged, or raised.
"""

from aiogram.exceptions import TelegramAPIError
from sqlalchemy.exc import OperationalError

from app.services.exchange.errors import ExchangeError


class RewardsError(Exception):
    """Base class for domain errors reported to the immediate caller."""

    code = "error"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(RewardsError):
    """Bad input. Nothing was mutated."""

    code = "validation_error"


class ConflictError(RewardsError):
    """Request collides with existing state; retryable by the caller."""

    code = "conflict"


class AmountGenerationError(ConflictError):
    """No free expected amount left in the band."""

    code = "amount_band_exhausted"


class InvalidStatusTransition(ConflictError):
    """Attempt to move a record out of a terminal state."""

    code = "invalid_status_transition"


class NotFoundError(RewardsError):
    """Referenced user or record does not exist."""

    code = "not_found"


# Exception categories based on handling strategy

# Safe to ignore - operations that fail gracefully
SAFE_TO_IGNORE = (
    TelegramAPIError,  # Blocked bot, deleted chat, etc.
)

# Must log but can continue - non-critical failures
MUST_LOG = (
    OperationalError,  # Database unavailable, retried next cycle
    ExchangeError,     # Exchange API errors, retried next cycle
)

# Must raise - programming or validation issues
MUST_RAISE = (
    ValueError,
    TypeError,
    RewardsError,
)


def is_safe_to_ignore(exc: Exception) -> bool:
    """Check if exception can be safely ignored."""
    return isinstance(exc, SAFE_TO_IGNORE)


def must_log(exc: Exception) -> bool:
    """Check if exception is an expected infrastructure failure."""
    return isinstance(exc, MUST_LOG)


def must_raise(exc: Exception) -> bool:
    """
    Check if exception must be raised.

    Retrying these never helps.
    """
    return isinstance(exc, MUST_RAISE)
