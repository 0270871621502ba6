"""
Enumerations for model status fields.
"""

from enum import StrEnum


class IntentStatus(StrEnum):
    """Deposit intent lifecycle."""

    WAITING = "waiting"
    COMPLETED = "completed"
    EXPIRED = "expired"


class ReviewStatus(StrEnum):
    """Administrative review of a withdrawal."""

    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not ReviewStatus.PENDING


class TransferStatus(StrEnum):
    """Exchange-driven transfer state of a withdrawal."""

    PROCESSING = "Processing"
    COMPLETED = "Completed"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self is not TransferStatus.PROCESSING


class SubmissionState(StrEnum):
    """Outbox state of a withdrawal submission."""

    RESERVED = "reserved"  # balance debited, exchange not called yet
    SUBMITTED = "submitted"  # exchange accepted, withdrawal record exists
    COMPENSATED = "compensated"  # exchange rejected, balance restored
    AMBIGUOUS = "ambiguous"  # exchange call timed out, outcome unknown

    @property
    def is_resolved(self) -> bool:
        return self in (SubmissionState.SUBMITTED, SubmissionState.COMPENSATED)
