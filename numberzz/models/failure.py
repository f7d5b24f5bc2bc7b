"""
Failure Envelope: Unified Outcome Classification for Ledger Operations.

Every ledger operation either succeeds or fails with a classified error.
The classification decides what the caller may do next:

- ValidationFailed: bad input, nothing was sent to the store
- PreconditionFailed: the store refused a conditional write, with a reason
- CollaboratorUnavailable: wallet or store unreachable / unconfigured
- UserCancelled: the user rejected a wallet prompt, nothing was written

INVARIANT: A PreconditionFailed always carries a specific Reason.
It is never collapsed into a generic failure and never retried blindly.

AUTHORITY BOUNDARY:
All user-visible responses pass through `finalize_response()`.
"""

from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field


class FailureKind(str, Enum):
    """Classification of failure types."""

    # Input validation failures
    INVALID_INPUT = "invalid_input"

    # Conditional write refused by the store
    PRECONDITION_FAILED = "precondition_failed"

    # Collaborator failures
    SERVICE_UNAVAILABLE = "service_unavailable"
    TIMEOUT = "timeout"

    # The user walked away from a wallet prompt
    USER_CANCELLED = "user_cancelled"

    # Internal errors
    INVARIANT_VIOLATION = "invariant_violation"

    # Unknown
    UNKNOWN = "unknown"


class Reason(str, Enum):
    """Why a conditional write did not apply."""

    NOT_FOUND = "not_found"
    ALREADY_CLAIMED = "already_claimed"
    NOT_FREE = "not_free"
    ALREADY_OWNED = "already_owned"
    OWN_ITEM = "own_item"
    LOCKED = "locked"
    FREE_CLAIM_ONLY = "free_claim_only"
    NOT_OWNER = "not_owner"
    NOT_SELLER = "not_seller"
    STALE_CONTRACT = "stale_contract"
    LISTING_ACTIVE = "listing_active"
    NOT_LISTED = "not_listed"
    ILLEGAL_TRANSITION = "illegal_transition"
    OFFER_NOT_FOUND = "offer_not_found"
    NOT_ADMIN = "not_admin"
    CONFLICT = "conflict"


# Reasons that are about who is asking rather than what state the item is in
PERMISSION_REASONS = frozenset(
    {Reason.NOT_OWNER, Reason.NOT_SELLER, Reason.NOT_ADMIN, Reason.STALE_CONTRACT}
)

REASON_MESSAGES: dict[Reason, str] = {
    Reason.NOT_FOUND: "Item or contract not found.",
    Reason.ALREADY_CLAIMED: "This item has already been claimed.",
    Reason.NOT_FREE: "This item is not eligible for a free claim.",
    Reason.ALREADY_OWNED: "Already owned, not for sale.",
    Reason.OWN_ITEM: "You cannot trade with yourself.",
    Reason.LOCKED: "This easter egg is still locked.",
    Reason.FREE_CLAIM_ONLY: "This item can only be claimed, not bought.",
    Reason.NOT_OWNER: "Only the current owner can do this.",
    Reason.NOT_SELLER: "Only the seller of this contract can do this.",
    Reason.STALE_CONTRACT: "The contract seller no longer owns this item.",
    Reason.LISTING_ACTIVE: "A sale contract is already active for this item.",
    Reason.NOT_LISTED: "This item is not currently listed.",
    Reason.ILLEGAL_TRANSITION: "The contract is closed and cannot change.",
    Reason.OFFER_NOT_FOUND: "The chosen offer does not exist on this contract.",
    Reason.NOT_ADMIN: "Only the administrator can do this.",
    Reason.CONFLICT: "The record changed while the request was in flight.",
}


class OutcomeType(str, Enum):
    """High-level outcome classification."""

    SUCCESS = "success"
    REFUSAL = "refusal"
    KNOWN_FAILURE = "known_failure"
    UNKNOWN_FAILURE = "unknown_failure"


T = TypeVar("T")


class FailureDetail(BaseModel):
    """Detailed information about a failure."""

    kind: FailureKind = Field(
        ...,
        description="Classification of the failure",
    )
    reason: Reason | None = Field(
        default=None,
        description="Reason code when a conditional write was refused",
    )
    message: str = Field(
        ...,
        description="User-appropriate explanation of what went wrong",
    )
    detail: str | None = Field(
        default=None,
        description="Additional technical detail (optional)",
    )


class ApiResponse(BaseModel, Generic[T]):
    """
    Universal response envelope for all API endpoints.

    Every response is classified into one of four outcome types,
    ensuring no failure reaches the user unexplained.
    """

    outcome: OutcomeType = Field(
        ...,
        description="High-level classification of the result",
    )
    data: T | None = Field(
        default=None,
        description="Response data (present on success)",
    )
    failure: FailureDetail | None = Field(
        default=None,
        description="Failure details (present on non-success)",
    )


class KnownError(Exception):
    """
    Base class for exceptions that represent known, explainable failures.

    Subclass this for errors where the system knows exactly what went wrong.
    """

    outcome = OutcomeType.KNOWN_FAILURE

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        status_code: int = 400,
        reason: Reason | None = None,
    ):
        self.kind = kind
        self.message = message
        self.detail = detail
        self.status_code = status_code
        self.reason = reason
        super().__init__(message)

    def to_response(self) -> ApiResponse[Any]:
        """Convert to a finalized ApiResponse."""
        response: ApiResponse[Any] = ApiResponse(
            outcome=self.outcome,
            failure=FailureDetail(
                kind=self.kind,
                reason=self.reason,
                message=self.message,
                detail=self.detail,
            ),
        )
        return finalize_response(response)


class ValidationFailed(KnownError):
    """Bad input: non-positive price, malformed address, missing field."""

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(
            kind=FailureKind.INVALID_INPUT,
            message=message,
            detail=detail,
            status_code=400,
        )


class PreconditionFailed(KnownError):
    """
    The store found state already changed, or the caller may not act.

    Carries a specific Reason. Callers re-read authoritative state instead
    of retrying.
    """

    outcome = OutcomeType.REFUSAL

    def __init__(self, reason: Reason, detail: str | None = None):
        if reason is Reason.NOT_FOUND:
            status_code = 404
        elif reason in PERMISSION_REASONS:
            status_code = 403
        else:
            status_code = 409
        super().__init__(
            kind=FailureKind.PRECONDITION_FAILED,
            message=REASON_MESSAGES[reason],
            detail=detail,
            status_code=status_code,
            reason=reason,
        )


class CollaboratorUnavailable(KnownError):
    """Wallet or store unreachable, misconfigured, or erroring."""

    def __init__(self, collaborator: str, detail: str | None = None, status_code: int = 503):
        self.collaborator = collaborator
        super().__init__(
            kind=FailureKind.SERVICE_UNAVAILABLE,
            message=f"The {collaborator} is unavailable.",
            detail=detail,
            status_code=status_code,
        )


class CollaboratorTimeout(CollaboratorUnavailable):
    """
    No response yet. Distinct from a rejection: the write may or may not
    have landed, so the affected key must be re-read.
    """

    def __init__(self, collaborator: str, timeout: float):
        super().__init__(collaborator, detail=f"no response after {timeout:.1f}s", status_code=504)
        self.kind = FailureKind.TIMEOUT
        self.message = f"The {collaborator} did not respond in time."


class UserCancelled(KnownError):
    """The user rejected the wallet prompt. Nothing was written."""

    outcome = OutcomeType.REFUSAL

    def __init__(self, detail: str | None = None):
        super().__init__(
            kind=FailureKind.USER_CANCELLED,
            message="The transaction was cancelled.",
            detail=detail,
            status_code=409,
        )


# =============================================================================
# FAILURE AUTHORITY BOUNDARY
# =============================================================================

STANDARD_MESSAGES: dict[OutcomeType, str] = {
    OutcomeType.UNKNOWN_FAILURE: ("Something went wrong on our side. Please retry the request."),
}


# Track finalized responses
_finalized_responses: set[int] = set()


def finalize_response(response: ApiResponse[Any]) -> ApiResponse[Any]:
    """
    Finalize a response through the authority boundary.

    Raises:
        ValueError: If response structure is invalid
    """
    if response.outcome == OutcomeType.SUCCESS:
        if response.failure is not None:
            raise ValueError("Success response must not have failure details")
    else:
        if response.failure is None:
            raise ValueError(f"{response.outcome.value} response must have failure details")

    _finalized_responses.add(id(response))

    return response


def is_finalized(response: ApiResponse[Any]) -> bool:
    """Check if a response has passed through the authority boundary."""
    return id(response) in _finalized_responses


def create_unknown_failure(exception: Exception) -> ApiResponse[Any]:
    """
    Create an unknown failure response from an exception.

    Only the exception type is exposed, never its message.
    """
    response: ApiResponse[Any] = ApiResponse(
        outcome=OutcomeType.UNKNOWN_FAILURE,
        failure=FailureDetail(
            kind=FailureKind.UNKNOWN,
            message=STANDARD_MESSAGES[OutcomeType.UNKNOWN_FAILURE],
            detail=type(exception).__name__,
        ),
    )
    return finalize_response(response)


def create_success(data: T) -> ApiResponse[T]:
    """Create a finalized success response."""
    response = ApiResponse[T](outcome=OutcomeType.SUCCESS, data=data)
    return finalize_response(response)
