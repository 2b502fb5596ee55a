"""
Failure Envelope: unified response classification.

This module defines the response envelope every API endpoint uses to
communicate outcomes, and the exception taxonomy of the trade engine.

Response types:
- Success: Operation completed successfully
- KnownFailure: System knows why it failed
- UnknownFailure: System does not know why it failed

Error taxonomy:
- Validation errors (NotConnected, InsufficientInventory, InvalidProposal):
  surfaced to the proposer, nothing persisted.
- State errors (IllegalTransition, Unauthorized, TradeExpired, NotFound):
  surfaced to the caller, trade state unchanged.
- Settlement errors (InsufficientInventoryAtSettlement, store failure):
  no transfer applied, attempt recorded on the trade, trade left accepted.
- Side-effect errors: never raised to callers, logged and retried.
"""

from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field


class FailureKind(str, Enum):
    """Classification of failure types."""

    # Input validation failures
    INVALID_INPUT = "invalid_input"
    NOT_CONNECTED = "not_connected"
    INSUFFICIENT_INVENTORY = "insufficient_inventory"

    # Resource failures
    NOT_FOUND = "not_found"

    # Lifecycle violations
    UNAUTHORIZED = "unauthorized"
    ILLEGAL_TRANSITION = "illegal_transition"
    TRADE_EXPIRED = "trade_expired"

    # Settlement failures
    INSUFFICIENT_INVENTORY_AT_SETTLEMENT = "insufficient_inventory_at_settlement"
    STORE_FAILURE = "store_failure"

    # Unknown
    UNKNOWN = "unknown"


class OutcomeType(str, Enum):
    """High-level outcome classification."""

    SUCCESS = "success"
    KNOWN_FAILURE = "known_failure"
    UNKNOWN_FAILURE = "unknown_failure"


T = TypeVar("T")


class FailureDetail(BaseModel):
    """Detailed information about a failure."""

    kind: FailureKind = Field(
        ...,
        description="Classification of the failure",
    )
    message: str = Field(
        ...,
        description="User-appropriate explanation of what went wrong",
    )
    detail: str | None = Field(
        default=None,
        description="Additional technical detail (optional)",
    )
    suggestion: str | None = Field(
        default=None,
        description="Suggested action for the user",
    )


class ApiResponse(BaseModel, Generic[T]):
    """
    Response envelope for trade endpoints.

    Every response is classified so that no failure reaches the user
    unexplained.
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

    @classmethod
    def known_failure(
        cls,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
    ) -> "ApiResponse[Any]":
        """
        Create a known failure response.

        Use when the system knows exactly why the operation failed.
        Example: Trade not found, illegal transition.
        """
        return cls(
            outcome=OutcomeType.KNOWN_FAILURE,
            failure=FailureDetail(
                kind=kind,
                message=message,
                detail=detail,
                suggestion=suggestion,
            ),
        )

    @classmethod
    def unknown_failure(cls, detail: str | None = None) -> "ApiResponse[Any]":
        """Create an unknown failure response (catch-all for unexpected exceptions)."""
        return cls(
            outcome=OutcomeType.UNKNOWN_FAILURE,
            failure=FailureDetail(
                kind=FailureKind.UNKNOWN,
                message="Something went wrong and the cause is unknown. Please retry.",
                detail=detail,
                suggestion="If this persists, please report the issue.",
            ),
        )


# Standard exception types that map to known failures


class KnownError(Exception):
    """
    Base class for exceptions that represent known, explainable failures.

    Subclass this for errors where the system knows exactly what went wrong.
    """

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
        status_code: int = 400,
    ):
        self.kind = kind
        self.message = message
        self.detail = detail
        self.suggestion = suggestion
        self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ApiResponse[Any]:
        """Convert to an ApiResponse."""
        return ApiResponse.known_failure(
            kind=self.kind,
            message=self.message,
            detail=self.detail,
            suggestion=self.suggestion,
        )


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class InvalidProposalError(KnownError):
    """Raised when a proposal is malformed (self-trade, non-positive quantity)."""

    def __init__(self, reason: str):
        super().__init__(
            kind=FailureKind.INVALID_INPUT,
            message=f"Invalid trade proposal: {reason}",
            status_code=400,
        )


class NotConnectedError(KnownError):
    """Raised when the two parties are not friends."""

    def __init__(self, initiator_id: str, recipient_id: str):
        self.initiator_id = initiator_id
        self.recipient_id = recipient_id
        super().__init__(
            kind=FailureKind.NOT_CONNECTED,
            message="You can only trade with friends.",
            suggestion="Send a friend request and wait for it to be accepted.",
            status_code=403,
        )


class InsufficientInventoryError(KnownError):
    """
    Raised at proposal time when the initiator offers more copies than owned.

    Only the card id is exposed; individual inventory rows are not.
    """

    def __init__(self, card_id: str):
        self.card_id = card_id
        super().__init__(
            kind=FailureKind.INSUFFICIENT_INVENTORY,
            message=f"You don't have enough copies of card {card_id} to offer.",
            detail=card_id,
            status_code=409,
        )


# =============================================================================
# STATE ERRORS
# =============================================================================


class TradeNotFoundError(KnownError):
    def __init__(self, trade_id: str):
        self.trade_id = trade_id
        super().__init__(
            kind=FailureKind.NOT_FOUND,
            message=f"Trade {trade_id} not found.",
            status_code=404,
        )


class UnauthorizedTradeActionError(KnownError):
    """Raised when a user attempts an action reserved for another party."""

    def __init__(self, trade_id: str, user_id: str, action: str):
        self.trade_id = trade_id
        self.user_id = user_id
        self.action = action
        super().__init__(
            kind=FailureKind.UNAUTHORIZED,
            message=f"You are not authorized to {action} this trade.",
            detail=f"user={user_id} trade={trade_id}",
            status_code=403,
        )


class IllegalTransitionError(KnownError):
    """Raised when an action is not allowed from the trade's current state."""

    def __init__(self, trade_id: str, current: str, action: str):
        self.trade_id = trade_id
        self.current = current
        self.action = action
        super().__init__(
            kind=FailureKind.ILLEGAL_TRANSITION,
            message=f"Cannot {action} a trade that is {current}.",
            detail=f"trade={trade_id} status={current} action={action}",
            status_code=409,
        )


class TradeExpiredError(KnownError):
    def __init__(self, trade_id: str):
        self.trade_id = trade_id
        super().__init__(
            kind=FailureKind.TRADE_EXPIRED,
            message="This trade offer has expired.",
            detail=f"trade={trade_id}",
            suggestion="Ask the other collector to send a new offer.",
            status_code=409,
        )


# =============================================================================
# SETTLEMENT ERRORS
# =============================================================================


class SettlementError(KnownError):
    """Base class for failures while executing a trade's transfers."""


class InsufficientInventoryAtSettlementError(SettlementError):
    """
    Raised when a giver no longer holds enough copies when the trade executes.

    Distinct from InsufficientInventoryError: recipient holdings are only
    checked here, and the initiator's holdings may have changed since proposal.
    """

    def __init__(
        self,
        trade_id: str,
        giver_id: str,
        card_id: str,
        condition: str,
        variant: str,
        required: int,
        available: int,
    ):
        self.trade_id = trade_id
        self.giver_id = giver_id
        self.card_id = card_id
        self.condition = condition
        self.variant = variant
        self.required = required
        self.available = available
        super().__init__(
            kind=FailureKind.INSUFFICIENT_INVENTORY_AT_SETTLEMENT,
            message=f"Insufficient quantity of card {card_id} to complete the trade.",
            detail=(
                f"giver={giver_id} card={card_id} condition={condition} "
                f"variant={variant} required={required} available={available}"
            ),
            suggestion="No cards were moved. Update the collection and retry, "
            "or propose a new trade.",
            status_code=409,
        )


class SettlementStoreError(SettlementError):
    """Raised when the database fails during settlement."""

    def __init__(self, trade_id: str, cause: Exception):
        self.trade_id = trade_id
        super().__init__(
            kind=FailureKind.STORE_FAILURE,
            message="The trade could not be completed because storage is unavailable.",
            detail=type(cause).__name__,
            suggestion="No cards were moved. Retry settlement later.",
            status_code=503,
        )
