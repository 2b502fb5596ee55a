"""
Trade domain models.

A trade is a two-party negotiation. Items are contributed by either side and
are immutable once the trade is created; changing terms means proposing a new
trade (optionally referencing the old one as its parent).
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum

from tradepost.models.inventory import Condition, Variant


class TradeStatus(str, Enum):
    """Lifecycle states of a trade."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({TradeStatus.DECLINED, TradeStatus.CANCELLED, TradeStatus.COMPLETED})


class TradeAction(str, Enum):
    """Actions that move a trade between states."""

    ACCEPT = "accept"
    DECLINE = "decline"
    CANCEL = "cancel"
    COMPLETE = "complete"
    REOPEN = "reopen"
    EXPIRE = "expire"


class TradeMethod(str, Enum):
    """How the parties intend to exchange physical cards (informational only)."""

    MAIL = "mail"
    MEETUP = "meetup"
    DIGITAL = "digital"
    OTHER = "other"


class TradeDirection(str, Enum):
    """Filter for listing a user's trades."""

    SENT = "sent"
    RECEIVED = "received"
    ALL = "all"


@dataclass(frozen=True, slots=True)
class ProposalItem:
    """A card line offered by the initiator or requested from the recipient."""

    card_id: str
    quantity: int
    condition: Condition = Condition.NEAR_MINT
    is_foil: bool = False
    notes: str | None = None


@dataclass
class TradeProposal:
    """
    Everything the initiator submits when proposing a trade.

    Money offers and shipping preferences are stored verbatim and never
    processed by the settlement engine.
    """

    recipient_id: str
    offered_items: list[ProposalItem] = field(default_factory=list)
    requested_items: list[ProposalItem] = field(default_factory=list)
    message: str | None = None
    initiator_money_offer: Decimal = Decimal("0")
    recipient_money_offer: Decimal = Decimal("0")
    trade_method: TradeMethod | None = None
    initiator_shipping_included: bool = True
    recipient_shipping_included: bool = True
    parent_trade_id: str | None = None


@dataclass(frozen=True, slots=True)
class TradeItem:
    """One immutable line of a persisted trade."""

    id: int
    trade_id: str
    user_id: str
    card_id: str
    quantity: int
    condition: Condition
    is_foil: bool = False
    notes: str | None = None


@dataclass
class Trade:
    """A persisted trade with its items."""

    id: str
    initiator_id: str
    recipient_id: str
    status: TradeStatus
    created_at: datetime
    updated_at: datetime
    expires_at: datetime
    items: list[TradeItem] = field(default_factory=list)
    initiator_message: str | None = None
    recipient_message: str | None = None
    initiator_money_offer: Decimal = Decimal("0")
    recipient_money_offer: Decimal = Decimal("0")
    trade_method: TradeMethod | None = None
    initiator_shipping_included: bool = True
    recipient_shipping_included: bool = True
    parent_trade_id: str | None = None
    settlement_attempts: int = 0
    last_settlement_error: str | None = None
    completed_at: datetime | None = None

    def items_given_by(self, user_id: str) -> list[TradeItem]:
        """Items contributed by one side of the trade."""
        return [item for item in self.items if item.user_id == user_id]

    def is_party(self, user_id: str) -> bool:
        return user_id in (self.initiator_id, self.recipient_id)


@dataclass(frozen=True, slots=True)
class ItemTransfer:
    """A completed movement of cards from one collection to another."""

    card_id: str
    card_name: str
    quantity: int
    condition: Condition
    variant: Variant
    from_user_id: str
    to_user_id: str

    def describe(self) -> str:
        return f"{self.card_name} ({self.quantity}x {self.variant.value})"


@dataclass
class SettlementReport:
    """Caller-facing confirmation of a successful settlement."""

    trade_id: str
    transfers: list[ItemTransfer] = field(default_factory=list)
    removed_from_wishlist: list[str] = field(default_factory=list)
    unlocked_accomplishments: dict[str, list[str]] = field(default_factory=dict)
    revoked_accomplishments: dict[str, list[str]] = field(default_factory=dict)
    pending_side_effects: int = 0

    @property
    def removed_from_collection(self) -> list[str]:
        return [t.describe() for t in self.transfers]

    @property
    def added_to_collection(self) -> list[str]:
        return [t.describe() for t in self.transfers]


@dataclass
class SettleCheck:
    """Whether a caller could settle a trade as things stand."""

    trade_id: str
    can_settle: bool
    reason: str | None = None
    shortages: list[str] = field(default_factory=list)
    """One line per (giver, card, condition, variant) that is short."""


@dataclass(frozen=True, slots=True)
class TradingStats:
    """Aggregate trade counts for one user."""

    total_trades: int
    pending_trades: int
    completed_trades: int
    success_rate: float
