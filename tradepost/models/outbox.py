from dataclasses import dataclass
from enum import Enum


class SideEffectKind(str, Enum):
    """Post-settlement side effects."""

    WISHLIST_CLEANUP = "wishlist_cleanup"
    ACCOMPLISHMENT_RECHECK = "accomplishment_recheck"


class SideEffectStatus(str, Enum):
    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class SideEffectMessage:
    """
    A queued side effect.

    Attributes:
        id: Outbox row id
        trade_id: Settlement that produced the message
        kind: What to do
        user_id: Party the side effect applies to
        card_id: Received card (wishlist cleanup only)
        attempts: Dispatch attempts so far
    """

    id: int
    trade_id: str
    kind: SideEffectKind
    user_id: str
    card_id: str | None = None
    attempts: int = 0
