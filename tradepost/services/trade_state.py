"""
Trade state machine.

    pending  --accept-->   accepted   (recipient)
    pending  --decline-->  declined   (recipient)
    pending  --cancel-->   cancelled  (initiator)
    pending  --expire-->   cancelled  (system, after expires_at)
    accepted --complete--> completed  (either party, via settlement)
    accepted --reopen-->   pending    (system, after a failed settlement on accept)

declined, cancelled and completed are terminal. A pending trade past its
expiry cannot be accepted.

This module is pure: it decides whether a transition is legal and what the
resulting status is. Persisting the change is the caller's job.
"""

from datetime import datetime
from enum import Enum

from tradepost.db.trade_operations import utc_now
from tradepost.models.failure import (
    IllegalTransitionError,
    TradeExpiredError,
    UnauthorizedTradeActionError,
)
from tradepost.models.trade import Trade, TradeAction, TradeStatus


class Actor(str, Enum):
    """Who may trigger an action."""

    INITIATOR = "initiator"
    RECIPIENT = "recipient"
    PARTY = "party"
    SYSTEM = "system"


TRANSITIONS: dict[TradeAction, tuple[Actor, TradeStatus, TradeStatus]] = {
    TradeAction.ACCEPT: (Actor.RECIPIENT, TradeStatus.PENDING, TradeStatus.ACCEPTED),
    TradeAction.DECLINE: (Actor.RECIPIENT, TradeStatus.PENDING, TradeStatus.DECLINED),
    TradeAction.CANCEL: (Actor.INITIATOR, TradeStatus.PENDING, TradeStatus.CANCELLED),
    TradeAction.EXPIRE: (Actor.SYSTEM, TradeStatus.PENDING, TradeStatus.CANCELLED),
    TradeAction.COMPLETE: (Actor.PARTY, TradeStatus.ACCEPTED, TradeStatus.COMPLETED),
    TradeAction.REOPEN: (Actor.SYSTEM, TradeStatus.ACCEPTED, TradeStatus.PENDING),
}


def is_expired(trade: Trade, now: datetime | None = None) -> bool:
    return (now or utc_now()) >= trade.expires_at


def _actor_allowed(trade: Trade, actor: Actor, user_id: str | None) -> bool:
    if actor == Actor.SYSTEM:
        return user_id is None
    if user_id is None:
        # System may complete a trade on a party's behalf (settle on accept)
        return actor == Actor.PARTY
    if actor == Actor.RECIPIENT:
        return user_id == trade.recipient_id
    if actor == Actor.INITIATOR:
        return user_id == trade.initiator_id
    return trade.is_party(user_id)


def check_transition(
    trade: Trade,
    action: TradeAction,
    user_id: str | None,
    now: datetime | None = None,
) -> TradeStatus:
    """
    Decide whether ``user_id`` may apply ``action`` to ``trade``.

    ``user_id`` of None means the system itself is acting.

    Returns:
        The status the trade moves to.

    Raises:
        UnauthorizedTradeActionError: The user is not the party allowed to act
        IllegalTransitionError: The action is not allowed from the current status
        TradeExpiredError: Accepting a pending trade past its expiry
    """
    actor, source, target = TRANSITIONS[action]

    if not _actor_allowed(trade, actor, user_id):
        raise UnauthorizedTradeActionError(trade.id, user_id or "system", action.value)

    if trade.status != source:
        raise IllegalTransitionError(trade.id, trade.status.value, action.value)

    if action == TradeAction.ACCEPT and is_expired(trade, now):
        raise TradeExpiredError(trade.id)

    return target
