"""
Trade Lifecycle Service.

Entry points for proposing and responding to trades:

- propose_trade: validate, then persist a pending trade with its items
- respond_to_trade: recipient accepts or declines; accepting settles the
  trade right away when settle_on_accept is enabled
- cancel_trade: initiator withdraws a pending trade
- expire_stale_trades: system sweep cancelling pending trades past expiry

Every status change goes through check_transition and is persisted as a
compare-and-set on the expected status. Losing a race to another actor
surfaces as IllegalTransitionError with the status that won.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from tradepost.config import settings
from tradepost.db.trade_operations import (
    count_trades_by_status,
    create_trade,
    find_expired_pending_trades,
    get_trade,
    transition_status,
    utc_now,
)
from tradepost.models.failure import (
    IllegalTransitionError,
    InvalidProposalError,
    SettlementError,
    TradeNotFoundError,
)
from tradepost.models.trade import (
    SettlementReport,
    Trade,
    TradeAction,
    TradeProposal,
    TradeStatus,
    TradingStats,
)
from tradepost.services.proposal_validator import validate_proposal
from tradepost.services.settlement import settle_trade
from tradepost.services.side_effects import SideEffectCoordinator
from tradepost.services.trade_state import check_transition, is_expired
from tradepost.services.variant_resolver import VariantResolver

logger = logging.getLogger(__name__)


@dataclass
class TradeResponse:
    """Result of accepting or declining a trade."""

    trade: Trade
    settlement: SettlementReport | None = None


async def get_trade_or_raise(session: AsyncSession, trade_id: str) -> Trade:
    trade = await get_trade(session, trade_id)
    if trade is None:
        raise TradeNotFoundError(trade_id)
    return trade


async def _apply(
    session: AsyncSession,
    trade: Trade,
    action: TradeAction,
    user_id: str | None,
    now: datetime | None = None,
    message: str | None = None,
) -> None:
    """Check and persist one transition."""
    target = check_transition(trade, action, user_id, now)
    changed = await transition_status(
        session, trade.id, trade.status, target, now=now, recipient_message=message
    )
    if not changed:
        current = await get_trade_or_raise(session, trade.id)
        raise IllegalTransitionError(trade.id, current.status.value, action.value)
    logger.info(
        "Trade %s: %s by %s (%s -> %s)",
        trade.id,
        action.value,
        user_id or "system",
        trade.status.value,
        target.value,
    )


async def propose_trade(
    session: AsyncSession,
    initiator_id: str,
    proposal: TradeProposal,
    now: datetime | None = None,
) -> Trade:
    """
    Create a pending trade from a validated proposal.

    A counter-offer references the trade it answers through parent_trade_id;
    the parent must involve the same two collectors.

    Raises:
        InvalidProposalError, NotConnectedError, InsufficientInventoryError
    """
    await validate_proposal(session, initiator_id, proposal)

    if proposal.parent_trade_id is not None:
        parent = await get_trade(session, proposal.parent_trade_id)
        if parent is None:
            raise InvalidProposalError(f"parent trade {proposal.parent_trade_id} does not exist")
        if {parent.initiator_id, parent.recipient_id} != {initiator_id, proposal.recipient_id}:
            raise InvalidProposalError("a counter-offer must involve the same two collectors")

    row = await create_trade(session, initiator_id, proposal, now=now)
    logger.info(
        "Trade %s proposed by %s to %s (%d offered, %d requested)",
        row.id,
        initiator_id,
        proposal.recipient_id,
        len(proposal.offered_items),
        len(proposal.requested_items),
    )
    return await get_trade_or_raise(session, row.id)


async def respond_to_trade(
    session: AsyncSession,
    trade_id: str,
    responder_id: str,
    accept: bool,
    message: str | None = None,
    settle_on_accept: bool | None = None,
    resolver: VariantResolver | None = None,
    coordinator: SideEffectCoordinator | None = None,
    now: datetime | None = None,
) -> TradeResponse:
    """
    Accept or decline a pending trade as its recipient.

    When accepting with settle_on_accept, the acceptance is committed first
    and the trade settled right after. If settlement fails the trade is
    reopened (accepted -> pending) and the settlement error is raised.

    Raises:
        TradeNotFoundError, UnauthorizedTradeActionError,
        IllegalTransitionError, TradeExpiredError, SettlementError
    """
    if settle_on_accept is None:
        settle_on_accept = settings.settle_on_accept

    trade = await get_trade_or_raise(session, trade_id)
    action = TradeAction.ACCEPT if accept else TradeAction.DECLINE
    await _apply(session, trade, action, responder_id, now=now, message=message)

    if not (accept and settle_on_accept):
        return TradeResponse(trade=await get_trade_or_raise(session, trade_id))

    await session.commit()
    try:
        report = await settle_trade(
            session, trade_id, None, resolver=resolver, coordinator=coordinator
        )
    except SettlementError:
        reopened = await get_trade_or_raise(session, trade_id)
        if reopened.status == TradeStatus.ACCEPTED:
            await _apply(session, reopened, TradeAction.REOPEN, None)
            await session.commit()
        raise

    return TradeResponse(trade=await get_trade_or_raise(session, trade_id), settlement=report)


async def cancel_trade(
    session: AsyncSession,
    trade_id: str,
    initiator_id: str,
    now: datetime | None = None,
) -> Trade:
    """
    Withdraw a pending trade as its initiator.

    Raises:
        TradeNotFoundError, UnauthorizedTradeActionError, IllegalTransitionError
    """
    trade = await get_trade_or_raise(session, trade_id)
    await _apply(session, trade, TradeAction.CANCEL, initiator_id, now=now)
    return await get_trade_or_raise(session, trade_id)


async def expire_stale_trades(
    session: AsyncSession, now: datetime | None = None, limit: int = 500
) -> list[str]:
    """
    Cancel pending trades whose expiry has passed.

    Trades that changed status concurrently are skipped. Returns the ids of
    the trades that were expired. Does not commit.
    """
    now = now or utc_now()
    expired: list[str] = []
    for trade_id in await find_expired_pending_trades(session, now=now, limit=limit):
        trade = await get_trade(session, trade_id)
        if trade is None or trade.status != TradeStatus.PENDING or not is_expired(trade, now):
            continue
        try:
            await _apply(session, trade, TradeAction.EXPIRE, None, now=now)
        except IllegalTransitionError:
            logger.info("Trade %s changed status before it could expire", trade_id)
            continue
        expired.append(trade_id)

    if expired:
        logger.info("Expired %d stale pending trades", len(expired))
    return expired


async def get_trading_stats(session: AsyncSession, user_id: str) -> TradingStats:
    """Trade counts and completion rate for a user."""
    counts = await count_trades_by_status(session, user_id)
    total = sum(counts.values())
    completed = counts[TradeStatus.COMPLETED]
    return TradingStats(
        total_trades=total,
        pending_trades=counts[TradeStatus.PENDING],
        completed_trades=completed,
        success_rate=(completed / total) * 100 if total else 0.0,
    )
