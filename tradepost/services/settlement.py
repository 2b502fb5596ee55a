"""
Settlement Engine.

Executes the card transfers of an accepted trade:

1. Partition items into what the initiator gives and what the recipient gives
2. For each item, resolve the print variant and decrement the giver's
   (card, condition, variant) row; a short row aborts the settlement with
   InsufficientInventoryAtSettlementError
3. Merge each item into the receiver's matching row (created if absent)
4. Mark the trade completed and queue its side effects

INVARIANTS:
- All-or-nothing: steps 2-4 run in ONE transaction. Any failing item rolls
  back every transfer of the attempt, so a retry starts from clean state
- No over-commit: decrements are compare-and-swap on the observed quantity,
  so two settlements racing on the same row cannot both take the same copies
- Conservation: every copy removed from a giver is added to the receiver
- Side effects are queued with the transfer and dispatched after commit;
  they never fail the settlement

On failure the trade stays accepted, the attempt and its error are recorded
on the trade, and the error is raised to the caller. Retrying is safe.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tradepost.config import settings
from tradepost.db.operations import conditional_decrement, get_cards, get_quantity, increment
from tradepost.db.trade_operations import (
    get_trade,
    record_settlement_attempt,
    transition_status,
)
from tradepost.models.failure import (
    IllegalTransitionError,
    InsufficientInventoryAtSettlementError,
    SettlementError,
    SettlementStoreError,
    TradeNotFoundError,
    UnauthorizedTradeActionError,
)
from tradepost.models.inventory import CardInfo, Condition, Variant
from tradepost.models.trade import (
    ItemTransfer,
    SettleCheck,
    SettlementReport,
    Trade,
    TradeAction,
    TradeItem,
    TradeStatus,
)
from tradepost.services.side_effects import (
    DispatchSummary,
    SideEffectCoordinator,
    enqueue_settlement_side_effects,
)
from tradepost.services.trade_state import check_transition
from tradepost.services.variant_resolver import HeuristicVariantResolver, VariantResolver

logger = logging.getLogger(__name__)


async def _transfer_item(
    session: AsyncSession,
    trade: Trade,
    item: TradeItem,
    receiver_id: str,
    card: CardInfo | None,
    resolver: VariantResolver,
) -> ItemTransfer:
    """Move one item from its giver to the receiver, or raise if the giver is short."""
    variant = resolver.resolve(card, item.is_foil)

    decremented = await conditional_decrement(
        session, item.user_id, item.card_id, item.condition, variant, item.quantity
    )
    if not decremented.applied:
        raise InsufficientInventoryAtSettlementError(
            trade_id=trade.id,
            giver_id=item.user_id,
            card_id=item.card_id,
            condition=item.condition.value,
            variant=variant.value,
            required=item.quantity,
            available=decremented.available,
        )

    await increment(session, receiver_id, item.card_id, item.condition, variant, item.quantity)

    transfer = ItemTransfer(
        card_id=item.card_id,
        card_name=card.name if card else "Unknown Card",
        quantity=item.quantity,
        condition=item.condition,
        variant=variant,
        from_user_id=item.user_id,
        to_user_id=receiver_id,
    )
    logger.debug(
        "Trade %s: moved %s from %s to %s", trade.id, transfer.describe(), item.user_id, receiver_id
    )
    return transfer


async def _apply_transfers(
    session: AsyncSession,
    trade: Trade,
    cards: dict[str, CardInfo],
    resolver: VariantResolver,
) -> list[ItemTransfer]:
    transfers: list[ItemTransfer] = []
    partitions = (
        (trade.items_given_by(trade.initiator_id), trade.recipient_id),
        (trade.items_given_by(trade.recipient_id), trade.initiator_id),
    )
    for items, receiver_id in partitions:
        for item in items:
            transfers.append(
                await _transfer_item(
                    session, trade, item, receiver_id, cards.get(item.card_id), resolver
                )
            )
    return transfers


async def _record_failure(session: AsyncSession, trade_id: str, error: str) -> None:
    """Roll back the attempt, then persist its diagnostic on its own."""
    await session.rollback()
    try:
        await record_settlement_attempt(session, trade_id, error)
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("Could not record failed settlement attempt for trade %s", trade_id)


def _apply_dispatch(
    report: SettlementReport, summary: DispatchSummary, cards: dict[str, CardInfo]
) -> None:
    for _user_id, card_id in summary.removed_from_wishlist:
        card = cards.get(card_id)
        report.removed_from_wishlist.append(card.name if card else card_id)
    report.unlocked_accomplishments = summary.unlocked
    report.revoked_accomplishments = summary.revoked
    report.pending_side_effects -= summary.processed + summary.parked


async def settle_trade(
    session: AsyncSession,
    trade_id: str,
    caller_id: str | None,
    resolver: VariantResolver | None = None,
    coordinator: SideEffectCoordinator | None = None,
    dispatch_side_effects: bool | None = None,
) -> SettlementReport:
    """
    Execute an accepted trade.

    Either party may trigger settlement. ``caller_id`` of None means the
    system is settling on a party's behalf (settle on accept).

    This function owns the transaction: it commits on success and on
    failure (to record the attempt), rolling back any partial transfer.

    Raises:
        TradeNotFoundError: No such trade
        UnauthorizedTradeActionError: Caller is not a party
        IllegalTransitionError: Trade is not accepted (e.g., already completed)
        InsufficientInventoryAtSettlementError: A giver is short; nothing moved
        SettlementStoreError: The database failed; nothing moved
    """
    resolver = resolver or HeuristicVariantResolver()
    if dispatch_side_effects is None:
        dispatch_side_effects = settings.dispatch_side_effects_inline

    try:
        trade = await get_trade(session, trade_id)
    except SQLAlchemyError as e:
        logger.exception("Store failure while loading trade %s for settlement", trade_id)
        await _record_failure(session, trade_id, f"store failure: {type(e).__name__}")
        raise SettlementStoreError(trade_id, e) from e
    if trade is None:
        raise TradeNotFoundError(trade_id)

    check_transition(trade, TradeAction.COMPLETE, caller_id)

    logger.info(
        "Settling trade %s (%d items) for caller %s",
        trade.id,
        len(trade.items),
        caller_id or "system",
    )

    try:
        cards = await get_cards(session, sorted({item.card_id for item in trade.items}))
        transfers = await _apply_transfers(session, trade, cards, resolver)

        completed = await transition_status(
            session, trade.id, TradeStatus.ACCEPTED, TradeStatus.COMPLETED
        )
        if not completed:
            # Another settlement (or a reopen) changed the trade under us
            await session.rollback()
            current = await get_trade(session, trade.id)
            status = current.status.value if current else "missing"
            raise IllegalTransitionError(trade.id, status, TradeAction.COMPLETE.value)

        await record_settlement_attempt(session, trade.id, None)
        queued = await enqueue_settlement_side_effects(
            session, trade.id, trade.initiator_id, trade.recipient_id, transfers
        )
        await session.commit()

    except IllegalTransitionError:
        raise
    except SettlementError as e:
        logger.warning("Settlement of trade %s failed: %s (%s)", trade.id, e.message, e.detail)
        await _record_failure(session, trade.id, e.detail or e.message)
        raise
    except SQLAlchemyError as e:
        logger.exception("Store failure while settling trade %s", trade.id)
        await _record_failure(session, trade.id, f"store failure: {type(e).__name__}")
        raise SettlementStoreError(trade.id, e) from e

    report = SettlementReport(trade_id=trade.id, transfers=transfers, pending_side_effects=queued)
    logger.info("Trade %s completed: %d transfers", trade.id, len(transfers))

    if dispatch_side_effects:
        try:
            summary = await (coordinator or SideEffectCoordinator()).dispatch(
                session, trade_id=trade.id
            )
            _apply_dispatch(report, summary, cards)
        except Exception:
            # Inventory truth is committed; leftover messages wait for the drain job
            await session.rollback()
            logger.exception("Side-effect dispatch failed for trade %s", trade.id)

    return report


async def check_settleable(
    session: AsyncSession,
    trade_id: str,
    caller_id: str,
    resolver: VariantResolver | None = None,
) -> SettleCheck:
    """
    Read-only pre-check for settle_trade.

    Reports why settling would be refused right now without writing
    anything. A positive answer reserves nothing; the givers' inventory can
    still change before the trade is settled.
    """
    resolver = resolver or HeuristicVariantResolver()

    trade = await get_trade(session, trade_id)
    if trade is None:
        return SettleCheck(trade_id=trade_id, can_settle=False, reason="Trade not found.")

    try:
        check_transition(trade, TradeAction.COMPLETE, caller_id)
    except UnauthorizedTradeActionError as e:
        return SettleCheck(trade_id=trade.id, can_settle=False, reason=e.message)
    except IllegalTransitionError:
        if trade.status.is_terminal:
            reason = f"This trade is already {trade.status.value}."
        else:
            reason = "The trade must be accepted before it can be settled."
        return SettleCheck(trade_id=trade.id, can_settle=False, reason=reason)

    cards = await get_cards(session, sorted({item.card_id for item in trade.items}))
    required: dict[tuple[str, str, Condition, Variant], int] = {}
    for item in trade.items:
        variant = resolver.resolve(cards.get(item.card_id), item.is_foil)
        key = (item.user_id, item.card_id, item.condition, variant)
        required[key] = required.get(key, 0) + item.quantity

    shortages = []
    for (giver_id, card_id, condition, variant), needed in required.items():
        available = await get_quantity(session, giver_id, card_id, condition, variant)
        if available < needed:
            shortages.append(
                f"{giver_id} holds {available} of {needed} {card_id} "
                f"({condition.value}, {variant.value})"
            )

    if shortages:
        return SettleCheck(
            trade_id=trade.id,
            can_settle=False,
            reason="A collector no longer holds the cards they agreed to give.",
            shortages=shortages,
        )
    return SettleCheck(trade_id=trade.id, can_settle=True)
