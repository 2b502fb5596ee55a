"""
Database operations for trades and the side-effect outbox.

Trade status changes are compare-and-set updates: they only apply when the
row is still in the expected status, so concurrent actors cannot both move
the same trade. Callers own the transaction; nothing here commits.
"""

from datetime import UTC, datetime, timedelta

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tradepost.config import TRADE_EXPIRY_DAYS
from tradepost.models.db import SideEffectMessageDB, TradeDB, TradeItemDB
from tradepost.models.inventory import Condition
from tradepost.models.outbox import SideEffectKind, SideEffectMessage, SideEffectStatus
from tradepost.models.trade import (
    Trade,
    TradeDirection,
    TradeItem,
    TradeMethod,
    TradeProposal,
    TradeStatus,
)


def utc_now() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


# --- Trade Operations ---


async def create_trade(
    session: AsyncSession,
    initiator_id: str,
    proposal: TradeProposal,
    now: datetime | None = None,
) -> TradeDB:
    """
    Persist a new pending trade together with all of its items.

    Offered items are owned by the initiator, requested items by the
    recipient. The trade expires TRADE_EXPIRY_DAYS after creation.
    """
    created_at = now or utc_now()
    trade = TradeDB(
        initiator_id=initiator_id,
        recipient_id=proposal.recipient_id,
        status=TradeStatus.PENDING.value,
        initiator_message=proposal.message,
        initiator_money_offer=proposal.initiator_money_offer,
        recipient_money_offer=proposal.recipient_money_offer,
        trade_method=proposal.trade_method.value if proposal.trade_method else None,
        initiator_shipping_included=proposal.initiator_shipping_included,
        recipient_shipping_included=proposal.recipient_shipping_included,
        parent_trade_id=proposal.parent_trade_id,
        settlement_attempts=0,
        created_at=created_at,
        updated_at=created_at,
        expires_at=created_at + timedelta(days=TRADE_EXPIRY_DAYS),
    )

    for owner_id, items in (
        (initiator_id, proposal.offered_items),
        (proposal.recipient_id, proposal.requested_items),
    ):
        for item in items:
            trade.items.append(
                TradeItemDB(
                    user_id=owner_id,
                    card_id=item.card_id,
                    quantity=item.quantity,
                    condition=item.condition.value,
                    is_foil=item.is_foil,
                    notes=item.notes,
                )
            )

    session.add(trade)
    await session.flush()
    return trade


async def get_trade_row(session: AsyncSession, trade_id: str) -> TradeDB | None:
    """Load a trade row with its items, refreshing any cached copy."""
    result = await session.execute(
        select(TradeDB)
        .where(TradeDB.id == trade_id)
        .options(selectinload(TradeDB.items))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_trade(session: AsyncSession, trade_id: str) -> Trade | None:
    """Get a trade by id as a domain model, or None if it doesn't exist."""
    row = await get_trade_row(session, trade_id)
    return trade_to_model(row) if row else None


def trade_to_model(row: TradeDB) -> Trade:
    """Convert a database trade to a domain model."""
    return Trade(
        id=row.id,
        initiator_id=row.initiator_id,
        recipient_id=row.recipient_id,
        status=TradeStatus(row.status),
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
        expires_at=as_utc(row.expires_at),
        items=[
            TradeItem(
                id=item.id,
                trade_id=item.trade_id,
                user_id=item.user_id,
                card_id=item.card_id,
                quantity=item.quantity,
                condition=Condition(item.condition),
                is_foil=item.is_foil,
                notes=item.notes,
            )
            for item in row.items
        ],
        initiator_message=row.initiator_message,
        recipient_message=row.recipient_message,
        initiator_money_offer=row.initiator_money_offer,
        recipient_money_offer=row.recipient_money_offer,
        trade_method=TradeMethod(row.trade_method) if row.trade_method else None,
        initiator_shipping_included=row.initiator_shipping_included,
        recipient_shipping_included=row.recipient_shipping_included,
        parent_trade_id=row.parent_trade_id,
        settlement_attempts=row.settlement_attempts,
        last_settlement_error=row.last_settlement_error,
        completed_at=as_utc(row.completed_at) if row.completed_at else None,
    )


async def list_user_trades(
    session: AsyncSession,
    user_id: str,
    status: TradeStatus | None = None,
    direction: TradeDirection = TradeDirection.ALL,
    limit: int = 50,
    page: int = 1,
) -> list[Trade]:
    """Trades a user takes part in, newest first."""
    query = select(TradeDB).options(selectinload(TradeDB.items))

    if direction == TradeDirection.SENT:
        query = query.where(TradeDB.initiator_id == user_id)
    elif direction == TradeDirection.RECEIVED:
        query = query.where(TradeDB.recipient_id == user_id)
    else:
        query = query.where(or_(TradeDB.initiator_id == user_id, TradeDB.recipient_id == user_id))

    if status is not None:
        query = query.where(TradeDB.status == status.value)

    offset = (max(page, 1) - 1) * limit
    result = await session.execute(
        query.order_by(TradeDB.created_at.desc(), TradeDB.id).offset(offset).limit(limit)
    )
    return [trade_to_model(row) for row in result.scalars().all()]


async def count_trades_by_status(session: AsyncSession, user_id: str) -> dict[TradeStatus, int]:
    """Number of trades per status that a user takes part in."""
    result = await session.execute(
        select(TradeDB.status, func.count(TradeDB.id))
        .where(or_(TradeDB.initiator_id == user_id, TradeDB.recipient_id == user_id))
        .group_by(TradeDB.status)
    )
    counts = {status: 0 for status in TradeStatus}
    for status, count in result.all():
        counts[TradeStatus(status)] = int(count)
    return counts


async def transition_status(
    session: AsyncSession,
    trade_id: str,
    expected: TradeStatus,
    new: TradeStatus,
    now: datetime | None = None,
    recipient_message: str | None = None,
) -> bool:
    """
    Move a trade from ``expected`` to ``new`` status.

    Returns False (and changes nothing) if the trade is no longer in the
    expected status.
    """
    changed_at = now or utc_now()
    values: dict[str, object] = {"status": new.value, "updated_at": changed_at}
    if recipient_message is not None:
        values["recipient_message"] = recipient_message
    if new == TradeStatus.COMPLETED:
        values["completed_at"] = changed_at

    result = await session.execute(
        update(TradeDB)
        .where(TradeDB.id == trade_id, TradeDB.status == expected.value)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount) == 1  # type: ignore[attr-defined]


async def record_settlement_attempt(
    session: AsyncSession, trade_id: str, error: str | None = None
) -> None:
    """Count a settlement attempt and store (or clear) its error."""
    await session.execute(
        update(TradeDB)
        .where(TradeDB.id == trade_id)
        .values(
            settlement_attempts=TradeDB.settlement_attempts + 1,
            last_settlement_error=error,
            updated_at=utc_now(),
        )
        .execution_options(synchronize_session=False)
    )


async def find_expired_pending_trades(
    session: AsyncSession, now: datetime | None = None, limit: int = 500
) -> list[str]:
    """Ids of pending trades whose expiry has passed, oldest first."""
    cutoff = now or utc_now()
    result = await session.execute(
        select(TradeDB.id)
        .where(TradeDB.status == TradeStatus.PENDING.value, TradeDB.expires_at <= cutoff)
        .order_by(TradeDB.expires_at)
        .limit(limit)
    )
    return list(result.scalars().all())


async def count_completed_trades(session: AsyncSession, user_id: str) -> int:
    result = await session.execute(
        select(func.count(TradeDB.id)).where(
            TradeDB.status == TradeStatus.COMPLETED.value,
            or_(TradeDB.initiator_id == user_id, TradeDB.recipient_id == user_id),
        )
    )
    return int(result.scalar_one())


# --- Outbox Operations ---


async def enqueue_side_effect(
    session: AsyncSession,
    trade_id: str,
    kind: SideEffectKind,
    user_id: str,
    card_id: str | None = None,
) -> None:
    """Queue a side effect in the caller's transaction."""
    session.add(
        SideEffectMessageDB(
            trade_id=trade_id,
            kind=kind.value,
            user_id=user_id,
            card_id=card_id,
            status=SideEffectStatus.PENDING.value,
            attempts=0,
        )
    )
    await session.flush()


async def get_pending_side_effects(
    session: AsyncSession, trade_id: str | None = None, limit: int = 100
) -> list[SideEffectMessage]:
    """Pending outbox messages in insertion order, optionally for one trade."""
    query = select(SideEffectMessageDB).where(
        SideEffectMessageDB.status == SideEffectStatus.PENDING.value
    )
    if trade_id is not None:
        query = query.where(SideEffectMessageDB.trade_id == trade_id)
    result = await session.execute(query.order_by(SideEffectMessageDB.id).limit(limit))
    return [
        SideEffectMessage(
            id=row.id,
            trade_id=row.trade_id,
            kind=SideEffectKind(row.kind),
            user_id=row.user_id,
            card_id=row.card_id,
            attempts=row.attempts,
        )
        for row in result.scalars().all()
    ]


async def count_pending_side_effects(session: AsyncSession) -> int:
    result = await session.execute(
        select(func.count(SideEffectMessageDB.id)).where(
            SideEffectMessageDB.status == SideEffectStatus.PENDING.value
        )
    )
    return int(result.scalar_one())


async def mark_side_effect_done(session: AsyncSession, message_id: int) -> None:
    await session.execute(
        update(SideEffectMessageDB)
        .where(SideEffectMessageDB.id == message_id)
        .values(
            status=SideEffectStatus.DONE.value,
            attempts=SideEffectMessageDB.attempts + 1,
            last_error=None,
            processed_at=utc_now(),
        )
        .execution_options(synchronize_session=False)
    )


async def record_side_effect_failure(
    session: AsyncSession, message: SideEffectMessage, error: str, max_attempts: int
) -> SideEffectStatus:
    """
    Count a failed dispatch.

    The message stays pending until it has failed ``max_attempts`` times,
    after which it is parked as failed. Returns the resulting status.
    """
    attempts = message.attempts + 1
    status = SideEffectStatus.FAILED if attempts >= max_attempts else SideEffectStatus.PENDING
    await session.execute(
        update(SideEffectMessageDB)
        .where(SideEffectMessageDB.id == message.id)
        .values(
            status=status.value,
            attempts=attempts,
            last_error=error[:1000],
            processed_at=utc_now() if status == SideEffectStatus.FAILED else None,
        )
        .execution_options(synchronize_session=False)
    )
    return status
