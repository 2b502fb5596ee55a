"""
Side-Effect Coordinator.

After a settlement, two kinds of downstream updates happen:

- Wishlist cleanup: each card a party received is removed from that party's
  wishlist ("you wanted it, now you have it"). No-op if not wishlisted.
- Accomplishment re-check: both parties are re-evaluated, regardless of
  which direction cards moved.

Settlement writes these as outbox messages in its own transaction, so they
exist if and only if the transfer committed. This module dispatches them.

INVARIANTS:
- A side-effect failure NEVER fails or rolls back the settlement
- Every failure is logged and recorded on its outbox row
- Failed messages stay pending and are retried by the drain job until
  they reach the attempt limit, then they are parked as failed
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from tradepost.config import settings
from tradepost.db.operations import remove_from_wishlist_if_present
from tradepost.db.trade_operations import (
    enqueue_side_effect,
    get_pending_side_effects,
    mark_side_effect_done,
    record_side_effect_failure,
)
from tradepost.models.outbox import SideEffectKind, SideEffectMessage, SideEffectStatus
from tradepost.models.trade import ItemTransfer
from tradepost.services.accomplishments import AccomplishmentEngine, AccomplishmentResult

logger = logging.getLogger(__name__)


@dataclass
class DispatchSummary:
    """What a dispatch run did."""

    processed: int = 0
    failed: int = 0
    parked: int = 0
    removed_from_wishlist: list[tuple[str, str]] = field(default_factory=list)
    """(user_id, card_id) pairs removed from wishlists."""

    unlocked: dict[str, list[str]] = field(default_factory=dict)
    revoked: dict[str, list[str]] = field(default_factory=dict)

    def merge(self, other: "DispatchSummary") -> None:
        """Fold another run into this one."""
        self.processed += other.processed
        self.failed += other.failed
        self.parked += other.parked
        self.removed_from_wishlist.extend(other.removed_from_wishlist)
        for user_id, names in other.unlocked.items():
            self.unlocked.setdefault(user_id, []).extend(names)
        for user_id, names in other.revoked.items():
            self.revoked.setdefault(user_id, []).extend(names)


async def enqueue_settlement_side_effects(
    session: AsyncSession,
    trade_id: str,
    initiator_id: str,
    recipient_id: str,
    transfers: list[ItemTransfer],
) -> int:
    """
    Queue the side effects of a settlement in the caller's transaction.

    Returns the number of messages queued.
    """
    queued = 0
    seen: set[tuple[str, str]] = set()
    for transfer in transfers:
        key = (transfer.to_user_id, transfer.card_id)
        if key in seen:
            continue
        seen.add(key)
        await enqueue_side_effect(
            session,
            trade_id,
            SideEffectKind.WISHLIST_CLEANUP,
            transfer.to_user_id,
            transfer.card_id,
        )
        queued += 1

    for user_id in (initiator_id, recipient_id):
        await enqueue_side_effect(session, trade_id, SideEffectKind.ACCOMPLISHMENT_RECHECK, user_id)
        queued += 1

    return queued


class SideEffectCoordinator:
    """Dispatches queued side effects, one committed unit per message."""

    def __init__(
        self,
        accomplishments: AccomplishmentEngine | None = None,
        max_attempts: int | None = None,
    ) -> None:
        self._accomplishments = accomplishments or AccomplishmentEngine()
        self._max_attempts = max_attempts or settings.side_effect_max_attempts

    async def _handle(
        self, session: AsyncSession, message: SideEffectMessage
    ) -> bool | AccomplishmentResult:
        """Run one side effect; returns the wishlist removal flag or re-check result."""
        if message.kind == SideEffectKind.WISHLIST_CLEANUP:
            if message.card_id is None:
                msg = f"Wishlist cleanup message {message.id} has no card id"
                raise ValueError(msg)
            return await remove_from_wishlist_if_present(
                session, message.user_id, message.card_id
            )

        return await self._accomplishments.reevaluate(session, message.user_id)

    @staticmethod
    def _record(
        summary: DispatchSummary,
        message: SideEffectMessage,
        outcome: bool | AccomplishmentResult,
    ) -> None:
        summary.processed += 1
        if isinstance(outcome, AccomplishmentResult):
            if outcome.unlocked:
                summary.unlocked.setdefault(message.user_id, []).extend(outcome.unlocked)
            if outcome.revoked:
                summary.revoked.setdefault(message.user_id, []).extend(outcome.revoked)
        elif outcome and message.card_id is not None:
            summary.removed_from_wishlist.append((message.user_id, message.card_id))
            logger.info(
                "Removed %s from %s's wishlist after trade %s",
                message.card_id,
                message.user_id,
                message.trade_id,
            )

    async def dispatch(
        self,
        session: AsyncSession,
        trade_id: str | None = None,
        limit: int = 100,
    ) -> DispatchSummary:
        """
        Process pending outbox messages (for one trade, or all).

        Each message commits on its own. A failing handler is rolled back,
        logged, and its attempt recorded; the remaining messages still run.
        """
        summary = DispatchSummary()
        messages = await get_pending_side_effects(session, trade_id=trade_id, limit=limit)

        for message in messages:
            try:
                outcome = await self._handle(session, message)
                await mark_side_effect_done(session, message.id)
                await session.commit()
                self._record(summary, message, outcome)
            except Exception as e:
                # Side effects must never propagate into the settlement
                await session.rollback()
                logger.warning(
                    "Side effect %s (%s for %s, trade %s) failed on attempt %d: %s",
                    message.id,
                    message.kind.value,
                    message.user_id,
                    message.trade_id,
                    message.attempts + 1,
                    e,
                )
                status = await record_side_effect_failure(
                    session, message, f"{type(e).__name__}: {e}", self._max_attempts
                )
                await session.commit()
                summary.failed += 1
                if status == SideEffectStatus.FAILED:
                    summary.parked += 1
                    logger.error(
                        "Side effect %s parked after %d attempts", message.id, self._max_attempts
                    )

        return summary
