"""
Accomplishment evaluation.

Settlement treats this engine as a black box: it asks for a re-check of a
user and only logs the outcome. Each definition is a threshold over one
collection or trading metric; a re-check unlocks every newly satisfied
definition and revokes every unlocked one that no longer holds (a trade can
shrink a collection below a tier).
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession

from tradepost.db.operations import (
    count_friends,
    get_collection_totals,
    get_unlocked_accomplishments,
    revoke_accomplishment,
    unlock_accomplishment,
)
from tradepost.db.trade_operations import count_completed_trades

logger = logging.getLogger(__name__)


class Metric(str, Enum):
    UNIQUE_CARDS = "unique_cards"
    TOTAL_CARDS = "total_cards"
    COMPLETED_TRADES = "completed_trades"
    FRIENDS = "friends"


@dataclass(frozen=True, slots=True)
class AccomplishmentDefinition:
    type: str
    name: str
    metric: Metric
    threshold: int


DEFINITIONS: tuple[AccomplishmentDefinition, ...] = (
    AccomplishmentDefinition("first_card", "First Card", Metric.TOTAL_CARDS, 1),
    AccomplishmentDefinition("collector_10", "Budding Collector", Metric.UNIQUE_CARDS, 10),
    AccomplishmentDefinition("collector_50", "Dedicated Collector", Metric.UNIQUE_CARDS, 50),
    AccomplishmentDefinition("collector_100", "Serious Collector", Metric.UNIQUE_CARDS, 100),
    AccomplishmentDefinition("volume_collector_100", "Card Hoarder", Metric.TOTAL_CARDS, 100),
    AccomplishmentDefinition("volume_collector_500", "Card Vault", Metric.TOTAL_CARDS, 500),
    AccomplishmentDefinition("first_friend", "First Friend", Metric.FRIENDS, 1),
    AccomplishmentDefinition("first_trade", "First Trade", Metric.COMPLETED_TRADES, 1),
    AccomplishmentDefinition("frequent_trader", "Frequent Trader", Metric.COMPLETED_TRADES, 5),
    AccomplishmentDefinition("active_trader", "Active Trader", Metric.COMPLETED_TRADES, 10),
    AccomplishmentDefinition("seasoned_trader", "Seasoned Trader", Metric.COMPLETED_TRADES, 25),
)


@dataclass
class AccomplishmentResult:
    """Changes made by one re-evaluation."""

    user_id: str
    unlocked: list[str] = field(default_factory=list)
    revoked: list[str] = field(default_factory=list)


class AccomplishmentEngine:
    """Re-evaluates accomplishment thresholds for a user."""

    def __init__(self, definitions: tuple[AccomplishmentDefinition, ...] = DEFINITIONS) -> None:
        self._definitions = definitions

    async def _metrics(self, session: AsyncSession, user_id: str) -> dict[Metric, int]:
        unique_cards, total_cards = await get_collection_totals(session, user_id)
        return {
            Metric.UNIQUE_CARDS: unique_cards,
            Metric.TOTAL_CARDS: total_cards,
            Metric.COMPLETED_TRADES: await count_completed_trades(session, user_id),
            Metric.FRIENDS: await count_friends(session, user_id),
        }

    async def reevaluate(self, session: AsyncSession, user_id: str) -> AccomplishmentResult:
        """Unlock newly satisfied accomplishments and revoke lapsed ones."""
        metrics = await self._metrics(session, user_id)
        current = await get_unlocked_accomplishments(session, user_id)
        result = AccomplishmentResult(user_id=user_id)

        for definition in self._definitions:
            satisfied = metrics[definition.metric] >= definition.threshold
            if satisfied and definition.type not in current:
                await unlock_accomplishment(session, user_id, definition.type)
                result.unlocked.append(definition.type)
            elif not satisfied and definition.type in current:
                await revoke_accomplishment(session, user_id, definition.type)
                result.revoked.append(definition.type)

        if result.unlocked or result.revoked:
            logger.info(
                "Accomplishments for %s: unlocked=%s revoked=%s",
                user_id,
                result.unlocked,
                result.revoked,
            )
        return result
