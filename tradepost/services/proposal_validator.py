"""
Proposal Validation Service.

Checks the preconditions of a new trade before anything is persisted:

1. Input sanity (distinct parties, positive quantities, non-negative money)
2. The parties are friends (accepted friendship in either direction)
3. The initiator holds enough copies of every offered card, summed over all
   condition/variant rows

The recipient's holdings are NOT checked here. Requested items are validated
lazily when the trade settles, so a proposal never blocks on the other
collector's inventory; the accept can therefore still fail later with
InsufficientInventoryAtSettlementError.
"""

import logging
from collections import Counter

from sqlalchemy.ext.asyncio import AsyncSession

from tradepost.db.operations import are_connected, get_aggregate_quantities
from tradepost.models.failure import (
    InsufficientInventoryError,
    InvalidProposalError,
    NotConnectedError,
)
from tradepost.models.trade import ProposalItem, TradeProposal

logger = logging.getLogger(__name__)


def check_proposal_shape(initiator_id: str, proposal: TradeProposal) -> None:
    """
    Validate a proposal without touching the database.

    Raises:
        InvalidProposalError: On a self-trade, a non-positive quantity,
            or a negative money offer.
    """
    if not initiator_id or not proposal.recipient_id:
        raise InvalidProposalError("both parties must be identified")

    if initiator_id == proposal.recipient_id:
        raise InvalidProposalError("you cannot trade with yourself")

    for item in [*proposal.offered_items, *proposal.requested_items]:
        if not item.card_id:
            raise InvalidProposalError("every item needs a card id")
        if item.quantity <= 0:
            raise InvalidProposalError(f"quantity for card {item.card_id} must be positive")

    if proposal.initiator_money_offer < 0 or proposal.recipient_money_offer < 0:
        raise InvalidProposalError("money offers cannot be negative")


def _total_by_card(items: list[ProposalItem]) -> Counter[str]:
    totals: Counter[str] = Counter()
    for item in items:
        totals[item.card_id] += item.quantity
    return totals


async def validate_proposal(
    session: AsyncSession,
    initiator_id: str,
    proposal: TradeProposal,
) -> None:
    """
    Validate a trade proposal.

    Raises:
        InvalidProposalError: If the proposal is malformed
        NotConnectedError: If the parties are not friends
        InsufficientInventoryError: If the initiator offers more copies of a
            card than they own (names the card id only)
    """
    check_proposal_shape(initiator_id, proposal)

    if not await are_connected(session, initiator_id, proposal.recipient_id):
        logger.info(
            "Rejected proposal from %s to %s: not connected", initiator_id, proposal.recipient_id
        )
        raise NotConnectedError(initiator_id, proposal.recipient_id)

    offered = _total_by_card(proposal.offered_items)
    owned = await get_aggregate_quantities(session, initiator_id, list(offered))

    for card_id, quantity in offered.items():
        if owned.get(card_id, 0) < quantity:
            logger.info(
                "Rejected proposal from %s: offers %d of %s, owns %d",
                initiator_id,
                quantity,
                card_id,
                owned.get(card_id, 0),
            )
            raise InsufficientInventoryError(card_id)
