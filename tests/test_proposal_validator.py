"""Tests for proposal validation."""

from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from tradepost.db.operations import set_quantity
from tradepost.models.failure import (
    FailureKind,
    InsufficientInventoryError,
    InvalidProposalError,
    NotConnectedError,
)
from tradepost.models.inventory import Condition, Variant
from tradepost.models.trade import ProposalItem, TradeProposal
from tradepost.services.proposal_validator import check_proposal_shape, validate_proposal


def proposal(
    recipient_id: str = "bob",
    offered: list[ProposalItem] | None = None,
    requested: list[ProposalItem] | None = None,
    **kwargs,
) -> TradeProposal:
    return TradeProposal(
        recipient_id=recipient_id,
        offered_items=offered if offered is not None else [ProposalItem("sv1-001", 1)],
        requested_items=requested if requested is not None else [ProposalItem("sv1-002", 1)],
        **kwargs,
    )


class TestProposalShape:
    def test_valid_proposal(self) -> None:
        check_proposal_shape("alice", proposal())

    def test_self_trade_rejected(self) -> None:
        with pytest.raises(InvalidProposalError) as exc_info:
            check_proposal_shape("alice", proposal(recipient_id="alice"))
        assert exc_info.value.kind == FailureKind.INVALID_INPUT

    def test_missing_recipient_rejected(self) -> None:
        with pytest.raises(InvalidProposalError):
            check_proposal_shape("alice", proposal(recipient_id=""))

    @pytest.mark.parametrize("quantity", [0, -2])
    def test_non_positive_quantity_rejected(self, quantity: int) -> None:
        with pytest.raises(InvalidProposalError):
            check_proposal_shape("alice", proposal(requested=[ProposalItem("sv1-002", quantity)]))

    def test_empty_card_id_rejected(self) -> None:
        with pytest.raises(InvalidProposalError):
            check_proposal_shape("alice", proposal(offered=[ProposalItem("", 1)]))

    def test_negative_money_rejected(self) -> None:
        with pytest.raises(InvalidProposalError):
            check_proposal_shape("alice", proposal(initiator_money_offer=Decimal("-1.00")))

    def test_gift_without_requested_items_is_valid(self) -> None:
        check_proposal_shape("alice", proposal(requested=[]))


class TestValidateProposal:
    async def test_valid_proposal_passes(self, seeded_session: AsyncSession) -> None:
        await validate_proposal(seeded_session, "alice", proposal())

    async def test_strangers_cannot_trade(self, seeded_session: AsyncSession) -> None:
        with pytest.raises(NotConnectedError) as exc_info:
            await validate_proposal(seeded_session, "alice", proposal(recipient_id="carol"))
        assert exc_info.value.status_code == 403

    async def test_friendship_is_symmetric(self, seeded_session: AsyncSession) -> None:
        """bob can propose to alice even though alice sent the friend request."""
        await validate_proposal(
            seeded_session,
            "bob",
            proposal(
                recipient_id="alice",
                offered=[ProposalItem("sv1-002", 2)],
                requested=[ProposalItem("sv1-001", 1)],
            ),
        )

    async def test_offering_more_than_owned_fails(self, seeded_session: AsyncSession) -> None:
        with pytest.raises(InsufficientInventoryError) as exc_info:
            await validate_proposal(
                seeded_session, "alice", proposal(offered=[ProposalItem("sv1-001", 2)])
            )
        assert exc_info.value.card_id == "sv1-001"
        assert exc_info.value.detail == "sv1-001"

    async def test_offering_unowned_card_fails(self, seeded_session: AsyncSession) -> None:
        with pytest.raises(InsufficientInventoryError):
            await validate_proposal(
                seeded_session, "alice", proposal(offered=[ProposalItem("sv3pt5-65", 1)])
            )

    async def test_quantity_aggregates_across_rows(self, seeded_session: AsyncSession) -> None:
        """Copies in any condition or variant count toward an offer."""
        await set_quantity(
            seeded_session, "alice", "sv1-001", Condition.LIGHTLY_PLAYED, Variant.HOLO, 1
        )

        await validate_proposal(
            seeded_session, "alice", proposal(offered=[ProposalItem("sv1-001", 2)])
        )

    async def test_repeated_lines_are_summed(self, seeded_session: AsyncSession) -> None:
        with pytest.raises(InsufficientInventoryError):
            await validate_proposal(
                seeded_session,
                "alice",
                proposal(
                    offered=[
                        ProposalItem("sv1-001", 1, Condition.NEAR_MINT),
                        ProposalItem("sv1-001", 1, Condition.LIGHTLY_PLAYED),
                    ]
                ),
            )

    async def test_recipient_inventory_not_checked(self, seeded_session: AsyncSession) -> None:
        """Requested items are only checked when the trade settles."""
        await validate_proposal(
            seeded_session, "alice", proposal(requested=[ProposalItem("sv1-002", 10)])
        )
