"""Tests for scheduled jobs."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from tradepost.db.trade_operations import count_pending_side_effects, get_trade, utc_now
from tradepost.jobs.drain_outbox import run_outbox_drain
from tradepost.jobs.expire_trades import run_expiry_sweep
from tradepost.models.trade import ProposalItem, TradeProposal, TradeStatus
from tradepost.services.accomplishments import AccomplishmentResult
from tradepost.services.settlement import settle_trade
from tradepost.services.side_effects import SideEffectCoordinator
from tradepost.services.trade_lifecycle import propose_trade, respond_to_trade


def offer() -> TradeProposal:
    return TradeProposal(recipient_id="bob", offered_items=[ProposalItem("sv1-001", 1)])


class FirstTradeAccomplishments:
    async def reevaluate(self, session: AsyncSession, user_id: str) -> AccomplishmentResult:
        return AccomplishmentResult(user_id=user_id, unlocked=["first_trade"])


def broken_factory() -> MagicMock:
    mock_session = AsyncMock()
    mock_session.__aenter__ = AsyncMock(side_effect=OperationalError("BEGIN", {}, Exception("down")))
    mock_session.__aexit__ = AsyncMock(return_value=None)
    return MagicMock(return_value=mock_session)


class TestRunExpirySweep:
    async def test_expires_in_batches(self, session_factory, seeded_session: AsyncSession):
        """Test that every overdue trade is expired across several batches."""
        stale_ids = []
        for _ in range(3):
            trade = await propose_trade(
                seeded_session, "alice", offer(), now=utc_now() - timedelta(days=8)
            )
            stale_ids.append(trade.id)
        fresh = await propose_trade(seeded_session, "alice", offer())
        await seeded_session.commit()

        with patch("tradepost.jobs.expire_trades.async_session_factory", session_factory):
            total = await run_expiry_sweep(batch_size=2)

        assert total == 3
        for trade_id in stale_ids:
            trade = await get_trade(seeded_session, trade_id)
            assert trade is not None and trade.status == TradeStatus.CANCELLED
        fresh_now = await get_trade(seeded_session, fresh.id)
        assert fresh_now is not None and fresh_now.status == TradeStatus.PENDING

    async def test_database_error_aborts(self):
        """Test that a store failure ends the sweep instead of raising."""
        with patch("tradepost.jobs.expire_trades.async_session_factory", broken_factory()):
            assert await run_expiry_sweep() == 0


class TestRunOutboxDrain:
    async def test_drains_deferred_side_effects(
        self, session_factory, seeded_session: AsyncSession
    ):
        """Test that messages queued without inline dispatch are processed."""
        trade = await propose_trade(seeded_session, "alice", offer())
        await seeded_session.commit()
        await respond_to_trade(seeded_session, trade.id, "bob", accept=True, settle_on_accept=False)
        await seeded_session.commit()
        await settle_trade(seeded_session, trade.id, "bob", dispatch_side_effects=False)
        assert await count_pending_side_effects(seeded_session) == 3

        with patch("tradepost.jobs.drain_outbox.async_session_factory", session_factory):
            summary = await run_outbox_drain()

        assert summary.processed == 3
        assert summary.failed == 0
        assert await count_pending_side_effects(seeded_session) == 0

    async def test_reports_accomplishment_changes(
        self, session_factory, seeded_session: AsyncSession
    ):
        trade = await propose_trade(seeded_session, "alice", offer())
        await seeded_session.commit()
        await respond_to_trade(seeded_session, trade.id, "bob", accept=True, settle_on_accept=False)
        await seeded_session.commit()
        await settle_trade(seeded_session, trade.id, "bob", dispatch_side_effects=False)

        coordinator = SideEffectCoordinator(accomplishments=FirstTradeAccomplishments())
        with patch("tradepost.jobs.drain_outbox.async_session_factory", session_factory):
            summary = await run_outbox_drain(coordinator=coordinator)

        assert summary.unlocked == {"alice": ["first_trade"], "bob": ["first_trade"]}
        assert summary.revoked == {}
        assert summary.removed_from_wishlist == []

    async def test_database_error_aborts(self):
        with patch("tradepost.jobs.drain_outbox.async_session_factory", broken_factory()):
            summary = await run_outbox_drain()

        assert summary.processed == 0
