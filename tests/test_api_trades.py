"""Tests for trade API endpoints."""

from datetime import timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from tradepost.config import settings
from tradepost.db.database import get_session
from tradepost.db.operations import set_quantity
from tradepost.db.trade_operations import utc_now
from tradepost.main import app
from tradepost.models.inventory import Condition, Variant
from tradepost.models.trade import ProposalItem, TradeProposal
from tradepost.services.trade_lifecycle import propose_trade

SWAP = {
    "initiator_id": "alice",
    "recipient_id": "bob",
    "message": "Swap?",
    "offered_items": [{"card_id": "sv1-001", "quantity": 1}],
    "requested_items": [{"card_id": "sv1-002", "quantity": 1}],
}


@pytest.fixture
async def client(session_factory, seeded_session: AsyncSession):
    """Provide an async test client with overridden database session."""

    async def override_get_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


async def create_swap(client: AsyncClient) -> str:
    response = await client.post("/trades", json=SWAP)
    assert response.status_code == 201
    return response.json()["id"]


class TestProposeTrade:
    async def test_creates_pending_trade(self, client: AsyncClient) -> None:
        response = await client.post("/trades", json=SWAP)

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "pending"
        assert data["initiator_message"] == "Swap?"
        assert [i["card_id"] for i in data["initiator_items"]] == ["sv1-001"]
        assert [i["card_id"] for i in data["recipient_items"]] == ["sv1-002"]
        assert data["settlement_attempts"] == 0

    async def test_not_friends(self, client: AsyncClient) -> None:
        response = await client.post("/trades", json={**SWAP, "recipient_id": "carol"})

        assert response.status_code == 403
        data = response.json()
        assert data["outcome"] == "known_failure"
        assert data["failure"]["kind"] == "not_connected"

    async def test_insufficient_inventory(self, client: AsyncClient) -> None:
        response = await client.post(
            "/trades",
            json={**SWAP, "offered_items": [{"card_id": "sv1-001", "quantity": 3}]},
        )

        assert response.status_code == 409
        failure = response.json()["failure"]
        assert failure["kind"] == "insufficient_inventory"
        assert failure["detail"] == "sv1-001"

    async def test_self_trade(self, client: AsyncClient) -> None:
        response = await client.post("/trades", json={**SWAP, "recipient_id": "alice"})

        assert response.status_code == 400
        assert response.json()["failure"]["kind"] == "invalid_input"

    async def test_zero_quantity_rejected_by_schema(self, client: AsyncClient) -> None:
        response = await client.post(
            "/trades",
            json={**SWAP, "requested_items": [{"card_id": "sv1-002", "quantity": 0}]},
        )

        assert response.status_code == 422


class TestGetTrade:
    async def test_get_trade(self, client: AsyncClient) -> None:
        trade_id = await create_swap(client)

        response = await client.get(f"/trades/{trade_id}")

        assert response.status_code == 200
        assert response.json()["id"] == trade_id

    async def test_missing_trade(self, client: AsyncClient) -> None:
        response = await client.get("/trades/does-not-exist")

        assert response.status_code == 404
        assert response.json()["failure"]["kind"] == "not_found"


class TestRespond:
    async def test_accept_settles(self, client: AsyncClient) -> None:
        trade_id = await create_swap(client)

        response = await client.post(
            f"/trades/{trade_id}/respond",
            json={"responder_id": "bob", "accept": True, "message": "Deal"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["trade"]["status"] == "completed"
        assert data["trade"]["completed_at"] is not None
        assert data["settlement"]["removed_from_collection"] == [
            "Sprigatito (1x normal)",
            "Fuecoco (1x normal)",
        ]

        collection = (await client.get("/collection/bob")).json()
        assert {(e["card_id"], e["quantity"]) for e in collection["entries"]} == {
            ("sv1-001", 1),
            ("sv1-002", 1),
        }

    async def test_decline(self, client: AsyncClient) -> None:
        trade_id = await create_swap(client)

        response = await client.post(
            f"/trades/{trade_id}/respond", json={"responder_id": "bob", "accept": False}
        )

        assert response.status_code == 200
        assert response.json()["trade"]["status"] == "declined"
        assert response.json()["settlement"] is None

    async def test_initiator_cannot_respond(self, client: AsyncClient) -> None:
        trade_id = await create_swap(client)

        response = await client.post(
            f"/trades/{trade_id}/respond", json={"responder_id": "alice", "accept": True}
        )

        assert response.status_code == 403
        assert response.json()["failure"]["kind"] == "unauthorized"

    async def test_expired_offer(
        self, client: AsyncClient, seeded_session: AsyncSession
    ) -> None:
        trade = await propose_trade(
            seeded_session,
            "alice",
            TradeProposal(recipient_id="bob", offered_items=[ProposalItem("sv1-001", 1)]),
            now=utc_now() - timedelta(days=10),
        )
        await seeded_session.commit()

        response = await client.post(
            f"/trades/{trade.id}/respond", json={"responder_id": "bob", "accept": True}
        )

        assert response.status_code == 409
        assert response.json()["failure"]["kind"] == "trade_expired"

    async def test_failed_settlement_reopens(
        self, client: AsyncClient, seeded_session: AsyncSession
    ) -> None:
        trade_id = await create_swap(client)
        await set_quantity(
            seeded_session, "bob", "sv1-002", Condition.NEAR_MINT, Variant.NORMAL, 0
        )
        await seeded_session.commit()

        response = await client.post(
            f"/trades/{trade_id}/respond", json={"responder_id": "bob", "accept": True}
        )

        assert response.status_code == 409
        assert response.json()["failure"]["kind"] == "insufficient_inventory_at_settlement"
        trade = (await client.get(f"/trades/{trade_id}")).json()
        assert trade["status"] == "pending"
        assert trade["settlement_attempts"] == 1


class TestExplicitSettle:
    @pytest.fixture(autouse=True)
    def no_settle_on_accept(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "settle_on_accept", False)

    async def accept(self, client: AsyncClient) -> str:
        trade_id = await create_swap(client)
        response = await client.post(
            f"/trades/{trade_id}/respond", json={"responder_id": "bob", "accept": True}
        )
        assert response.json()["trade"]["status"] == "accepted"
        return trade_id

    async def test_either_party_settles(self, client: AsyncClient) -> None:
        trade_id = await self.accept(client)

        response = await client.post(f"/trades/{trade_id}/settle", json={"caller_id": "alice"})

        assert response.status_code == 200
        assert len(response.json()["transfers"]) == 2
        trade = (await client.get(f"/trades/{trade_id}")).json()
        assert trade["status"] == "completed"

    async def test_settle_twice_conflicts(self, client: AsyncClient) -> None:
        trade_id = await self.accept(client)
        await client.post(f"/trades/{trade_id}/settle", json={"caller_id": "alice"})

        response = await client.post(f"/trades/{trade_id}/settle", json={"caller_id": "bob"})

        assert response.status_code == 409
        assert response.json()["failure"]["kind"] == "illegal_transition"

    async def test_failure_keeps_trade_accepted(
        self, client: AsyncClient, seeded_session: AsyncSession
    ) -> None:
        trade_id = await self.accept(client)
        await set_quantity(
            seeded_session, "bob", "sv1-002", Condition.NEAR_MINT, Variant.NORMAL, 0
        )
        await seeded_session.commit()

        response = await client.post(f"/trades/{trade_id}/settle", json={"caller_id": "alice"})

        assert response.status_code == 409
        trade = (await client.get(f"/trades/{trade_id}")).json()
        assert trade["status"] == "accepted"
        assert "available=0" in trade["last_settlement_error"]

    async def test_outsider_cannot_settle(self, client: AsyncClient) -> None:
        trade_id = await self.accept(client)

        response = await client.post(f"/trades/{trade_id}/settle", json={"caller_id": "carol"})

        assert response.status_code == 403

    async def test_settle_check(self, client: AsyncClient) -> None:
        trade_id = await self.accept(client)

        response = await client.get(f"/trades/{trade_id}/settle", params={"caller_id": "bob"})

        assert response.status_code == 200
        assert response.json() == {
            "trade_id": trade_id,
            "can_settle": True,
            "reason": None,
            "shortages": [],
        }
        trade = (await client.get(f"/trades/{trade_id}")).json()
        assert trade["status"] == "accepted"

    async def test_settle_check_on_pending_trade(self, client: AsyncClient) -> None:
        trade_id = await create_swap(client)

        response = await client.get(f"/trades/{trade_id}/settle", params={"caller_id": "alice"})

        assert response.status_code == 200
        assert response.json()["can_settle"] is False

    async def test_settle_check_requires_caller(self, client: AsyncClient) -> None:
        trade_id = await self.accept(client)

        response = await client.get(f"/trades/{trade_id}/settle")

        assert response.status_code == 422


class TestCancel:
    async def test_initiator_cancels(self, client: AsyncClient) -> None:
        trade_id = await create_swap(client)

        response = await client.post(f"/trades/{trade_id}/cancel", json={"initiator_id": "alice"})

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

    async def test_cancel_twice_conflicts(self, client: AsyncClient) -> None:
        trade_id = await create_swap(client)
        await client.post(f"/trades/{trade_id}/cancel", json={"initiator_id": "alice"})

        response = await client.post(f"/trades/{trade_id}/cancel", json={"initiator_id": "alice"})

        assert response.status_code == 409
        assert response.json()["failure"]["message"] == "Cannot cancel a trade that is cancelled."


class TestListingAndStats:
    async def test_list_user_trades(self, client: AsyncClient) -> None:
        await create_swap(client)
        await create_swap(client)

        response = await client.get("/trades/user/bob", params={"direction": "received"})

        assert response.status_code == 200
        assert response.json()["count"] == 2

    async def test_list_filters_status(self, client: AsyncClient) -> None:
        trade_id = await create_swap(client)
        await create_swap(client)
        await client.post(f"/trades/{trade_id}/cancel", json={"initiator_id": "alice"})

        response = await client.get("/trades/user/alice", params={"status": "cancelled"})

        assert [t["id"] for t in response.json()["trades"]] == [trade_id]

    async def test_page_size_capped(self, client: AsyncClient) -> None:
        response = await client.get("/trades/user/alice", params={"limit": 1000})
        assert response.status_code == 422

    async def test_stats(self, client: AsyncClient) -> None:
        trade_id = await create_swap(client)
        await client.post(
            f"/trades/{trade_id}/respond", json={"responder_id": "bob", "accept": True}
        )

        response = await client.get("/trades/user/alice/stats")

        assert response.status_code == 200
        data = response.json()
        assert data["total_trades"] == 1
        assert data["completed_trades"] == 1
        assert data["success_rate"] == 100.0


class TestMaintenance:
    async def test_expire_sweep(self, client: AsyncClient, seeded_session: AsyncSession) -> None:
        stale = await propose_trade(
            seeded_session,
            "alice",
            TradeProposal(recipient_id="bob", offered_items=[ProposalItem("sv1-001", 1)]),
            now=utc_now() - timedelta(days=8),
        )
        await seeded_session.commit()
        await create_swap(client)

        response = await client.post("/trades/maintenance/expire")

        assert response.status_code == 200
        assert response.json() == {"expired": [stale.id], "count": 1}
        trade = (await client.get(f"/trades/{stale.id}")).json()
        assert trade["status"] == "cancelled"
