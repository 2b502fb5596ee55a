"""Tests for collection API endpoints."""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from tradepost.db.database import get_session
from tradepost.main import app


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


class TestGetCollection:
    async def test_get_empty_collection(self, client: AsyncClient) -> None:
        """Returns empty collection for unknown user."""
        response = await client.get("/collection/nobody")

        assert response.status_code == 200
        data = response.json()
        assert data["entries"] == []
        assert data["total_cards"] == 0
        assert data["unique_cards"] == 0

    async def test_get_seeded_collection(self, client: AsyncClient) -> None:
        response = await client.get("/collection/bob")

        data = response.json()
        assert data["entries"] == [
            {"card_id": "sv1-002", "condition": "near_mint", "variant": "normal", "quantity": 2}
        ]
        assert data["total_cards"] == 2
        assert data["unique_cards"] == 1


class TestAddCards:
    async def test_merges_into_existing_row(self, client: AsyncClient) -> None:
        response = await client.post(
            "/collection/bob/cards",
            json={"card_id": "sv1-002", "quantity": 3, "variant": "normal"},
        )

        assert response.status_code == 200
        assert response.json()["entries"][0]["quantity"] == 5

    async def test_variant_resolved_from_catalog(self, client: AsyncClient) -> None:
        """Alakazam ex is stored as holo when no variant is given."""
        response = await client.post("/collection/carol/cards", json={"card_id": "sv3pt5-65"})

        entry = response.json()["entries"][0]
        assert entry["variant"] == "holo"
        assert entry["condition"] == "near_mint"

    async def test_foil_flag_resolves_holo(self, client: AsyncClient) -> None:
        response = await client.post(
            "/collection/carol/cards", json={"card_id": "sv1-001", "is_foil": True}
        )

        assert response.json()["entries"][0]["variant"] == "holo"

    async def test_invalid_quantity(self, client: AsyncClient) -> None:
        response = await client.post(
            "/collection/carol/cards", json={"card_id": "sv1-001", "quantity": 0}
        )

        assert response.status_code == 422


class TestSetQuantity:
    async def test_overwrites_quantity(self, client: AsyncClient) -> None:
        response = await client.put(
            "/collection/bob/cards",
            json={"card_id": "sv1-002", "condition": "near_mint", "variant": "normal", "quantity": 7},
        )

        assert response.status_code == 200
        assert response.json()["total_cards"] == 7

    async def test_zero_removes_row(self, client: AsyncClient) -> None:
        response = await client.put(
            "/collection/bob/cards",
            json={"card_id": "sv1-002", "condition": "near_mint", "variant": "normal", "quantity": 0},
        )

        assert response.status_code == 200
        assert response.json()["entries"] == []

    async def test_blank_card_id_rejected(self, client: AsyncClient) -> None:
        response = await client.put(
            "/collection/bob/cards",
            json={"card_id": "   ", "condition": "near_mint", "variant": "normal", "quantity": 1},
        )

        assert response.status_code == 400
