"""
Collection API endpoints.

Read a user's inventory and add or overwrite individual rows. Trades move
cards through the settlement engine, not through these endpoints.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tradepost.db import get_card, increment, list_inventory, set_quantity
from tradepost.db.database import get_session
from tradepost.models.inventory import Condition, Variant
from tradepost.services.variant_resolver import resolve_variant

router = APIRouter(prefix="/collection", tags=["collection"])


class InventoryEntryResponse(BaseModel):
    card_id: str
    condition: Condition
    variant: Variant
    quantity: int


class CollectionResponse(BaseModel):
    """Response model for collection data."""

    user_id: str
    entries: list[InventoryEntryResponse] = Field(default_factory=list)
    total_cards: int = 0
    unique_cards: int = 0


class AddCardRequest(BaseModel):
    """Request model for adding copies of a card."""

    card_id: str = Field(..., min_length=1, examples=["sv3pt5-65"])
    quantity: int = Field(default=1, ge=1)
    condition: Condition = Condition.NEAR_MINT
    variant: Variant | None = Field(
        default=None,
        description="Print variant; resolved from catalog data when omitted",
    )
    is_foil: bool = False


class SetQuantityRequest(BaseModel):
    """Request model for overwriting one row. Quantity 0 removes it."""

    card_id: str = Field(..., min_length=1)
    condition: Condition
    variant: Variant
    quantity: int = Field(..., ge=0)


async def _collection_response(session: AsyncSession, user_id: str) -> CollectionResponse:
    entries = await list_inventory(session, user_id)
    return CollectionResponse(
        user_id=user_id,
        entries=[
            InventoryEntryResponse(
                card_id=e.card_id, condition=e.condition, variant=e.variant, quantity=e.quantity
            )
            for e in entries
        ],
        total_cards=sum(e.quantity for e in entries),
        unique_cards=len({e.card_id for e in entries}),
    )


@router.get("/{user_id}", response_model=CollectionResponse)
async def get_user_collection(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CollectionResponse:
    """Get every inventory row of a user."""
    return await _collection_response(session, user_id)


@router.post("/{user_id}/cards", response_model=CollectionResponse)
async def add_cards(
    user_id: str,
    request: AddCardRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CollectionResponse:
    """
    Add copies of a card to a user's collection.

    Merges into the existing (card, condition, variant) row if there is one.
    """
    variant = request.variant
    if variant is None:
        variant = resolve_variant(await get_card(session, request.card_id), request.is_foil)

    await increment(
        session, user_id, request.card_id, request.condition, variant, request.quantity
    )
    return await _collection_response(session, user_id)


@router.put("/{user_id}/cards", response_model=CollectionResponse)
async def set_card_quantity(
    user_id: str,
    request: SetQuantityRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CollectionResponse:
    """Overwrite the quantity of one row; 0 deletes it."""
    if not request.card_id.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Card id cannot be empty",
        )
    await set_quantity(
        session, user_id, request.card_id, request.condition, request.variant, request.quantity
    )
    return await _collection_response(session, user_id)
