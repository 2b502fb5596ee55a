"""
Database CRUD operations for collections, wishlists, friendships and catalog.

Inventory rows are mutated only through conditional statements so that
concurrent writers cannot drive a quantity negative or resurrect a zero row:

- ``conditional_decrement`` is a compare-and-swap on the observed quantity.
- ``increment`` is an upsert-merge (UPDATE quantity + n, INSERT if absent).
- A row whose quantity would reach zero is deleted instead.

None of these functions commit; callers own the transaction.
"""

from dataclasses import dataclass

from sqlalchemy import ColumnElement, and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tradepost.models.db import (
    CardDB,
    FriendshipDB,
    InventoryEntryDB,
    UserAccomplishmentDB,
    WishlistEntryDB,
)
from tradepost.models.inventory import CardInfo, Condition, InventoryEntry, Variant

# Compare-and-swap retries before a contended decrement gives up
DECREMENT_CAS_ATTEMPTS = 3


@dataclass(frozen=True, slots=True)
class DecrementResult:
    """Outcome of a conditional decrement."""

    applied: bool
    available: int
    remaining: int


def _entry_key(
    owner_id: str, card_id: str, condition: Condition, variant: Variant
) -> ColumnElement[bool]:
    return and_(
        InventoryEntryDB.user_id == owner_id,
        InventoryEntryDB.card_id == card_id,
        InventoryEntryDB.condition == condition.value,
        InventoryEntryDB.variant == variant.value,
    )


def entry_to_model(row: InventoryEntryDB) -> InventoryEntry:
    """Convert a database inventory row to a domain model."""
    return InventoryEntry(
        owner_id=row.user_id,
        card_id=row.card_id,
        condition=Condition(row.condition),
        variant=Variant(row.variant),
        quantity=row.quantity,
    )


# --- Inventory Operations ---


async def get_quantity(
    session: AsyncSession,
    owner_id: str,
    card_id: str,
    condition: Condition,
    variant: Variant,
) -> int:
    """Quantity held for one (owner, card, condition, variant); 0 if absent."""
    result = await session.execute(
        select(InventoryEntryDB.quantity).where(_entry_key(owner_id, card_id, condition, variant))
    )
    return result.scalar_one_or_none() or 0


async def get_aggregate_quantity(session: AsyncSession, owner_id: str, card_id: str) -> int:
    """Total copies of a card an owner holds across every condition and variant."""
    result = await session.execute(
        select(func.coalesce(func.sum(InventoryEntryDB.quantity), 0)).where(
            InventoryEntryDB.user_id == owner_id,
            InventoryEntryDB.card_id == card_id,
        )
    )
    return int(result.scalar_one())


async def get_aggregate_quantities(
    session: AsyncSession, owner_id: str, card_ids: list[str]
) -> dict[str, int]:
    """Aggregate quantities for several cards at once (missing cards map to 0)."""
    if not card_ids:
        return {}
    result = await session.execute(
        select(InventoryEntryDB.card_id, func.sum(InventoryEntryDB.quantity))
        .where(InventoryEntryDB.user_id == owner_id, InventoryEntryDB.card_id.in_(card_ids))
        .group_by(InventoryEntryDB.card_id)
    )
    totals = {card_id: 0 for card_id in card_ids}
    for card_id, total in result.all():
        totals[card_id] = int(total)
    return totals


async def get_collection_totals(session: AsyncSession, owner_id: str) -> tuple[int, int]:
    """(unique cards, total copies) held by an owner."""
    result = await session.execute(
        select(
            func.count(func.distinct(InventoryEntryDB.card_id)),
            func.coalesce(func.sum(InventoryEntryDB.quantity), 0),
        ).where(InventoryEntryDB.user_id == owner_id)
    )
    unique_cards, total_cards = result.one()
    return int(unique_cards), int(total_cards)


async def list_inventory(session: AsyncSession, owner_id: str) -> list[InventoryEntry]:
    """All inventory rows of an owner, ordered by card."""
    result = await session.execute(
        select(InventoryEntryDB)
        .where(InventoryEntryDB.user_id == owner_id)
        .order_by(InventoryEntryDB.card_id, InventoryEntryDB.condition, InventoryEntryDB.variant)
        .execution_options(populate_existing=True)
    )
    return [entry_to_model(row) for row in result.scalars().all()]


async def set_quantity(
    session: AsyncSession,
    owner_id: str,
    card_id: str,
    condition: Condition,
    variant: Variant,
    quantity: int,
) -> None:
    """
    Overwrite the quantity of one inventory row.

    A quantity of 0 deletes the row. Negative quantities are rejected.
    """
    if quantity < 0:
        msg = f"Quantity cannot be negative (got {quantity})"
        raise ValueError(msg)

    key = _entry_key(owner_id, card_id, condition, variant)
    if quantity == 0:
        await session.execute(
            delete(InventoryEntryDB).where(key).execution_options(synchronize_session=False)
        )
        return

    result = await session.execute(
        update(InventoryEntryDB)
        .where(key)
        .values(quantity=quantity)
        .execution_options(synchronize_session=False)
    )
    if int(result.rowcount) == 0:  # type: ignore[attr-defined]
        session.add(
            InventoryEntryDB(
                user_id=owner_id,
                card_id=card_id,
                condition=condition.value,
                variant=variant.value,
                quantity=quantity,
            )
        )
        await session.flush()


async def increment(
    session: AsyncSession,
    owner_id: str,
    card_id: str,
    condition: Condition,
    variant: Variant,
    amount: int,
) -> int:
    """
    Upsert-merge ``amount`` copies into an owner's row, creating it if absent.

    Returns the resulting quantity.
    """
    if amount <= 0:
        msg = f"Increment amount must be positive (got {amount})"
        raise ValueError(msg)

    key = _entry_key(owner_id, card_id, condition, variant)
    result = await session.execute(
        update(InventoryEntryDB)
        .where(key)
        .values(quantity=InventoryEntryDB.quantity + amount)
        .execution_options(synchronize_session=False)
    )
    if int(result.rowcount) == 0:  # type: ignore[attr-defined]
        session.add(
            InventoryEntryDB(
                user_id=owner_id,
                card_id=card_id,
                condition=condition.value,
                variant=variant.value,
                quantity=amount,
            )
        )
        await session.flush()
        return amount

    return await get_quantity(session, owner_id, card_id, condition, variant)


async def conditional_decrement(
    session: AsyncSession,
    owner_id: str,
    card_id: str,
    condition: Condition,
    variant: Variant,
    amount: int,
) -> DecrementResult:
    """
    Decrement a row by ``amount`` only if it currently holds at least that many.

    Each attempt reads the quantity and writes conditioned on that exact
    value, so a concurrent writer makes the write miss instead of
    over-committing. The row is deleted when the result would be zero.
    """
    if amount <= 0:
        msg = f"Decrement amount must be positive (got {amount})"
        raise ValueError(msg)

    key = _entry_key(owner_id, card_id, condition, variant)
    available = 0
    for _ in range(DECREMENT_CAS_ATTEMPTS):
        available = await get_quantity(session, owner_id, card_id, condition, variant)
        if available < amount:
            return DecrementResult(applied=False, available=available, remaining=available)

        remaining = available - amount
        observed = and_(key, InventoryEntryDB.quantity == available)
        if remaining == 0:
            stmt = delete(InventoryEntryDB).where(observed)
        else:
            stmt = update(InventoryEntryDB).where(observed).values(quantity=remaining)
        result = await session.execute(stmt.execution_options(synchronize_session=False))
        if int(result.rowcount) == 1:  # type: ignore[attr-defined]
            return DecrementResult(applied=True, available=available, remaining=remaining)

    return DecrementResult(applied=False, available=available, remaining=available)


# --- Catalog Operations ---


async def get_card(session: AsyncSession, card_id: str) -> CardInfo | None:
    """Catalog attributes for a card, or None if the catalog doesn't know it."""
    card = await session.get(CardDB, card_id)
    if card is None:
        return None
    return CardInfo(card_id=card.id, name=card.name, rarity=card.rarity)


async def get_cards(session: AsyncSession, card_ids: list[str]) -> dict[str, CardInfo]:
    """Catalog attributes for several cards, keyed by id (unknown ids omitted)."""
    if not card_ids:
        return {}
    result = await session.execute(select(CardDB).where(CardDB.id.in_(card_ids)))
    return {
        card.id: CardInfo(card_id=card.id, name=card.name, rarity=card.rarity)
        for card in result.scalars().all()
    }


async def upsert_card(
    session: AsyncSession,
    card_id: str,
    name: str,
    rarity: str | None = None,
    set_id: str | None = None,
) -> CardDB:
    """Insert or update a catalog card."""
    card = await session.get(CardDB, card_id)
    if card:
        card.name = name
        card.rarity = rarity
        card.set_id = set_id
    else:
        card = CardDB(id=card_id, name=name, rarity=rarity, set_id=set_id)
        session.add(card)
    await session.flush()
    return card


# --- Wishlist Operations ---


async def add_to_wishlist(session: AsyncSession, user_id: str, card_id: str) -> bool:
    """
    Add a card to a user's wishlist.

    Returns True if added, False if it was already wishlisted.
    """
    if await is_wishlisted(session, user_id, card_id):
        return False
    session.add(WishlistEntryDB(user_id=user_id, card_id=card_id))
    await session.flush()
    return True


async def is_wishlisted(session: AsyncSession, user_id: str, card_id: str) -> bool:
    result = await session.execute(
        select(WishlistEntryDB.id).where(
            WishlistEntryDB.user_id == user_id, WishlistEntryDB.card_id == card_id
        )
    )
    return result.first() is not None


async def remove_from_wishlist_if_present(session: AsyncSession, user_id: str, card_id: str) -> bool:
    """
    Remove a card from a user's wishlist.

    Returns True if an entry was removed, False if the card wasn't wishlisted.
    """
    result = await session.execute(
        delete(WishlistEntryDB)
        .where(WishlistEntryDB.user_id == user_id, WishlistEntryDB.card_id == card_id)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount) > 0  # type: ignore[attr-defined]


# --- Relationship Operations ---


async def create_friendship(
    session: AsyncSession, requester_id: str, addressee_id: str, status: str = "accepted"
) -> FriendshipDB:
    """Record a friendship between two users."""
    friendship = FriendshipDB(requester_id=requester_id, addressee_id=addressee_id, status=status)
    session.add(friendship)
    await session.flush()
    return friendship


async def are_connected(session: AsyncSession, user_a: str, user_b: str) -> bool:
    """True if an accepted friendship exists in either direction."""
    result = await session.execute(
        select(FriendshipDB.id).where(
            FriendshipDB.status == "accepted",
            or_(
                and_(FriendshipDB.requester_id == user_a, FriendshipDB.addressee_id == user_b),
                and_(FriendshipDB.requester_id == user_b, FriendshipDB.addressee_id == user_a),
            ),
        )
    )
    return result.first() is not None


async def count_friends(session: AsyncSession, user_id: str) -> int:
    result = await session.execute(
        select(func.count(FriendshipDB.id)).where(
            FriendshipDB.status == "accepted",
            or_(FriendshipDB.requester_id == user_id, FriendshipDB.addressee_id == user_id),
        )
    )
    return int(result.scalar_one())


# --- Accomplishment Operations ---


async def get_unlocked_accomplishments(session: AsyncSession, user_id: str) -> set[str]:
    result = await session.execute(
        select(UserAccomplishmentDB.accomplishment_type).where(
            UserAccomplishmentDB.user_id == user_id
        )
    )
    return set(result.scalars().all())


async def unlock_accomplishment(session: AsyncSession, user_id: str, accomplishment: str) -> None:
    session.add(UserAccomplishmentDB(user_id=user_id, accomplishment_type=accomplishment))
    await session.flush()


async def revoke_accomplishment(session: AsyncSession, user_id: str, accomplishment: str) -> None:
    await session.execute(
        delete(UserAccomplishmentDB)
        .where(
            UserAccomplishmentDB.user_id == user_id,
            UserAccomplishmentDB.accomplishment_type == accomplishment,
        )
        .execution_options(synchronize_session=False)
    )
