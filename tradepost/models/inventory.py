from dataclasses import dataclass
from enum import Enum


class Condition(str, Enum):
    """Physical condition grade of an owned card."""

    MINT = "mint"
    NEAR_MINT = "near_mint"
    LIGHTLY_PLAYED = "lightly_played"
    MODERATELY_PLAYED = "moderately_played"
    HEAVILY_PLAYED = "heavily_played"
    DAMAGED = "damaged"


class Variant(str, Enum):
    """Physical print variant of a card."""

    NORMAL = "normal"
    HOLO = "holo"
    REVERSE_HOLO = "reverse_holo"
    POKEBALL_PATTERN = "pokeball_pattern"
    MASTERBALL_PATTERN = "masterball_pattern"
    FIRST_EDITION = "1st_edition"


@dataclass(frozen=True, slots=True)
class CardInfo:
    """
    Catalog attributes needed to classify a card.

    Attributes:
        card_id: Catalog identifier (e.g., "sv3pt5-65")
        name: Printed card name (e.g., "Alakazam ex")
        rarity: Catalog rarity string (e.g., "Double Rare", "Common")
    """

    card_id: str
    name: str
    rarity: str | None = None


@dataclass(frozen=True, slots=True)
class InventoryEntry:
    """
    One persisted ownership row.

    At most one entry exists per (owner, card, condition, variant).
    Quantity is always positive; a zero quantity is represented by absence.
    """

    owner_id: str
    card_id: str
    condition: Condition
    variant: Variant
    quantity: int
