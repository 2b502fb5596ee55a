"""
Variant Resolution Service.

Maps a catalog card plus an explicit foil flag to the physical print variant
under which the card is stored in a collection. Settlement uses the result to
pick the inventory row to move.

This is a BEST-EFFORT heuristic, not authoritative print data. Real print
runs vary by set (reverse holos, pattern variants, first editions) and the
rules below only approximate the common cases. It sits behind the
VariantResolver protocol so catalog-backed data can replace it without
touching settlement.

Rules, first match wins:
1. Name overrides for cards the rarity data misclassifies
2. "ex" cards (name word or rarity) -> holo
3. Special illustration / ultra rare / secret rare / ACE SPEC -> holo
4. Explicit foil flag -> holo
5. "Rare Holo" / "Holo Rare" -> holo
6. Plain "Rare" -> holo
7. Otherwise -> normal
"""

import re
from typing import Protocol

from tradepost.models.inventory import CardInfo, Variant

# Lowercased name fragments that force a variant regardless of other data
NAME_OVERRIDES: dict[str, Variant] = {
    "alakazam ex": Variant.HOLO,
    "alakazam-ex": Variant.HOLO,
}

_EX_NAME = re.compile(r"(?:\s|-)ex\b")
_EX_RARITY = re.compile(r"\bex\b")

HOLO_RARITY_MARKERS = (
    "special illustration",
    "ultra rare",
    "secret rare",
    "ace spec",
)


class VariantResolver(Protocol):
    """Anything that can classify a card's physical variant."""

    def resolve(self, card: CardInfo | None, is_foil_hint: bool = False) -> Variant: ...


def resolve_variant(card: CardInfo | None, is_foil_hint: bool = False) -> Variant:
    """
    Classify a card's print variant.

    Total: always returns a variant. Unknown cards (not in the catalog)
    resolve to normal.
    """
    if card is None:
        return Variant.NORMAL

    name = (card.name or "").lower()
    rarity = (card.rarity or "").lower()

    for fragment, variant in NAME_OVERRIDES.items():
        if fragment in name:
            return variant

    if _EX_NAME.search(name) or _EX_RARITY.search(rarity):
        return Variant.HOLO

    if any(marker in rarity for marker in HOLO_RARITY_MARKERS):
        return Variant.HOLO

    if is_foil_hint:
        return Variant.HOLO

    if "rare holo" in rarity or "holo rare" in rarity:
        return Variant.HOLO

    if "rare" in rarity and "ultra" not in rarity and "secret" not in rarity:
        return Variant.HOLO

    return Variant.NORMAL


class HeuristicVariantResolver:
    """Default resolver backed by :func:`resolve_variant`."""

    def resolve(self, card: CardInfo | None, is_foil_hint: bool = False) -> Variant:
        return resolve_variant(card, is_foil_hint)
