from tradepost.db.database import get_session, init_db
from tradepost.db.operations import (
    add_to_wishlist,
    are_connected,
    conditional_decrement,
    create_friendship,
    get_aggregate_quantities,
    get_aggregate_quantity,
    get_card,
    get_cards,
    get_quantity,
    increment,
    list_inventory,
    remove_from_wishlist_if_present,
    set_quantity,
    upsert_card,
)
from tradepost.db.trade_operations import (
    count_pending_side_effects,
    count_trades_by_status,
    create_trade,
    get_trade,
    list_user_trades,
    transition_status,
)

__all__ = [
    "add_to_wishlist",
    "are_connected",
    "conditional_decrement",
    "count_pending_side_effects",
    "count_trades_by_status",
    "create_friendship",
    "create_trade",
    "get_aggregate_quantities",
    "get_aggregate_quantity",
    "get_card",
    "get_cards",
    "get_quantity",
    "get_session",
    "get_trade",
    "increment",
    "init_db",
    "list_inventory",
    "list_user_trades",
    "remove_from_wishlist_if_present",
    "set_quantity",
    "transition_status",
    "upsert_card",
]
