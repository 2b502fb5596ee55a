"""
Tradepost services.

Business logic for proposing, negotiating and settling card trades.
"""

from tradepost.services.accomplishments import AccomplishmentEngine, AccomplishmentResult
from tradepost.services.proposal_validator import check_proposal_shape, validate_proposal
from tradepost.services.settlement import check_settleable, settle_trade
from tradepost.services.side_effects import (
    DispatchSummary,
    SideEffectCoordinator,
    enqueue_settlement_side_effects,
)
from tradepost.services.trade_lifecycle import (
    TradeResponse,
    cancel_trade,
    expire_stale_trades,
    get_trade_or_raise,
    get_trading_stats,
    propose_trade,
    respond_to_trade,
)
from tradepost.services.trade_state import TRANSITIONS, Actor, check_transition, is_expired
from tradepost.services.variant_resolver import (
    HeuristicVariantResolver,
    VariantResolver,
    resolve_variant,
)

__all__ = [
    "AccomplishmentEngine",
    "AccomplishmentResult",
    "Actor",
    "DispatchSummary",
    "HeuristicVariantResolver",
    "SideEffectCoordinator",
    "TRANSITIONS",
    "TradeResponse",
    "VariantResolver",
    "cancel_trade",
    "check_proposal_shape",
    "check_settleable",
    "check_transition",
    "enqueue_settlement_side_effects",
    "expire_stale_trades",
    "get_trade_or_raise",
    "get_trading_stats",
    "is_expired",
    "propose_trade",
    "resolve_variant",
    "respond_to_trade",
    "settle_trade",
    "validate_proposal",
]
