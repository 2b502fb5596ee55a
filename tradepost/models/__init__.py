from tradepost.models.failure import (
    ApiResponse,
    FailureDetail,
    FailureKind,
    IllegalTransitionError,
    InsufficientInventoryAtSettlementError,
    InsufficientInventoryError,
    InvalidProposalError,
    KnownError,
    NotConnectedError,
    OutcomeType,
    SettlementError,
    SettlementStoreError,
    TradeExpiredError,
    TradeNotFoundError,
    UnauthorizedTradeActionError,
)
from tradepost.models.inventory import CardInfo, Condition, InventoryEntry, Variant
from tradepost.models.outbox import SideEffectKind, SideEffectMessage, SideEffectStatus
from tradepost.models.trade import (
    ItemTransfer,
    ProposalItem,
    SettleCheck,
    SettlementReport,
    Trade,
    TradeAction,
    TradeDirection,
    TradeItem,
    TradeMethod,
    TradeProposal,
    TradeStatus,
    TradingStats,
)

__all__ = [
    "ApiResponse",
    "CardInfo",
    "Condition",
    "FailureDetail",
    "FailureKind",
    "IllegalTransitionError",
    "InsufficientInventoryAtSettlementError",
    "InsufficientInventoryError",
    "InvalidProposalError",
    "InventoryEntry",
    "ItemTransfer",
    "KnownError",
    "NotConnectedError",
    "OutcomeType",
    "ProposalItem",
    "SettlementError",
    "SettleCheck",
    "SettlementReport",
    "SettlementStoreError",
    "SideEffectKind",
    "SideEffectMessage",
    "SideEffectStatus",
    "Trade",
    "TradeAction",
    "TradeDirection",
    "TradeExpiredError",
    "TradeItem",
    "TradeMethod",
    "TradeNotFoundError",
    "TradeProposal",
    "TradeStatus",
    "TradingStats",
    "UnauthorizedTradeActionError",
    "Variant",
]
