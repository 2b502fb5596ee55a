from tradepost.api.collection import router as collection_router
from tradepost.api.health import router as health_router
from tradepost.api.trades import router as trades_router

__all__ = [
    "collection_router",
    "health_router",
    "trades_router",
]
