from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "Tradepost"
    debug: bool = False

    database_url: str = "postgresql+asyncpg://localhost:5432/tradepost"

    # Accepting a trade settles it immediately (mirrors the collection UI flow).
    # When False, either party settles explicitly via POST /trades/{id}/settle.
    settle_on_accept: bool = True

    # Side effects queued by a settlement are dispatched right after commit.
    # When False, only the drain_outbox job processes them.
    dispatch_side_effects_inline: bool = True

    # Outbox messages that fail this many times are parked as "failed"
    side_effect_max_attempts: int = 5


settings = Settings()


# =============================================================================
# TRADE CONSTANTS
# =============================================================================

# Pending trades expire this many days after creation (not configurable per trade)
TRADE_EXPIRY_DAYS = 7

# Upper bound for GET /trades/user/{user_id} page size
MAX_TRADES_PAGE_SIZE = 100
