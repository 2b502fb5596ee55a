"""
Scheduled job to cancel stale trade offers.

Pending trades carry an expiry seven days after creation. Accepting an
expired trade is already refused; this sweep moves them to cancelled so
they stop showing up as open offers.

Can be run as a standalone script or called from a scheduler.
"""

import asyncio
import logging

from sqlalchemy.exc import SQLAlchemyError

from tradepost.db.database import async_session_factory
from tradepost.services.trade_lifecycle import expire_stale_trades

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 500


async def run_expiry_sweep(batch_size: int = DEFAULT_BATCH_SIZE) -> int:
    """
    Expire overdue pending trades, one committed batch at a time.

    Returns:
        Number of trades expired
    """
    total = 0
    while True:
        try:
            async with async_session_factory() as session:
                expired = await expire_stale_trades(session, limit=batch_size)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Expiry sweep aborted after %d trades: %s", total, e)
            break

        total += len(expired)
        if len(expired) < batch_size:
            break

    logger.info("Expiry sweep complete. Trades expired: %d", total)
    return total


def main() -> None:
    """CLI entry point for running the expiry sweep."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(run_expiry_sweep())


if __name__ == "__main__":
    main()
