"""
Scheduled job to retry queued side effects.

Settlements dispatch their own side effects right after commit. Messages
whose dispatch failed (or that were queued while inline dispatch is off)
stay pending in the outbox; this job works through them until the backlog
is empty or only failing messages remain.

Can be run as a standalone script or called from a scheduler.
"""

import asyncio
import logging

from sqlalchemy.exc import SQLAlchemyError

from tradepost.db.database import async_session_factory
from tradepost.services.side_effects import DispatchSummary, SideEffectCoordinator

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100
MAX_ROUNDS = 50


async def run_outbox_drain(
    batch_size: int = DEFAULT_BATCH_SIZE,
    coordinator: SideEffectCoordinator | None = None,
) -> DispatchSummary:
    """
    Dispatch pending side effects in batches.

    Stops when a batch makes no progress, so messages that keep failing are
    retried once per run rather than in a tight loop.

    Returns:
        Combined summary of all batches
    """
    coordinator = coordinator or SideEffectCoordinator()
    combined = DispatchSummary()

    for _ in range(MAX_ROUNDS):
        try:
            async with async_session_factory() as session:
                summary = await coordinator.dispatch(session, limit=batch_size)
        except SQLAlchemyError as e:
            logger.error("Outbox drain aborted: %s", e)
            break

        combined.merge(summary)

        if summary.processed == 0 or summary.processed + summary.failed < batch_size:
            break

    logger.info(
        "Outbox drain complete. Processed: %d, failed: %d, parked: %d, "
        "accomplishments unlocked for %d users, revoked for %d",
        combined.processed,
        combined.failed,
        combined.parked,
        len(combined.unlocked),
        len(combined.revoked),
    )
    return combined


def main() -> None:
    """CLI entry point for draining the side-effect outbox."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(run_outbox_drain())


if __name__ == "__main__":
    main()
