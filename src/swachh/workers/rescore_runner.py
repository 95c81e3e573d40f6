"""Bulk re-score: reconcile every user's stored points and badges.

Walks users in id order in keyset batches, one session per batch. Safe to
re-run; users whose stored score already matches are not written.

Usage: python -m swachh.workers.rescore_runner
"""

from __future__ import annotations

import asyncio
import logging

from swachh.config import get_settings
from swachh.database import close_db, get_session_factory, init_db
from swachh.gamification.ledger import ActivityLedger
from swachh.gamification.score_engine import reconcile_many
from swachh.users.store import UserStore

logger = logging.getLogger(__name__)


async def rescore_all(batch_size: int = 200) -> int:
    """Reconcile all users. Returns the number of users visited."""
    session_factory = get_session_factory()
    last_id = 0
    visited = 0

    while True:
        async with session_factory() as db:
            users = UserStore(db)
            user_ids = await users.list_ids_after(last_id, batch_size)
            if not user_ids:
                break
            await reconcile_many(ActivityLedger(db), users, user_ids)

        visited += len(user_ids)
        last_id = user_ids[-1]
        logger.info("Re-scored batch up to user %d (%d so far)", last_id, visited)

    return visited


async def main() -> None:
    settings = get_settings()
    await init_db(settings.database_url)
    try:
        visited = await rescore_all(settings.rescore_batch_size)
        logger.info("Re-score complete: %d users", visited)
    finally:
        await close_db()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    asyncio.run(main())
