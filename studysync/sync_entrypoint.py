"""Sync entrypoint - Standalone script for running a user's sync from cron or a job runner.

Usage:
    python -m studysync.sync_entrypoint <user_id>                    # Run all sources
    python -m studysync.sync_entrypoint <user_id> canvas             # Run single source
    python -m studysync.sync_entrypoint <user_id> canvas_calendar
    python -m studysync.sync_entrypoint <user_id> google_classroom
    python -m studysync.sync_entrypoint <user_id> gmail
"""

import asyncio
import sys
from typing import Dict

from studysync.core.db import SessionLocal
from studysync.core.errors import SyncError
from studysync.core.logging import get_logger
from studysync.schemas.api import SyncResult
from studysync.schemas.normalized import SYNC_SOURCES, ItemSource
from studysync.services.sync_service import SyncService

logger = get_logger("sync_entrypoint")


async def run_sync_job(user_id: str, source: ItemSource) -> SyncResult:
    """Run the sync for a single source."""
    logger.info(f"Starting sync job for user={user_id} source={source.value}")
    with SessionLocal() as db:
        service = SyncService(db)
        try:
            result = await service.run(user_id, source)
        except SyncError as exc:
            logger.error(f"Sync job failed for {source.value}: {exc.message}")
            return SyncResult(success=False, source=source.value, error=exc.message)
        logger.info(f"Sync job completed for {source.value}: synced={result.items_synced} warnings={len(result.warnings)}")
        return result


async def run_all_sources(user_id: str) -> Dict[str, SyncResult]:
    """Run the sync for every source."""
    logger.info(f"Running sync for all sources user={user_id}")
    with SessionLocal() as db:
        service = SyncService(db)
        return await service.run_all(user_id)


def main():
    """Main entry point for the sync CLI."""
    valid = [source.value for source in SYNC_SOURCES]

    if len(sys.argv) < 2:
        logger.error("Usage: python -m studysync.sync_entrypoint <user_id> [source]")
        sys.exit(2)

    user_id = sys.argv[1]
    if len(sys.argv) > 2:
        source = sys.argv[2]
        if source not in valid:
            logger.error(f"Invalid source: {source}. Must be one of: {', '.join(valid)}")
            sys.exit(1)
        results = {source: asyncio.run(run_sync_job(user_id, ItemSource(source)))}
    else:
        results = asyncio.run(run_all_sources(user_id))

    for name, result in results.items():
        if result.success:
            logger.info(f"{name}: synced {result.items_synced}/{result.total_items}")
        elif result.meta.get("skipped"):
            logger.info(f"{name}: skipped - {result.error}")
        else:
            logger.error(f"{name}: failed - {result.error}")

    # Exit with error code if any source failed
    if any(not result.success and not result.meta.get("skipped") for result in results.values()):
        sys.exit(1)

    return results


if __name__ == "__main__":
    main()
