"""
Credential cleanup job - cron job for purging long-expired credentials.

Removes credential records whose access token expired more than the
retention window ago (TOKEN_RETENTION_DAYS, default 7). Usage log entries
are kept; they reference the account by id string only.

CONSTRAINTS:
- Operates across all accounts
- Respects CREDENTIAL_CLEANUP_DRY_RUN for safe rollout (default: true)

Run as a daily cron job:
    python -m token_vault.workers.credential_cleanup_job
"""

import asyncio
import logging
import os
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from token_vault.config.settings import TokenVaultConfig
from token_vault.credentials.lifecycle import TokenLifecycleManager
from token_vault.database.session import create_db_engine, create_session_factory, init_db

logger = logging.getLogger(__name__)


def _dry_run_from_env() -> bool:
    return os.getenv("CREDENTIAL_CLEANUP_DRY_RUN", "true").lower() == "true"


@dataclass
class CleanupStats:
    """Statistics from a credential cleanup run."""

    dry_run: bool = True
    started_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    credentials_eligible: int = 0
    credentials_purged: int = 0
    errors: list = field(default_factory=list)
    completed_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        duration = None
        if self.completed_at:
            duration = (self.completed_at - self.started_at).total_seconds()

        return {
            "started_at": self.started_at.isoformat(),
            "completed_at": (
                self.completed_at.isoformat() if self.completed_at else None
            ),
            "credentials_eligible": self.credentials_eligible,
            "credentials_purged": self.credentials_purged,
            "dry_run": self.dry_run,
            "error_count": len(self.errors),
            "duration_seconds": duration,
        }


async def run_cleanup(manager: TokenLifecycleManager, dry_run: bool = True) -> CleanupStats:
    """
    Execute credential cleanup.

    Args:
        manager: Lifecycle manager whose sweep() performs the purge
        dry_run: If True, only count without deleting

    Returns:
        CleanupStats with results
    """
    stats = CleanupStats(dry_run=dry_run)

    try:
        stats.credentials_eligible = await manager.count_sweepable()

        if stats.credentials_eligible == 0:
            logger.info("No credentials eligible for cleanup")
            stats.completed_at = datetime.now(timezone.utc)
            return stats

        logger.info(
            "Credentials eligible for cleanup",
            extra={"count": stats.credentials_eligible, "dry_run": dry_run},
        )

        if dry_run:
            logger.info(
                "[DRY RUN] Would purge %d credentials",
                stats.credentials_eligible,
            )
            stats.completed_at = datetime.now(timezone.utc)
            return stats

        stats.credentials_purged = await manager.sweep()

        logger.info(
            "Credential cleanup completed",
            extra={
                "eligible": stats.credentials_eligible,
                "purged": stats.credentials_purged,
            },
        )
        stats.completed_at = datetime.now(timezone.utc)
        return stats

    except Exception as exc:
        error_msg = f"Credential cleanup failed: {type(exc).__name__}"
        stats.errors.append(error_msg)
        stats.completed_at = datetime.now(timezone.utc)
        logger.error(error_msg, exc_info=True)
        raise


async def _run(dry_run: bool) -> CleanupStats:
    config = TokenVaultConfig.from_env()
    engine = create_db_engine(config.database_url)
    await init_db(engine)
    manager = TokenLifecycleManager.from_config(config, create_session_factory(engine))
    try:
        return await run_cleanup(manager, dry_run=dry_run)
    finally:
        await manager.close()
        await engine.dispose()


def main():
    """Entry point for credential cleanup job."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    dry_run = _dry_run_from_env()
    logger.info(
        "Credential Cleanup Job starting",
        extra={"dry_run": dry_run},
    )

    try:
        stats = asyncio.run(_run(dry_run))
        logger.info("Credential Cleanup Job stats", extra=stats.to_dict())
    except Exception as exc:
        logger.error(
            "Credential Cleanup Job failed",
            extra={"error_type": type(exc).__name__},
            exc_info=True,
        )
        sys.exit(1)

    logger.info("Credential Cleanup Job finished")


if __name__ == "__main__":
    main()
