"""
Waitlist Offer Cleanup Job

Background job that expires waitlist offers nobody redeemed within the
offer window, so the entries stop showing as pending.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from clinic_scheduling.services.waitlist_service import WaitlistMatcher

logger = logging.getLogger(__name__)

JOB_ID = "waitlist_offer_cleanup"


class WaitlistCleanupJob:
    """
    Periodically expires stale waitlist offers.
    """

    def __init__(
        self,
        matcher: WaitlistMatcher,
        run_interval_minutes: int = 5,
        scheduler: Optional[AsyncIOScheduler] = None
    ):
        """
        Args:
            matcher: Matcher whose store holds the offers
            run_interval_minutes: How often to run the cleanup (default 5 minutes)
            scheduler: Scheduler to register on (a new one if not given)
        """
        self.matcher = matcher
        self.scheduler = scheduler or AsyncIOScheduler()
        self.run_interval_minutes = run_interval_minutes
        self.is_running = False

        logger.info(f"Initialized WaitlistCleanupJob with {run_interval_minutes} minute interval")

    async def run_once(self) -> Dict[str, Any]:
        """
        Expire stale offers once.

        Returns:
            Dictionary with cleanup statistics
        """
        started = datetime.now()
        try:
            expired_ids = await self.matcher.expire_stale_offers()
        except Exception as e:
            # Keep the scheduler alive; the next run retries
            logger.error(f"Error in waitlist cleanup job: {e}", exc_info=True)
            return {"error": str(e), "expired_offers": 0, "errors": 1}

        return {
            "expired_offers": len(expired_ids),
            "expired_entry_ids": expired_ids,
            "errors": 0,
            "start_time": started.isoformat(),
            "duration_seconds": (datetime.now() - started).total_seconds(),
        }

    def start(self) -> None:
        if self.is_running:
            logger.warning("Waitlist cleanup job is already running")
            return

        self.scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(minutes=self.run_interval_minutes),
            id=JOB_ID,
            name="Expire stale waitlist offers",
            replace_existing=True,
            max_instances=1,
        )
        if not self.scheduler.running:
            self.scheduler.start()

        self.is_running = True
        logger.info("Waitlist cleanup job started")

    def stop(self) -> None:
        if not self.is_running:
            return

        if self.scheduler.get_job(JOB_ID):
            self.scheduler.remove_job(JOB_ID)
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

        self.is_running = False
        logger.info("Waitlist cleanup job stopped")
