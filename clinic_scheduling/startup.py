"""
Application startup and shutdown lifecycle management.

Handles:
- Waitlist store selection (Supabase when configured, in-memory otherwise)
- Shared HTTP client for the calendar integration service
- Waitlist offer cleanup job
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI

from clinic_scheduling.config import (
    SchedulingSettings,
    get_redis_client,
    get_settings,
    validate_environment,
)
from clinic_scheduling.database import get_healthcare_client, reset_clients
from clinic_scheduling.services.calendar_conflict_service import ExternalCalendarConflictChecker
from clinic_scheduling.services.email_service import EmailService
from clinic_scheduling.services.external_timeouts import CALENDAR_TIMEOUT
from clinic_scheduling.services.locks import OfferLock
from clinic_scheduling.services.waitlist_cleanup_job import WaitlistCleanupJob
from clinic_scheduling.services.waitlist_notifier import WaitlistNotifier
from clinic_scheduling.services.waitlist_service import WaitlistMatcher
from clinic_scheduling.services.waitlist_store import (
    InMemoryWaitlistStore,
    SupabaseWaitlistStore,
    WaitlistStore,
)

logger = logging.getLogger(__name__)


def build_waitlist_store(settings: SchedulingSettings) -> WaitlistStore:
    if validate_environment():
        return SupabaseWaitlistStore(get_healthcare_client())

    if settings.ENVIRONMENT == "production":
        raise RuntimeError("Supabase credentials are required in production")

    logger.warning("Using in-memory waitlist store; data will not survive a restart")
    return InMemoryWaitlistStore()


def build_waitlist_matcher(
    settings: SchedulingSettings,
    store: Optional[WaitlistStore] = None
) -> WaitlistMatcher:
    """Wire the matcher with its store, notifier and optional Redis lock."""
    store = store or build_waitlist_store(settings)
    notifier = WaitlistNotifier(EmailService(settings), store, settings)

    offer_lock = None
    redis_client = get_redis_client(settings)
    if redis_client is not None:
        offer_lock = OfferLock(redis_client)
        logger.info("Waitlist offers serialized with Redis lock")

    return WaitlistMatcher(
        store,
        notifier=notifier,
        offer_lock=offer_lock,
        offer_ttl_hours=settings.WAITLIST_OFFER_TTL_HOURS,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle manager."""
    # === STARTUP ===
    logger.info("Starting Clinic Scheduling...")
    settings = get_settings()

    app.state.http_client = httpx.AsyncClient(timeout=CALENDAR_TIMEOUT)
    app.state.calendar_checker = ExternalCalendarConflictChecker(
        settings.CALENDAR_API_BASE_URL,
        http_client=app.state.http_client,
        api_token=settings.CALENDAR_API_TOKEN,
    )

    app.state.waitlist_matcher = build_waitlist_matcher(settings)

    cleanup_job = WaitlistCleanupJob(
        app.state.waitlist_matcher,
        run_interval_minutes=settings.WAITLIST_CLEANUP_INTERVAL_MINUTES,
    )
    cleanup_job.start()
    app.state.cleanup_job = cleanup_job

    yield

    # === SHUTDOWN ===
    logger.info("Shutting down services...")

    cleanup_job.stop()
    await app.state.http_client.aclose()
    logger.info("HTTP client closed")

    reset_clients()

    logger.info("Clinic Scheduling shutdown complete")
