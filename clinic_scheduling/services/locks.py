"""
Redis lock around the processing of one cancelled appointment.

Duplicate cancellation events (webhook redelivery, two workers on the same
feed) must not both walk the waiting list for the same freed slot. The lock
is held for the whole offer batch, notification emails included, so its TTL
is sized for a batch of SMTP sends rather than a single database write.
Waiters back off exponentially until a short deadline and then give up: the
holder is already offering the slot.
"""

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager

from redis.exceptions import RedisError

from clinic_scheduling.services.external_timeouts import SMTP_TIMEOUT

logger = logging.getLogger(__name__)

# Room for a few slow SMTP sends before the key expires under a live batch
OFFER_LOCK_TTL_MS = int(SMTP_TIMEOUT * 4 * 1000)
OFFER_LOCK_WAIT_MS = 2000
BACKOFF_START_SECONDS = 0.05
BACKOFF_CAP_SECONDS = 0.5

# Delete only while the key still holds our token
RELEASE_IF_OWNER = """
if redis.call("get", KEYS[1]) == ARGV[1] then
  return redis.call("del", KEYS[1])
else
  return 0
end
"""


class OfferLockBusyError(RuntimeError):
    """Another worker is already offering the slot freed by this cancellation."""


class OfferLock:
    """Serializes match-and-offer per cancelled appointment across workers."""

    def __init__(
        self,
        redis_client,
        ttl_ms: int = OFFER_LOCK_TTL_MS,
        wait_ms: int = OFFER_LOCK_WAIT_MS
    ):
        """
        Args:
            redis_client: Synchronous Redis client (redis-py)
            ttl_ms: Expiry of the lock key, bounds a crashed holder
            wait_ms: How long a duplicate event waits before giving up
        """
        self.redis = redis_client
        self.ttl_ms = ttl_ms
        self.wait_ms = wait_ms

    @staticmethod
    def key_for(appointment_id: str) -> str:
        return f"waitlist_offer_lock:{appointment_id}"

    def _try_set(self, key: str, token: str) -> bool:
        return bool(self.redis.set(key, token, nx=True, px=self.ttl_ms))

    @asynccontextmanager
    async def acquire(self, appointment_id: str):
        """
        Hold the lock for one cancellation's offer batch.

        Raises:
            OfferLockBusyError: the cancellation is still held after wait_ms
        """
        key = self.key_for(appointment_id)
        token = uuid.uuid4().hex
        deadline = time.monotonic() + self.wait_ms / 1000
        delay = BACKOFF_START_SECONDS

        while not self._try_set(key, token):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise OfferLockBusyError(
                    f"Cancellation {appointment_id} is already being processed by another worker"
                )
            await asyncio.sleep(min(delay, remaining))
            delay = min(delay * 2, BACKOFF_CAP_SECONDS)

        started = time.monotonic()
        logger.debug(f"Acquired offer lock {key}")
        try:
            yield
        finally:
            held_ms = (time.monotonic() - started) * 1000
            try:
                released = self.redis.eval(RELEASE_IF_OWNER, 1, key, token)
            except RedisError as e:
                logger.warning(f"Failed to release offer lock {key}, expires in {self.ttl_ms}ms: {e}")
            else:
                if not released:
                    # Key expired mid-batch; a duplicate event may have offered the slot too
                    logger.warning(f"Offer lock {key} expired after {held_ms:.0f}ms, before release")
                else:
                    logger.debug(f"Released offer lock {key} after {held_ms:.0f}ms")
