"""
Shared pytest fixtures
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from clinic_scheduling.config import SchedulingSettings
from clinic_scheduling.services.waitlist_notifier import WaitlistNotifier
from clinic_scheduling.services.waitlist_service import WaitlistMatcher
from clinic_scheduling.services.waitlist_store import InMemoryWaitlistStore

from tests.fixtures import FrozenClock


@pytest.fixture
def settings():
    """Settings that never read the developer's .env"""
    return SchedulingSettings(
        _env_file=None,
        SUPABASE_URL="",
        SUPABASE_SERVICE_ROLE_KEY="",
        REDIS_URL=None,
        WAITLIST_ACCEPT_URL_TEMPLATE="https://portal.test/waiting-list/accept/{token}",
    )


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def store():
    return InMemoryWaitlistStore()


@pytest.fixture
def mock_notifier():
    notifier = MagicMock(spec=WaitlistNotifier)
    notifier.notify_offer = AsyncMock(return_value=True)
    notifier.notify_confirmation = AsyncMock(return_value=None)
    return notifier


@pytest.fixture
def matcher(store, mock_notifier, clock):
    tokens = iter(f"token-{i}" for i in range(1000))
    return WaitlistMatcher(
        store,
        notifier=mock_notifier,
        clock=clock,
        token_factory=lambda: next(tokens),
    )
