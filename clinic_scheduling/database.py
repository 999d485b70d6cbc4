"""
Canonical Supabase client module.

This is the only module allowed to call create_client directly. Everything
else goes through get_healthcare_client() so the schema binding stays explicit.
"""
import logging
from typing import Dict, Optional

from supabase import create_client, Client
from supabase.client import ClientOptions

from clinic_scheduling.config import SchedulingSettings, get_settings

logger = logging.getLogger(__name__)


class Schema:
    """Database schema constants for explicit schema binding."""
    PUBLIC = 'public'
    HEALTHCARE = 'healthcare'


# Cached clients per schema
_supabase_clients: Dict[str, Client] = {}


def _get_credentials(settings: SchedulingSettings) -> tuple:
    """Get Supabase credentials from settings."""
    if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_ROLE_KEY:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
    return settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY


def create_supabase_client(
    schema: str = Schema.HEALTHCARE,
    settings: Optional[SchedulingSettings] = None
) -> Client:
    """
    Create or get cached Supabase client for specified schema.

    Args:
        schema: Database schema to use ('healthcare', 'public')
        settings: Settings to read credentials from (defaults to process settings)

    Returns:
        Configured Supabase client
    """
    if schema in _supabase_clients:
        return _supabase_clients[schema]

    supabase_url, supabase_key = _get_credentials(settings or get_settings())

    options = ClientOptions(
        schema=schema,
        auto_refresh_token=False,  # For server/service-role usage
        persist_session=False
    )

    client = create_client(supabase_url, supabase_key, options=options)
    _supabase_clients[schema] = client
    logger.info(f"Created Supabase client for schema: {schema}")

    return client


def get_healthcare_client() -> Client:
    """Get Supabase client bound to healthcare schema (PHI data)."""
    return create_supabase_client(Schema.HEALTHCARE)


def reset_clients() -> None:
    """Drop cached clients (tests and graceful shutdown)."""
    _supabase_clients.clear()
