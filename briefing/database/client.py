"""
Supabase client for the persistence and credit collaborators.

The pipeline only writes server-side, so it uses the service-role client.
"""

from functools import lru_cache

from supabase import create_client, Client

from briefing.config import config
from briefing.utils.logging import get_logger


logger = get_logger("database")


class SupabaseClientError(Exception):
    """Raised when the Supabase client cannot be initialized."""
    pass


@lru_cache(maxsize=1)
def get_supabase_admin_client() -> Client:
    """
    Supabase client with the service role key.

    This client bypasses Row Level Security; use it only from server-side
    code where the owner id has already been established.

    Raises:
        SupabaseClientError: URL or service key missing
    """
    if not config.SUPABASE_URL:
        raise SupabaseClientError(
            "SUPABASE_URL is not configured. "
            "Set it in your .env file or environment variables."
        )

    if not config.SUPABASE_SERVICE_KEY:
        raise SupabaseClientError(
            "SUPABASE_SERVICE_KEY is not configured. "
            "Set it in your .env file or environment variables."
        )

    return create_client(config.SUPABASE_URL, config.SUPABASE_SERVICE_KEY)


def verify_supabase_connection() -> bool:
    """
    Check that the investigations table is reachable.

    Returns:
        True if a trivial query succeeds, False otherwise.
    """
    try:
        client = get_supabase_admin_client()
        client.table("investigations").select("id").limit(1).execute()
        return True
    except Exception as e:
        logger.error("Supabase connection failed", error_type=type(e).__name__)
        return False
