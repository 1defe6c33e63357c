"""Supabase client access for the sync backend."""

from supabase import Client, create_client

from .config import Settings, get_settings

_supabase_client: Client | None = None


def get_supabase_client(settings: Settings | None = None) -> Client:
    """Get cached Supabase client."""
    global _supabase_client
    if _supabase_client is None:
        if settings is None:
            settings = get_settings()
        if not settings.supabase_url or not settings.supabase_secret_key:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_SECRET_KEY must be set when STORAGE_BACKEND=supabase"
            )
        _supabase_client = create_client(settings.supabase_url, settings.supabase_secret_key)
    return _supabase_client


# =============================================================================
# Table Names
# =============================================================================

REPTILES_TABLE = "reptiles"
FEEDINGS_TABLE = "feedings"
SHEDS_TABLE = "sheds"
MEASUREMENTS_TABLE = "measurements"
ENVIRONMENT_LOGS_TABLE = "environment_logs"
PHOTOS_TABLE = "photos"
