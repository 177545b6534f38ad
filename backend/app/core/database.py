"""
Supabase database client management.

Wraps the Supabase client as a process-wide connection holder. Engine
components never call this directly; the Supabase-backed compliance store
and holiday loader receive the wrapper through their constructors.
"""
from typing import Optional

from supabase import create_client, Client

from .config import settings
from .exceptions import ConfigurationError


class SupabaseClient:
    """
    Singleton wrapper for Supabase client.
    """

    _instance: Optional["SupabaseClient"] = None
    _client: Optional[Client] = None

    def __new__(cls) -> "SupabaseClient":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._client is None:
            if not settings.supabase_url:
                raise ConfigurationError(
                    "SUPABASE_URL is required for the supabase persistence backend",
                    config_key="supabase_url"
                )
            key = settings.supabase_service_role_key or settings.supabase_anon_key
            if not key:
                raise ConfigurationError(
                    "A Supabase key is required for the supabase persistence backend",
                    config_key="supabase_anon_key"
                )
            self._client = create_client(settings.supabase_url, key)

    @property
    def client(self) -> Client:
        """Get the Supabase client instance."""
        if self._client is None:
            raise RuntimeError("Supabase client not initialized")
        return self._client


def get_supabase_client() -> SupabaseClient:
    """Get the Supabase client wrapper."""
    return SupabaseClient()
