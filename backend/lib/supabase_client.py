"""
Supabase client for backend operations
"""
from supabase import create_client, Client

from study_buddy import config

_supabase_client: Client = None


def get_supabase_client() -> Client:
    """Get or create Supabase client singleton"""
    global _supabase_client

    if _supabase_client is None:
        url = config.SUPABASE_URL
        # Service role key: every table is accessed server-side with RLS bypassed
        key = config.SUPABASE_SERVICE_KEY

        if not url or not key:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set in environment")

        _supabase_client = create_client(url, key)

    return _supabase_client
