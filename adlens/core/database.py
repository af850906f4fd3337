"""
Database client factory
"""

from supabase import create_client, Client
from .config import Config


def get_supabase_client() -> Client:
    """
    Create a Supabase client with the service role key.

    Called once per worker/request at the application edge and handed to
    the services that need it; nothing in the pipeline holds a global client.

    Returns:
        Supabase client instance
    """
    Config.validate()
    return create_client(
        Config.SUPABASE_URL,
        Config.SUPABASE_SERVICE_KEY
    )
