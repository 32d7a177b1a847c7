"""
Data store clients
"""
from .supabase_client import DataStore, get_social_client, get_supabase_client, invoke_function

__all__ = ["DataStore", "get_supabase_client", "get_social_client", "invoke_function"]
