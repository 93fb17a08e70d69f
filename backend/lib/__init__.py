"""Backend utilities"""
from .supabase_client import get_supabase_client
from .auth import get_bearer_token, get_client_ip, get_token_service

__all__ = ["get_supabase_client", "get_bearer_token", "get_client_ip", "get_token_service"]
