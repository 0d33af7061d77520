"""
Database access for the invoice copilot: user-scoped Supabase clients.

Table access lives in backend/services/*; this package only hands out clients.
"""

from .client import get_supabase_client

__all__ = ["get_supabase_client"]
