"""
Per-request Supabase client factory.

Chat sessions, messages, invoices and expenses are all read and written
through a client carrying the caller's access token, so row level security
(user_id = auth.uid()) applies to every query. Service code still filters on
user_id explicitly; RLS is the second line, not the only one.
"""

import logging

from supabase import Client, create_client

from backend.config import settings

logger = logging.getLogger(__name__)


def get_supabase_client(access_token: str) -> Client:
    """
    Create a Supabase client bound to one user's session.

    Args:
        access_token: The verified JWT from get_authenticated_user

    Returns:
        A client using the publishable key plus the user's token; RLS enforced.
    """
    client: Client = create_client(
        supabase_url=settings.SUPABASE_URL,
        supabase_key=settings.SUPABASE_PUBLISHABLE_KEY,
    )
    # The token's 'sub' claim is what auth.uid() resolves to in RLS policies
    client.auth.set_session(access_token, access_token)

    logger.debug("Created user-scoped Supabase client")
    return client
