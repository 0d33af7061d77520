"""
Chat session and message persistence.

The chat assistant only appends turns and reads ordered slices of recent
history; users may delete single messages or whole sessions (with their
messages). Sessions carry a title (first 50 chars of
the opening message) and last_message_at for listing.

CRITICAL RULES:
1. Every query is filtered by user_id; a session of another user behaves
   exactly like a missing session.
2. History is always returned in strict chronological order.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, cast

from supabase import Client

from backend.agents.types import ConversationTurn

logger = logging.getLogger(__name__)

SESSION_TABLE = "chat_session"
MESSAGE_TABLE = "chat_message"

DEFAULT_SESSION_TITLE = "New Chat"
SESSION_TITLE_LENGTH = 50

CHAT_ROLES = ("user", "assistant")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


async def create_session(
    supabase_client: Client,
    user_id: str,
    title: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Create a chat session for user_id.

    Args:
        supabase_client: Authenticated Supabase client
        user_id: The authenticated user's ID
        title: Optional title; long titles are cut to 50 characters

    Returns:
        The created session record

    Raises:
        Exception: If the database returns no row
    """
    session_title = (title or "").strip()[:SESSION_TITLE_LENGTH] or DEFAULT_SESSION_TITLE

    result = (
        supabase_client.table(SESSION_TABLE)
        .insert(
            {
                "user_id": user_id,
                "title": session_title,
                "last_message_at": _now_iso(),
            }
        )
        .execute()
    )

    if not result.data:
        raise Exception("Failed to create chat session: no data returned")

    session = cast(Dict[str, Any], result.data[0])
    logger.info(f"Chat session created: id={session.get('id')}, user={user_id[:8]}")
    return session


async def get_session(
    supabase_client: Client,
    user_id: str,
    session_id: str,
) -> Optional[Dict[str, Any]]:
    """Fetch a session owned by user_id, or None."""
    result = (
        supabase_client.table(SESSION_TABLE)
        .select("*")
        .eq("id", session_id)
        .eq("user_id", user_id)
        .limit(1)
        .execute()
    )

    if not result.data:
        logger.info(f"Chat session {session_id} not found for user {user_id[:8]}")
        return None

    return cast(Dict[str, Any], result.data[0])


async def list_sessions(
    supabase_client: Client,
    user_id: str,
) -> List[Dict[str, Any]]:
    """All sessions of user_id, most recently active first."""
    result = (
        supabase_client.table(SESSION_TABLE)
        .select("*")
        .eq("user_id", user_id)
        .order("last_message_at", desc=True)
        .execute()
    )
    return cast(List[Dict[str, Any]], result.data or [])


async def touch_session(
    supabase_client: Client,
    user_id: str,
    session_id: str,
) -> Optional[Dict[str, Any]]:
    """Bump last_message_at; returns the updated session or None."""
    result = (
        supabase_client.table(SESSION_TABLE)
        .update({"last_message_at": _now_iso()})
        .eq("id", session_id)
        .eq("user_id", user_id)
        .execute()
    )

    if not result.data:
        return None

    return cast(Dict[str, Any], result.data[0])


async def append_turn(
    supabase_client: Client,
    user_id: str,
    session_id: str,
    role: str,
    content: str,
) -> Dict[str, Any]:
    """
    Append one conversation turn to a session.

    Raises:
        ValueError: If role is not user or assistant
        Exception: If the database returns no row
    """
    if role not in CHAT_ROLES:
        raise ValueError(f"Invalid chat role: {role}")

    result = (
        supabase_client.table(MESSAGE_TABLE)
        .insert(
            {
                "session_id": session_id,
                "user_id": user_id,
                "role": role,
                "content": content,
            }
        )
        .execute()
    )

    if not result.data:
        raise Exception("Failed to save chat message: no data returned")

    message = cast(Dict[str, Any], result.data[0])
    logger.debug(f"Chat turn appended: session={session_id}, role={role}, chars={len(content)}")
    return message


async def list_messages(
    supabase_client: Client,
    user_id: str,
    session_id: str,
) -> List[Dict[str, Any]]:
    """Every persisted turn of a session, oldest first."""
    result = (
        supabase_client.table(MESSAGE_TABLE)
        .select("*")
        .eq("session_id", session_id)
        .eq("user_id", user_id)
        .order("created_at", desc=False)
        .execute()
    )
    return cast(List[Dict[str, Any]], result.data or [])


async def load_recent_history(
    supabase_client: Client,
    user_id: str,
    session_id: str,
    limit: int = 20,
) -> List[ConversationTurn]:
    """
    The most recent `limit` turns of a session, in chronological order.

    Fetched newest-first so the limit keeps the latest turns, then reversed.
    """
    result = (
        supabase_client.table(MESSAGE_TABLE)
        .select("role, content, created_at")
        .eq("session_id", session_id)
        .eq("user_id", user_id)
        .order("created_at", desc=True)
        .limit(limit)
        .execute()
    )

    rows = cast(List[Dict[str, Any]], result.data or [])
    history: List[ConversationTurn] = [
        {"role": row["role"], "content": row.get("content") or ""}
        for row in reversed(rows)
    ]
    return history


async def delete_session(
    supabase_client: Client,
    user_id: str,
    session_id: str,
) -> bool:
    """
    Delete a session of user_id together with all of its messages.

    Returns:
        True if the session existed and was deleted, False if not found
    """
    session = await get_session(supabase_client, user_id, session_id)
    if session is None:
        return False

    messages_result = (
        supabase_client.table(MESSAGE_TABLE)
        .delete()
        .eq("session_id", session_id)
        .eq("user_id", user_id)
        .execute()
    )
    supabase_client.table(SESSION_TABLE).delete().eq("id", session_id).eq("user_id", user_id).execute()

    logger.info(
        f"Chat session deleted: id={session_id}, user={user_id[:8]}, "
        f"messages={len(messages_result.data or [])}"
    )
    return True


async def delete_message(
    supabase_client: Client,
    user_id: str,
    message_id: str,
) -> bool:
    """Delete one message of user_id. Returns False if nothing matched."""
    result = (
        supabase_client.table(MESSAGE_TABLE)
        .delete()
        .eq("id", message_id)
        .eq("user_id", user_id)
        .execute()
    )

    if not result.data:
        logger.info(f"Chat message {message_id} not found for user {user_id[:8]}")
        return False

    return True
