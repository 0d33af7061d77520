"""
Chat API endpoints.

Flow for POST /chat/messages:
1. Auth (get_authenticated_user) and a user-scoped Supabase client
2. Resolve the session (create one when session_id is omitted; 404 if not owned)
3. Load the recent history BEFORE persisting the new turn, so the new message
   is not replayed to the model twice
4. Persist the user turn
5. Run the orchestrator (never raises; failures come back as text)
6. Persist the assistant turn and bump the session's last_message_at

POST /chat/upload runs invoice ingestion on the uploaded document first, then
the same exchange with a message describing the upload.

The reasoning engine and memory service are process-wide and live on
app.state (built in main.py's lifespan); everything else is per request.
"""

import asyncio
import logging
from typing import Annotated, Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status
from supabase import Client

from backend.agents.chat import ChatOrchestrator
from backend.agents.invoice import ingest_invoice_document, invoice_file_type
from backend.agents.reasoning import ReasoningEngine
from backend.auth.dependencies import AuthenticatedUser, get_authenticated_user
from backend.config import settings
from backend.db.client import get_supabase_client
from backend.schemas.chat import (
    ChatDeleteResponse,
    ChatMessageListResponse,
    ChatMessageResponse,
    ChatSessionListResponse,
    ChatSessionResponse,
    CreateSessionRequest,
    MemoryListResponse,
    MemoryResponse,
    SendMessageRequest,
    SendMessageResponse,
    UploadInvoiceResponse,
)
from backend.services.chat_service import (
    append_turn,
    create_session,
    delete_message,
    delete_session,
    get_session,
    list_messages,
    list_sessions,
    load_recent_history,
    touch_session,
)
from backend.services.memory_service import MemoryService
from backend.utils.constants import MAX_UPLOAD_SIZE_MB, SUPPORTED_INVOICE_MIME_TYPES

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])

DISCONNECT_POLL_SECONDS = 1.0


def get_reasoning_engine(request: Request) -> ReasoningEngine:
    engine = getattr(request.app.state, "reasoning_engine", None)
    if engine is None:
        logger.error("Reasoning engine is not initialized")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "service_unavailable", "details": "Chat assistant is not configured"},
        )
    return engine


def get_memory_service(request: Request) -> MemoryService:
    memory_service = getattr(request.app.state, "memory_service", None)
    if memory_service is None:
        logger.error("Memory service is not initialized")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "service_unavailable", "details": "Chat assistant is not configured"},
        )
    return memory_service


def get_user_supabase_client(
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)],
) -> Client:
    return get_supabase_client(auth_user.access_token)


def _session_response(session: Dict[str, Any]) -> ChatSessionResponse:
    return ChatSessionResponse(
        id=str(session["id"]),
        title=session.get("title") or "",
        created_at=session.get("created_at"),
        last_message_at=session.get("last_message_at"),
    )


def _message_response(message: Dict[str, Any]) -> ChatMessageResponse:
    return ChatMessageResponse(
        id=str(message["id"]),
        session_id=str(message["session_id"]),
        role=message["role"],
        content=message.get("content") or "",
        created_at=message.get("created_at"),
    )


async def _watch_disconnect(request: Request, abort_event: asyncio.Event) -> None:
    """Set abort_event once the client goes away."""
    while not abort_event.is_set():
        if await request.is_disconnected():
            logger.info("Client disconnected; aborting chat request")
            abort_event.set()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


async def _resolve_session(
    supabase_client: Client,
    user_id: str,
    session_id: Optional[str],
    first_message: str,
) -> Dict[str, Any]:
    if not session_id:
        return await create_session(supabase_client, user_id, title=first_message)

    session = await get_session(supabase_client, user_id, session_id)
    if session is None:
        logger.warning(f"Chat session {session_id} not found for user {user_id[:8]}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "not_found", "details": f"Chat session {session_id} not found"},
        )
    return session


@router.post(
    "/messages",
    response_model=SendMessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Send a message to the invoice & expense assistant",
    description="""
    Sends one user message and returns the assistant's final answer.

    The assistant may call tools (expense queries, analytics, invoice lookup,
    duplicate detection, reports, CSV export, invoice processing, updates,
    memory) before answering. Both turns are persisted to the session.

    Security:
    - Requires valid Authorization Bearer token
    - Every tool is scoped to the authenticated user
    """,
)
async def send_message(
    payload: SendMessageRequest,
    request: Request,
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)],
    supabase_client: Annotated[Client, Depends(get_user_supabase_client)],
    engine: Annotated[ReasoningEngine, Depends(get_reasoning_engine)],
    memory_service: Annotated[MemoryService, Depends(get_memory_service)],
) -> SendMessageResponse:
    user_id = auth_user.user_id

    try:
        session = await _resolve_session(supabase_client, user_id, payload.session_id, payload.content)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to resolve chat session for user {user_id[:8]}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "database_error", "details": "Failed to save your message"},
        )

    return await _complete_exchange(
        request, supabase_client, engine, memory_service, user_id, session, payload.content
    )


async def _complete_exchange(
    request: Request,
    supabase_client: Client,
    engine: ReasoningEngine,
    memory_service: MemoryService,
    user_id: str,
    session: Dict[str, Any],
    content: str,
) -> SendMessageResponse:
    """Persist the user turn, run the orchestrator and persist its reply."""
    session_id = str(session["id"])

    try:
        history = await load_recent_history(
            supabase_client, user_id, session_id, limit=settings.CHAT_HISTORY_LIMIT
        )
        user_turn = await append_turn(supabase_client, user_id, session_id, "user", content)
    except Exception as e:
        logger.error(f"Failed to prepare chat turn for user {user_id[:8]}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "database_error", "details": "Failed to save your message"},
        )

    orchestrator = ChatOrchestrator(
        engine=engine,
        memory_service=memory_service,
        supabase_client=supabase_client,
    )

    abort_event = asyncio.Event()
    watcher = asyncio.create_task(_watch_disconnect(request, abort_event))
    try:
        answer = await orchestrator.handle_user_message(
            content, history, user_id, abort_event=abort_event
        )
    finally:
        watcher.cancel()

    try:
        assistant_turn = await append_turn(supabase_client, user_id, session_id, "assistant", answer)
        session = await touch_session(supabase_client, user_id, session_id) or session
    except Exception as e:
        logger.error(f"Failed to save assistant reply for user {user_id[:8]}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "database_error", "details": "Failed to save the assistant reply"},
        )

    logger.info(
        f"Chat exchange completed: session={session_id}, user={user_id[:8]}, "
        f"history_turns={len(history)}"
    )

    return SendMessageResponse(
        session=_session_response(session),
        user_message=_message_response(user_turn),
        message=_message_response(assistant_turn),
    )


@router.post(
    "/upload",
    response_model=UploadInvoiceResponse,
    status_code=status.HTTP_200_OK,
    summary="Upload an invoice document into a chat session",
    description="""
    Accepts a PDF or image invoice (PDF, JPEG, PNG, WebP; max 10MB).

    The document is extracted, stored and saved as an invoice (plus an expense
    when a total is found). A user turn describing the upload is then sent
    through the assistant like any other message. When no session_id is
    given a new session titled "PDF: <name>" or "Image: <name>" is created.

    Extraction failures do not fail the request: the turn is still sent and
    invoice_id is null.

    Security:
    - Requires valid Authorization Bearer token
    - The invoice, file and session belong to the authenticated user
    """,
)
async def upload_invoice(
    request: Request,
    file: Annotated[UploadFile, File(description="Invoice PDF or image")],
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)],
    supabase_client: Annotated[Client, Depends(get_user_supabase_client)],
    engine: Annotated[ReasoningEngine, Depends(get_reasoning_engine)],
    memory_service: Annotated[MemoryService, Depends(get_memory_service)],
    session_id: Annotated[Optional[str], Form(description="Existing session to post into")] = None,
) -> UploadInvoiceResponse:
    user_id = auth_user.user_id

    mime_type = (file.content_type or "").lower()
    if mime_type not in SUPPORTED_INVOICE_MIME_TYPES:
        logger.warning(f"Invalid content type: {file.content_type}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "invalid_file_type",
                "details": "Only PDF and image files (JPEG, PNG, WebP) are allowed",
            },
        )

    try:
        file_bytes = await file.read()
    except Exception as e:
        logger.error(f"Failed to read uploaded file: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "file_read_error", "details": "Could not read uploaded file"},
        )

    if not file_bytes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "empty_file", "details": "Uploaded file is empty"},
        )

    max_size_bytes = MAX_UPLOAD_SIZE_MB * 1024 * 1024
    if len(file_bytes) > max_size_bytes:
        logger.warning(f"Upload too large: {len(file_bytes)} bytes")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "file_too_large",
                "details": f"File must be smaller than {MAX_UPLOAD_SIZE_MB}MB",
            },
        )

    is_pdf = invoice_file_type(mime_type) == "pdf"
    file_name = file.filename or f"invoice.{SUPPORTED_INVOICE_MIME_TYPES[mime_type]}"
    label = "PDF" if is_pdf else "Image"

    try:
        if session_id:
            session = await _resolve_session(supabase_client, user_id, session_id, file_name)
        else:
            session = await create_session(supabase_client, user_id, title=f"{label}: {file_name}")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to resolve chat session for upload by user {user_id[:8]}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "database_error", "details": "Failed to save your upload"},
        )

    logger.info(
        f"Processing invoice upload for user {user_id[:8]}: "
        f"file={file_name}, type={mime_type}, size={len(file_bytes)} bytes"
    )

    invoice: Optional[Dict[str, Any]] = None
    try:
        invoice = await ingest_invoice_document(
            supabase_client, engine, user_id, file_bytes, file_name, mime_type
        )
    except Exception as e:
        # The chat turn still goes through; the assistant is told nothing was saved
        logger.error(f"Invoice ingestion failed for upload {file_name}: {e}", exc_info=True)

    kind = "PDF" if is_pdf else "image"
    if invoice is not None:
        content = (
            f"I've uploaded an invoice {kind} ({file_name}). The invoice has been "
            f"processed and saved (invoice ID: {invoice['id']})."
        )
    else:
        article = "a" if is_pdf else "an"
        content = (
            f"I've uploaded {article} {kind} file ({file_name}), but it could not be "
            f"processed as an invoice."
        )

    exchange = await _complete_exchange(
        request, supabase_client, engine, memory_service, user_id, session, content
    )

    return UploadInvoiceResponse(
        session=exchange.session,
        user_message=exchange.user_message,
        message=exchange.message,
        invoice_id=str(invoice["id"]) if invoice is not None else None,
    )


@router.post(
    "/sessions",
    response_model=ChatSessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a chat session",
)
async def create_chat_session(
    payload: CreateSessionRequest,
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)],
    supabase_client: Annotated[Client, Depends(get_user_supabase_client)],
) -> ChatSessionResponse:
    try:
        session = await create_session(supabase_client, auth_user.user_id, title=payload.title)
    except Exception as e:
        logger.error(f"Failed to create chat session: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "database_error", "details": "Failed to create chat session"},
        )
    return _session_response(session)


@router.get(
    "/sessions",
    response_model=ChatSessionListResponse,
    summary="List chat sessions",
    description="The authenticated user's sessions, most recently active first.",
)
async def list_chat_sessions(
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)],
    supabase_client: Annotated[Client, Depends(get_user_supabase_client)],
) -> ChatSessionListResponse:
    try:
        sessions = await list_sessions(supabase_client, auth_user.user_id)
    except Exception as e:
        logger.error(f"Failed to list chat sessions: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "database_error", "details": "Failed to load chat sessions"},
        )
    items = [_session_response(session) for session in sessions]
    return ChatSessionListResponse(sessions=items, count=len(items))


@router.get(
    "/sessions/{session_id}",
    response_model=ChatSessionResponse,
    summary="Get a chat session",
)
async def get_chat_session(
    session_id: str,
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)],
    supabase_client: Annotated[Client, Depends(get_user_supabase_client)],
) -> ChatSessionResponse:
    session = await get_session(supabase_client, auth_user.user_id, session_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "not_found", "details": f"Chat session {session_id} not found"},
        )
    return _session_response(session)


@router.delete(
    "/sessions/{session_id}",
    response_model=ChatDeleteResponse,
    summary="Delete a chat session",
    description="Deletes the session together with all of its messages.",
)
async def delete_chat_session(
    session_id: str,
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)],
    supabase_client: Annotated[Client, Depends(get_user_supabase_client)],
) -> ChatDeleteResponse:
    try:
        deleted = await delete_session(supabase_client, auth_user.user_id, session_id)
    except Exception as e:
        logger.error(f"Failed to delete chat session {session_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "database_error", "details": "Failed to delete chat session"},
        )

    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "not_found", "details": f"Chat session {session_id} not found"},
        )
    return ChatDeleteResponse(id=session_id)


@router.get(
    "/sessions/{session_id}/messages",
    response_model=ChatMessageListResponse,
    summary="List messages of a chat session",
    description="All turns of one session in chronological order.",
)
async def list_chat_messages(
    session_id: str,
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)],
    supabase_client: Annotated[Client, Depends(get_user_supabase_client)],
) -> ChatMessageListResponse:
    session = await get_session(supabase_client, auth_user.user_id, session_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "not_found", "details": f"Chat session {session_id} not found"},
        )

    messages = await list_messages(supabase_client, auth_user.user_id, session_id)
    items = [_message_response(message) for message in messages]
    return ChatMessageListResponse(session_id=session_id, messages=items, count=len(items))


@router.delete(
    "/messages/{message_id}",
    response_model=ChatDeleteResponse,
    summary="Delete a single chat message",
)
async def delete_chat_message(
    message_id: str,
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)],
    supabase_client: Annotated[Client, Depends(get_user_supabase_client)],
) -> ChatDeleteResponse:
    try:
        deleted = await delete_message(supabase_client, auth_user.user_id, message_id)
    except Exception as e:
        logger.error(f"Failed to delete chat message {message_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "database_error", "details": "Failed to delete chat message"},
        )

    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "not_found", "details": f"Chat message {message_id} not found"},
        )
    return ChatDeleteResponse(id=message_id)


@router.get(
    "/memories",
    response_model=MemoryListResponse,
    summary="List what the assistant remembers about the user",
)
async def list_chat_memories(
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)],
    memory_service: Annotated[MemoryService, Depends(get_memory_service)],
) -> MemoryListResponse:
    memories = await memory_service.list_memories(auth_user.user_id)
    items = [MemoryResponse(**memory) for memory in memories]
    return MemoryListResponse(memories=items, count=len(items))
