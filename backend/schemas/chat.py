"""
Chat API request/response models.

user_id never appears in a request model; it always comes from the verified token.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SendMessageRequest(BaseModel):
    """Request body for POST /chat/messages."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "session_id": None,
                "content": "How much did I spend on software last month?",
            }
        }
    )

    session_id: Optional[str] = Field(
        default=None,
        description="Existing session to continue; a new session is created when omitted",
    )
    content: str = Field(
        ...,
        min_length=1,
        max_length=8000,
        description="The user's message",
    )

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("content must not be blank")
        return value.strip()


class CreateSessionRequest(BaseModel):
    """Request body for POST /chat/sessions."""

    title: Optional[str] = Field(default=None, max_length=200, description="Optional session title")


class ChatSessionResponse(BaseModel):
    id: str
    title: str
    created_at: Optional[datetime] = None
    last_message_at: Optional[datetime] = None


class ChatMessageResponse(BaseModel):
    id: str
    session_id: str
    role: Literal["user", "assistant"]
    content: str
    created_at: Optional[datetime] = None


class SendMessageResponse(BaseModel):
    """Both persisted turns of one exchange, plus the session they belong to."""

    session: ChatSessionResponse
    user_message: ChatMessageResponse
    message: ChatMessageResponse = Field(..., description="The assistant's reply")


class UploadInvoiceResponse(SendMessageResponse):
    """Result of POST /chat/upload: the exchange plus the invoice created from the file."""

    invoice_id: Optional[str] = Field(
        default=None,
        description="Created invoice, or null when the document could not be processed",
    )


class ChatDeleteResponse(BaseModel):
    status: Literal["DELETED"] = Field("DELETED", description="Indicates successful deletion")
    id: str = Field(..., description="ID of the deleted session or message")


class ChatSessionListResponse(BaseModel):
    sessions: List[ChatSessionResponse]
    count: int


class ChatMessageListResponse(BaseModel):
    session_id: str
    messages: List[ChatMessageResponse]
    count: int


class MemoryResponse(BaseModel):
    id: Optional[str] = None
    text: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class MemoryListResponse(BaseModel):
    memories: List[MemoryResponse]
    count: int
