"""
Long-term user memory backed by a Chroma collection.

Stores short facts about a user (name, preferences, ...) as documents with
metadata {user_id, key, type, description, created_at}, embedded with Gemini
so they can be found by similarity search.

Memory is a soft dependency of the chat assistant:
- search / list / get never raise; they log and return an empty result
- save returns False and delete returns None when the backend fails
so an unreachable Chroma never breaks a conversation.

Keys are NOT unique: saving the same key twice stores two records,
get_by_key returns the first one Chroma yields and delete_by_key removes all.

Chroma's client is synchronous; every call runs in a worker thread.
"""

import asyncio
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, TypedDict
from uuid import uuid4

import chromadb
from chromadb import Documents, EmbeddingFunction, Embeddings
from chromadb.api.models.Collection import Collection
from google import genai

from backend.config import settings

logger = logging.getLogger(__name__)


class MemorySearchResult(TypedDict):
    """One similarity-search hit, best-first ordering is preserved by callers."""
    text: str
    metadata: Dict[str, Any]
    distance: float


class GeminiEmbeddingFunction(EmbeddingFunction[Documents]):
    """Chroma embedding function using the Gemini embeddings endpoint."""

    def __init__(self, client: genai.Client, model: str = "gemini-embedding-001"):
        self._client = client
        self._model = model

    @staticmethod
    def name() -> str:
        return "gemini"

    def __call__(self, input: Documents) -> Embeddings:
        response = self._client.models.embed_content(model=self._model, contents=list(input))
        return [list(embedding.values or []) for embedding in response.embeddings or []]


def _where(user_id: str, key: Optional[str] = None) -> Dict[str, Any]:
    """Chroma metadata filter; multiple conditions need an explicit $and."""
    if key is None:
        return {"user_id": user_id}
    return {"$and": [{"user_id": user_id}, {"key": key}]}


def format_memory_text(key: Optional[str], value: str, description: Optional[str] = None) -> str:
    """Indexed text for a memory: 'key: value - description' (key/description optional)."""
    if not key:
        return value
    text = f"{key}: {value}"
    if description:
        text += f" - {description}"
    return text


class MemoryService:
    """Per-user semantic memory store."""

    def __init__(self, collection_factory: Callable[[], Collection]):
        self._collection_factory = collection_factory
        self._collection: Optional[Collection] = None
        self._lock = threading.Lock()

    def _get_collection(self) -> Collection:
        with self._lock:
            if self._collection is None:
                self._collection = self._collection_factory()
            return self._collection

    async def save(
        self,
        user_id: str,
        value: str,
        key: Optional[str] = None,
        description: Optional[str] = None,
        type: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Store a memory for user_id.

        Returns:
            True if stored, False if the memory backend failed (logged).
        """
        text = format_memory_text(key, value, description)
        record_metadata: Dict[str, Any] = {
            "user_id": user_id,
            "key": key or "",
            "type": type or "general",
            "description": description or "",
            **(metadata or {}),
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        memory_id = f"{user_id}_{int(time.time() * 1000)}_{uuid4().hex[:9]}"

        def _add() -> None:
            self._get_collection().add(
                ids=[memory_id],
                documents=[text],
                metadatas=[record_metadata],
            )

        try:
            await asyncio.to_thread(_add)
        except Exception as e:
            logger.error(f"Error saving memory for user {user_id[:8]}: {e}", exc_info=True)
            return False

        logger.info(f"Memory saved for user {user_id[:8]}: key={key or '-'}, type={record_metadata['type']}")
        return True

    async def search_by_query(
        self,
        user_id: str,
        query: str,
        limit: int = 5,
    ) -> List[MemorySearchResult]:
        """Similarity search over user_id's memories, best match first. Never raises."""

        def _query() -> Dict[str, Any]:
            return dict(
                self._get_collection().query(
                    query_texts=[query],
                    n_results=max(1, limit),
                    where=_where(user_id),
                )
            )

        try:
            results = await asyncio.to_thread(_query)
        except Exception as e:
            logger.error(f"Error searching memories for user {user_id[:8]}: {e}")
            return []

        documents = (results.get("documents") or [[]])[0] or []
        metadatas = (results.get("metadatas") or [[]])[0] or []
        distances = (results.get("distances") or [[]])[0] or []

        memories: List[MemorySearchResult] = []
        for index, document in enumerate(documents):
            if not document:
                continue
            memories.append(
                {
                    "text": document,
                    "metadata": dict(metadatas[index] or {}) if index < len(metadatas) else {},
                    "distance": float(distances[index]) if index < len(distances) else 0.0,
                }
            )

        logger.debug(f"Memory search for user {user_id[:8]} returned {len(memories)} results")
        return memories

    async def get_by_key(self, user_id: str, key: str) -> Optional[str]:
        """Text of the first memory stored under key, or None (also on backend failure)."""

        def _get() -> Dict[str, Any]:
            return dict(self._get_collection().get(where=_where(user_id, key)))

        try:
            results = await asyncio.to_thread(_get)
        except Exception as e:
            logger.error(f"Error getting memory by key for user {user_id[:8]}: key={key}, error={e}")
            return None

        documents = results.get("documents") or []
        for document in documents:
            if document:
                return document
        return None

    async def delete_by_key(self, user_id: str, key: str) -> Optional[int]:
        """
        Delete every memory of user_id stored under key.

        Returns:
            Number of deleted records, or None if the backend failed (logged).
        """

        def _delete() -> int:
            collection = self._get_collection()
            found = collection.get(where=_where(user_id, key))
            ids = list(found.get("ids") or [])
            if ids:
                collection.delete(ids=ids)
            return len(ids)

        try:
            deleted = await asyncio.to_thread(_delete)
        except Exception as e:
            logger.error(f"Error deleting memory for user {user_id[:8]}: key={key}, error={e}")
            return None

        logger.info(f"Deleted {deleted} memories for user {user_id[:8]} under key={key}")
        return deleted

    async def list_memories(self, user_id: str) -> List[Dict[str, Any]]:
        """All memories of user_id as {id, text, metadata}. Never raises."""

        def _get() -> Dict[str, Any]:
            return dict(self._get_collection().get(where=_where(user_id)))

        try:
            results = await asyncio.to_thread(_get)
        except Exception as e:
            logger.error(f"Error listing memories for user {user_id[:8]}: {e}")
            return []

        ids = results.get("ids") or []
        documents = results.get("documents") or []
        metadatas = results.get("metadatas") or []

        memories = []
        for index, document in enumerate(documents):
            if not document:
                continue
            memories.append(
                {
                    "id": ids[index] if index < len(ids) else None,
                    "text": document,
                    "metadata": dict(metadatas[index] or {}) if index < len(metadatas) else {},
                }
            )
        return memories

    async def load_relevant_context(self, user_id: str, context: str, limit: int = 5) -> str:
        """
        Format the memories most relevant to context as a prompt block.

        Returns an empty string when nothing relevant is stored or search failed.
        """
        memories = await self.search_by_query(user_id, context, limit)
        if not memories:
            return ""

        memory_text = "\n".join(f"- {memory['text']}" for memory in memories)
        return f"Relevant user information:\n{memory_text}\n"


def _create_chroma_client():
    """Pick the Chroma deployment from settings: Cloud, self-hosted server or local."""
    if settings.CHROMA_API_KEY:
        return chromadb.CloudClient(
            tenant=settings.CHROMA_TENANT or None,
            database=settings.CHROMA_DATABASE or None,
            api_key=settings.CHROMA_API_KEY,
        )
    if settings.CHROMA_HOST:
        return chromadb.HttpClient(host=settings.CHROMA_HOST, port=settings.CHROMA_PORT)
    return chromadb.PersistentClient(path=settings.CHROMA_PATH)


def build_memory_service(genai_client: genai.Client) -> MemoryService:
    """
    Create the process-wide MemoryService.

    The collection is opened lazily on first use, so a Chroma outage at
    startup only degrades memory instead of preventing the app from booting.
    """
    embedding_function = GeminiEmbeddingFunction(
        client=genai_client,
        model=settings.GEMINI_EMBEDDING_MODEL,
    )

    def collection_factory() -> Collection:
        client = _create_chroma_client()
        collection = client.get_or_create_collection(
            name=settings.CHROMA_COLLECTION,
            embedding_function=embedding_function,  # type: ignore[arg-type]
        )
        logger.info(f"Chroma collection ready: {settings.CHROMA_COLLECTION}")
        return collection

    return MemoryService(collection_factory=collection_factory)
