"""
Pytest configuration for the invoice copilot backend tests.

Provides in-memory stand-ins for the three external systems the chat
assistant talks to: Supabase tables, the Chroma memory collection and the
Gemini reasoning engine.
"""
import inspect
import os
import re
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

# Disable config validation during tests
os.environ["VALIDATE_CONFIG"] = "false"

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_PUBLISHABLE_KEY", "test-publishable-key")
os.environ.setdefault("GOOGLE_API_KEY", "test-google-api-key")
os.environ.setdefault("DEFAULT_CURRENCY", "INR")

from backend.agents.types import ModelResponse  # noqa: E402
from backend.services.memory_service import MemoryService  # noqa: E402

# ---------------------------------------------------------------------------
# Supabase
# ---------------------------------------------------------------------------

def _like_to_regex(pattern: str) -> re.Pattern:
    # Postgres LIKE: % any run, _ one char, backslash escapes the next char
    regex = []
    chars = iter(str(pattern))
    for char in chars:
        if char == "\\":
            regex.append(re.escape(next(chars, "\\")))
        elif char == "%":
            regex.append(".*")
        elif char == "_":
            regex.append(".")
        else:
            regex.append(re.escape(char))
    return re.compile("^" + "".join(regex) + "$", re.IGNORECASE | re.DOTALL)


def _compare(op: str, left: Any, right: Any) -> bool:
    if left is None:
        return False
    if isinstance(right, (int, float)) and not isinstance(left, (int, float)):
        left = float(left)
    if op == "gt":
        return left > right
    if op == "gte":
        return left >= right
    if op == "lt":
        return left < right
    return left <= right


class FakeQuery:
    """Subset of the PostgREST query builder the services use."""

    def __init__(self, client: "FakeSupabaseClient", table: str):
        self._client = client
        self._table = table
        self._action = "select"
        self._payload: Any = None
        self._filters: List[Callable[[Dict[str, Any]], bool]] = []
        self._order: Optional[tuple] = None
        self._limit: Optional[int] = None
        self.eq_filters: Dict[str, Any] = {}

    # actions
    def select(self, *_columns, **_kwargs):
        self._action = "select"
        return self

    def insert(self, payload):
        self._action = "insert"
        self._payload = payload
        return self

    def update(self, payload):
        self._action = "update"
        self._payload = payload
        return self

    def delete(self):
        self._action = "delete"
        return self

    # filters
    def eq(self, column, value):
        self.eq_filters[column] = value
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def ilike(self, column, pattern):
        regex = _like_to_regex(pattern)
        self._filters.append(lambda row: row.get(column) is not None and bool(regex.match(str(row[column]))))
        return self

    def in_(self, column, values):
        allowed = list(values)
        self._filters.append(lambda row: row.get(column) in allowed)
        return self

    def gt(self, column, value):
        self._filters.append(lambda row: _compare("gt", row.get(column), value))
        return self

    def gte(self, column, value):
        self._filters.append(lambda row: _compare("gte", row.get(column), value))
        return self

    def lt(self, column, value):
        self._filters.append(lambda row: _compare("lt", row.get(column), value))
        return self

    def lte(self, column, value):
        self._filters.append(lambda row: _compare("lte", row.get(column), value))
        return self

    def or_(self, expression):
        clauses = []
        for clause in expression.split(","):
            column, op, value = clause.split(".", 2)
            if op == "ilike":
                regex = _like_to_regex(value)
                clauses.append(lambda row, c=column, r=regex: row.get(c) is not None and bool(r.match(str(row[c]))))
            else:
                clauses.append(lambda row, c=column, v=value: str(row.get(c)) == v)
        self._filters.append(lambda row: any(check(row) for check in clauses))
        return self

    def order(self, column, desc=False):
        self._order = (column, desc)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def _matches(self, row: Dict[str, Any]) -> bool:
        return all(check(row) for check in self._filters)

    def execute(self):
        self._client.queries.append(self)
        rows = self._client.tables.setdefault(self._table, [])

        if self._action == "insert":
            payloads = self._payload if isinstance(self._payload, list) else [self._payload]
            inserted = [self._client.store(self._table, dict(payload)) for payload in payloads]
            return SimpleNamespace(data=[dict(row) for row in inserted])

        matched = [row for row in rows if self._matches(row)]

        if self._action == "update":
            for row in matched:
                row.update(self._payload)
            return SimpleNamespace(data=[dict(row) for row in matched])

        if self._action == "delete":
            self._client.tables[self._table] = [row for row in rows if row not in matched]
            return SimpleNamespace(data=[dict(row) for row in matched])

        if self._order is not None:
            column, desc = self._order
            present = [row for row in matched if row.get(column) is not None]
            missing = [row for row in matched if row.get(column) is None]
            matched = sorted(present, key=lambda row: row[column], reverse=desc) + missing
        if self._limit is not None:
            matched = matched[: self._limit]
        return SimpleNamespace(data=[dict(row) for row in matched])


class FakeSupabaseClient:
    """In-memory tables with just enough PostgREST behaviour for the services."""

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.queries: List[FakeQuery] = []
        self.storage = MagicMock()
        self.storage.from_.return_value.create_signed_url.return_value = {
            "signedURL": "https://storage.example.com/signed/invoice.pdf"
        }
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)
        for name, rows in (tables or {}).items():
            for row in rows:
                self.store(name, dict(row))

    def store(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        # Monotonic created_at keeps ordering deterministic
        self._clock += timedelta(seconds=1)
        row.setdefault("id", str(uuid4()))
        row.setdefault("created_at", self._clock.isoformat())
        self.tables.setdefault(table, []).append(row)
        return row

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.get(table, [])


@pytest.fixture
def supabase_client():
    """Empty in-memory Supabase client."""
    return FakeSupabaseClient()


@pytest.fixture
def make_supabase():
    """Factory for a Supabase client seeded with rows: make_supabase({"invoice": [...]})."""
    return FakeSupabaseClient


# ---------------------------------------------------------------------------
# Chroma
# ---------------------------------------------------------------------------

def _where_matches(where: Optional[Dict[str, Any]], metadata: Dict[str, Any]) -> bool:
    if not where:
        return True
    if "$and" in where:
        return all(_where_matches(clause, metadata) for clause in where["$and"])
    return all(metadata.get(key) == value for key, value in where.items())


def _tokens(text: str) -> set:
    return set(re.findall(r"[a-z0-9]+", text.lower()))


class FakeCollection:
    """Chroma collection stand-in; similarity is word overlap."""

    def __init__(self):
        self.records: Dict[str, Dict[str, Any]] = {}

    def add(self, ids, documents, metadatas):
        for record_id, document, metadata in zip(ids, documents, metadatas):
            self.records[record_id] = {"document": document, "metadata": dict(metadata)}

    def get(self, where=None, **_kwargs):
        hits = [(rid, r) for rid, r in self.records.items() if _where_matches(where, r["metadata"])]
        return {
            "ids": [rid for rid, _ in hits],
            "documents": [r["document"] for _, r in hits],
            "metadatas": [r["metadata"] for _, r in hits],
        }

    def query(self, query_texts, n_results=10, where=None, **_kwargs):
        query_tokens = _tokens(query_texts[0])
        scored = []
        for record_id, record in self.records.items():
            if not _where_matches(where, record["metadata"]):
                continue
            doc_tokens = _tokens(record["document"])
            overlap = len(query_tokens & doc_tokens) / max(1, len(doc_tokens))
            scored.append((1.0 - overlap, record_id, record))
        scored.sort(key=lambda item: item[0])
        scored = scored[:n_results]
        return {
            "ids": [[rid for _, rid, _ in scored]],
            "documents": [[r["document"] for _, _, r in scored]],
            "metadatas": [[r["metadata"] for _, _, r in scored]],
            "distances": [[distance for distance, _, _ in scored]],
        }

    def delete(self, ids=None, **_kwargs):
        for record_id in ids or []:
            self.records.pop(record_id, None)


@pytest.fixture
def memory_collection():
    return FakeCollection()


@pytest.fixture
def memory_service(memory_collection):
    """MemoryService over the in-memory collection."""
    return MemoryService(collection_factory=lambda: memory_collection)


@pytest.fixture
def broken_memory_service():
    """MemoryService whose backend is unreachable."""

    def factory():
        raise ConnectionError("chroma unreachable")

    return MemoryService(collection_factory=factory)


# ---------------------------------------------------------------------------
# Reasoning engine
# ---------------------------------------------------------------------------

class FakeReasoningEngine:
    """
    Scripted ReasoningEngine.

    tool_responses: ModelResponse objects (or callables taking the message
    list and returning one) consumed by generate_with_tools in order.
    text_responses: strings or exceptions consumed by generate_text in order.
    """

    def __init__(self, tool_responses=None, text_responses=None, file_response: str = "{}"):
        self.tool_responses = list(tool_responses or [])
        self.text_responses = list(text_responses or [])
        self.file_response = file_response
        self.tool_calls_made: List[List[Any]] = []
        self.text_prompts: List[str] = []
        self.file_calls: List[Dict[str, Any]] = []
        self.declared_tools: List[List[str]] = []
        self.json_requests: List[bool] = []

    async def generate_text(self, prompt, temperature=0.3, json_output=False):
        self.text_prompts.append(prompt)
        self.json_requests.append(json_output)
        if not self.text_responses:
            return ""
        response = self.text_responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def generate_from_file(self, prompt, file_bytes, mime_type, temperature=0.1, json_output=False):
        self.file_calls.append(
            {"prompt": prompt, "bytes": file_bytes, "mime_type": mime_type, "json_output": json_output}
        )
        return self.file_response

    async def generate_with_tools(self, messages, tools, temperature=0.3):
        self.tool_calls_made.append(list(messages))
        self.declared_tools.append([tool.name for tool in tools])
        if not self.tool_responses:
            return ModelResponse(text="Done.")
        response = self.tool_responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            result = response(messages)
            return await result if inspect.isawaitable(result) else result
        return response

    @property
    def model_calls(self) -> int:
        return len(self.tool_calls_made)


@pytest.fixture
def make_engine():
    """Factory for a scripted reasoning engine."""
    return FakeReasoningEngine
