"""
Shared test doubles for TruthTable tests.

InMemoryStore mimics the SupabaseStore table interface; FakeLLM scripts
completions and returns deterministic embeddings. No network access.
"""

import uuid
from collections import defaultdict
from typing import Any, Dict, List, Optional

import pytest

from truthtable.config import Settings
from truthtable.errors import EmbeddingError, PersistenceError
from truthtable.services import build_services


class InMemoryStore:
    """Dict-of-lists store with optional per-table or per-operation failures."""

    def __init__(self, fail_tables=(), fail_ops=()):
        self.tables: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self.fail_tables = set(fail_tables)
        self.fail_ops = set(fail_ops)
        self.operations: List[tuple] = []

    def _check(self, op: str, table: str) -> None:
        self.operations.append((op, table))
        if table in self.fail_tables or (op, table) in self.fail_ops:
            raise PersistenceError(f"{op} on {table} unavailable", store=table)

    @staticmethod
    def _matches(row: Dict[str, Any], filters: Optional[Dict[str, Any]]) -> bool:
        return all(row.get(k) == v for k, v in (filters or {}).items())

    def select_many(self, table, filters=None, columns="*", order_by=None,
                    descending=True, limit=None, exclude=None):
        self._check("select", table)
        rows = [dict(r) for r in self.tables[table] if self._matches(r, filters)]
        for column, value in (exclude or {}).items():
            rows = [r for r in rows if r.get(column) is None or r.get(column) != value]
        if order_by:
            rows.sort(key=lambda r: str(r.get(order_by) or ""), reverse=descending)
        if limit:
            rows = rows[:limit]
        return rows

    def select_one(self, table, filters, columns="*"):
        rows = self.select_many(table, filters=filters, columns=columns, limit=1)
        return rows[0] if rows else None

    def insert(self, table, row):
        self._check("insert", table)
        row = dict(row)
        row.setdefault("id", str(uuid.uuid4()))
        self.tables[table].append(row)
        return dict(row)

    def upsert(self, table, row, on_conflict):
        self._check("upsert", table)
        keys = [k.strip() for k in on_conflict.split(",")]
        for existing in self.tables[table]:
            if all(existing.get(k) == row.get(k) for k in keys):
                existing.update(row)
                return dict(existing)
        row = dict(row)
        row.setdefault("id", str(uuid.uuid4()))
        self.tables[table].append(row)
        return dict(row)

    def update(self, table, values, filters):
        self._check("update", table)
        updated = []
        for row in self.tables[table]:
            if self._matches(row, filters):
                row.update(values)
                updated.append(dict(row))
        return updated


def keyword_vector(text: str, dims: int = 8) -> List[float]:
    """Deterministic bag-of-characters embedding."""
    vector = [0.0] * dims
    for word in text.lower().split():
        vector[sum(ord(c) for c in word) % dims] += 1.0
    return vector


class FakeLLM:
    """
    Scripted language model.

    Completions are routed by prompt: extraction requests get `extraction`,
    summary requests (no system prompt) get `summary`, everything else gets
    `answer`. Each may be a string or an exception instance to raise.
    """

    def __init__(
        self,
        extraction: Any = "Sorry, I cannot produce JSON right now.",
        summary: Any = "Caller wants to form an LLC.",
        answer: Any = "Let's confirm your business name and state.",
        embedding_model: str = "text-embedding-3-small",
        fail_embedding_for: tuple = (),
    ):
        self.extraction = extraction
        self.summary = summary
        self.answer = answer
        self.embedding_model = embedding_model
        self.fail_embedding_for = fail_embedding_for
        self.calls: List[Dict[str, Any]] = []
        self.embed_calls: List[str] = []

    def complete(self, system_prompt, user_prompt, temperature=0.7, max_tokens=500, user=None):
        self.calls.append({
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "user": user,
        })
        if system_prompt and "data extraction specialist" in system_prompt:
            reply = self.extraction
        elif system_prompt is None:
            reply = self.summary
        else:
            reply = self.answer
        if isinstance(reply, Exception):
            raise reply
        return reply

    def embed(self, text):
        self.embed_calls.append(text)
        if any(marker in text for marker in self.fail_embedding_for):
            raise EmbeddingError("scripted embedding failure")
        return keyword_vector(text)

    def embed_batch(self, texts):
        return [self.embed(t) for t in texts]


def jane_doe_payload(**overrides) -> Dict[str, Any]:
    """Artifact-shaped end-of-call webhook for the Jane Doe scenario."""
    payload = {
        "message": {
            "type": "end-of-call-report",
            "call": {"id": "call-jane-1", "customer": {"number": "+15125550100"}},
            "artifact": {
                "messages": [
                    {"role": "bot", "message": "Hi, this is Elliot from DreamSeed. How can I help?"},
                    {
                        "role": "user",
                        "message": "My name is Jane Doe, email jane at acme dot com, I want an LLC in Texas",
                    },
                    {"role": "bot", "message": "Great, let's get your LLC started."},
                ]
            },
        }
    }
    payload["message"].update(overrides)
    return payload


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def services(settings, store, llm):
    return build_services(settings=settings, store=store, llm=llm)
