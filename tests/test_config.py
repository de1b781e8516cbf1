"""
Tests for settings loading and the Supabase store wrapper.
"""

import pytest

from truthtable.config import DEFAULT_ANTHROPIC_MODEL, DEFAULT_CHAT_MODEL, Settings
from truthtable.errors import PersistenceError
from truthtable.store import SupabaseStore, get_supabase_client

ENV_VARS = (
    "SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_ANON_KEY", "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY", "LLM_PROVIDER", "LLM_MODEL", "EMBEDDING_MODEL", "EMBEDDING_DIMENSIONS",
    "USER_LOOKUP_URL", "REEMBED_BATCH_SIZE", "REEMBED_DELAY_SECONDS",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestSettings:
    """Tests for Settings.from_env()."""

    def test_defaults(self, clean_env):
        settings = Settings.from_env()
        assert settings.llm_provider == "openai"
        assert settings.llm_model == DEFAULT_CHAT_MODEL
        assert settings.embedding_model == "text-embedding-3-small"
        assert settings.embedding_dimensions == 1536
        assert settings.user_lookup_url is None
        assert settings.openai_api_key is None

    def test_service_role_key_preferred(self, clean_env):
        clean_env.setenv("SUPABASE_SERVICE_ROLE_KEY", "service")
        clean_env.setenv("SUPABASE_ANON_KEY", "anon")
        assert Settings.from_env().supabase_key == "service"

        clean_env.delenv("SUPABASE_SERVICE_ROLE_KEY")
        assert Settings.from_env().supabase_key == "anon"

    def test_anthropic_provider(self, clean_env):
        clean_env.setenv("LLM_PROVIDER", "Anthropic")
        settings = Settings.from_env()
        assert settings.llm_provider == "anthropic"
        assert settings.llm_model == DEFAULT_ANTHROPIC_MODEL

    def test_unknown_provider_falls_back(self, clean_env):
        clean_env.setenv("LLM_PROVIDER", "llama")
        assert Settings.from_env().llm_provider == "openai"

    def test_numeric_overrides(self, clean_env):
        clean_env.setenv("EMBEDDING_DIMENSIONS", "512")
        clean_env.setenv("REEMBED_BATCH_SIZE", "5")
        clean_env.setenv("REEMBED_DELAY_SECONDS", "0.25")
        settings = Settings.from_env()
        assert settings.embedding_dimensions == 512
        assert settings.reembed_batch_size == 5
        assert settings.reembed_delay_seconds == 0.25


class FakeResult:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Records the supabase-py builder calls made against one table."""

    def __init__(self, log, data=None, error=None):
        self.log = log
        self.data = data if data is not None else []
        self.error = error

    def __getattr__(self, name):
        def method(*args, **kwargs):
            self.log.append((name, args, kwargs))
            return self
        return method

    def execute(self):
        if self.error:
            raise self.error
        return FakeResult(self.data)


class FakeClient:
    def __init__(self, data=None, error=None):
        self.log = []
        self.data = data
        self.error = error

    def table(self, name):
        self.log.append(("table", (name,), {}))
        return FakeQuery(self.log, self.data, self.error)


class TestSupabaseStore:
    """Tests for the query-builder wrapper."""

    def test_missing_credentials(self):
        with pytest.raises(ValueError, match="SUPABASE_URL"):
            get_supabase_client(Settings())

    def test_select_many_builds_query(self):
        client = FakeClient(data=[{"id": 1}])
        rows = SupabaseStore(client).select_many(
            "transcripts_vectorized",
            filters={"user_id": "u-1"},
            order_by="created_at",
            descending=True,
            limit=5,
            exclude={"vector_model": "text-embedding-3-small"},
        )

        assert rows == [{"id": 1}]
        calls = client.log
        assert ("table", ("transcripts_vectorized",), {}) in calls
        assert ("eq", ("user_id", "u-1"), {}) in calls
        assert ("or_", ("vector_model.is.null,vector_model.neq.text-embedding-3-small",), {}) in calls
        assert ("order", ("created_at",), {"desc": True}) in calls
        assert ("limit", (5,), {}) in calls

    def test_select_one_empty(self):
        assert SupabaseStore(FakeClient(data=[])).select_one("users", {"id": "x"}) is None

    def test_upsert_passes_conflict_key(self):
        client = FakeClient(data=[{"id": 9}])
        row = SupabaseStore(client).upsert("conversation_sessions", {"session_id": "c"}, on_conflict="user_id,session_id")
        assert row == {"id": 9}
        assert ("upsert", ({"session_id": "c"},), {"on_conflict": "user_id,session_id"}) in client.log

    def test_insert_without_representation(self):
        assert SupabaseStore(FakeClient(data=[])).insert("users", {"a": 1}) == {}

    def test_errors_wrapped(self):
        """Test that client exceptions surface as PersistenceError naming the table."""
        store = SupabaseStore(FakeClient(error=RuntimeError("connection reset")))
        with pytest.raises(PersistenceError) as excinfo:
            store.update("users", {"a": 1}, {"id": "u-1"})
        assert excinfo.value.store == "users"
        assert "connection reset" in str(excinfo.value)
