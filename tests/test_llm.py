"""
Tests for the LLM client handle, using stand-ins for the provider SDKs.
"""

from types import SimpleNamespace

import pytest

from truthtable.config import Settings
from truthtable.errors import EmbeddingError
from truthtable.llm import LLMClient


class FakeOpenAI:
    """Minimal stand-in for the OpenAI client surface the handle uses."""

    def __init__(self, reply="Hello there.", embed_error=None):
        self.reply = reply
        self.embed_error = embed_error
        self.chat_requests = []
        self.embed_requests = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._chat))
        self.embeddings = SimpleNamespace(create=self._embed)

    def _chat(self, **kwargs):
        self.chat_requests.append(kwargs)
        message = SimpleNamespace(content=self.reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    def _embed(self, **kwargs):
        self.embed_requests.append(kwargs)
        if self.embed_error:
            raise self.embed_error
        data = [SimpleNamespace(embedding=[float(i), 1.0]) for i, _ in enumerate(kwargs["input"])]
        return SimpleNamespace(data=data)


class FakeAnthropic:
    def __init__(self, text="Bonjour."):
        self.requests = []
        self.text = text
        self.messages = SimpleNamespace(create=self._create)

    def _create(self, **kwargs):
        self.requests.append(kwargs)
        return SimpleNamespace(content=[
            SimpleNamespace(type="text", text=self.text),
            SimpleNamespace(type="tool_use", text="ignored"),
        ])


class TestCompletions:
    """Tests for LLMClient.complete()."""

    def test_openai_messages(self):
        """Test system and user messages plus the user id."""
        openai = FakeOpenAI(reply="  Sure thing.  ")
        client = LLMClient(openai_client=openai, chat_model="gpt-4o-mini")

        text = client.complete("Be brief.", "Hi", temperature=0.1, max_tokens=50, user="u-1")

        assert text == "Sure thing."
        request = openai.chat_requests[0]
        assert request["model"] == "gpt-4o-mini"
        assert request["messages"] == [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "Hi"},
        ]
        assert request["temperature"] == 0.1
        assert request["max_tokens"] == 50
        assert request["user"] == "u-1"

    def test_openai_without_system_prompt(self):
        openai = FakeOpenAI()
        LLMClient(openai_client=openai).complete(None, "Summarize this")
        request = openai.chat_requests[0]
        assert request["messages"] == [{"role": "user", "content": "Summarize this"}]
        assert "user" not in request

    def test_anthropic_provider(self):
        """Test routing to Anthropic and joining only text blocks."""
        anthropic = FakeAnthropic()
        client = LLMClient(anthropic_client=anthropic, provider="anthropic", chat_model="claude-test")

        assert client.complete("Be brief.", "Hi", max_tokens=10) == "Bonjour."
        request = anthropic.requests[0]
        assert request["system"] == "Be brief."
        assert request["model"] == "claude-test"
        assert request["messages"] == [{"role": "user", "content": "Hi"}]

    def test_unconfigured_provider(self):
        with pytest.raises(RuntimeError):
            LLMClient().complete(None, "Hi")
        with pytest.raises(RuntimeError):
            LLMClient(provider="anthropic").complete(None, "Hi")

    def test_empty_reply_raises(self):
        with pytest.raises(ValueError):
            LLMClient(openai_client=FakeOpenAI(reply="   ")).complete(None, "Hi")


class TestEmbeddings:
    """Tests for LLMClient.embed() and embed_batch()."""

    def test_batch_request(self):
        openai = FakeOpenAI()
        client = LLMClient(openai_client=openai, embedding_model="text-embedding-3-small", embedding_dimensions=1536)

        vectors = client.embed_batch(["a", "b"])

        assert vectors == [[0.0, 1.0], [1.0, 1.0]]
        request = openai.embed_requests[0]
        assert request["input"] == ["a", "b"]
        assert request["encoding_format"] == "float"
        assert request["dimensions"] == 1536

    def test_single_embed(self):
        assert LLMClient(openai_client=FakeOpenAI()).embed("hello") == [0.0, 1.0]

    @pytest.mark.parametrize("texts", [[], ["ok", " "], [""]])
    def test_empty_text_rejected(self, texts):
        with pytest.raises(EmbeddingError):
            LLMClient(openai_client=FakeOpenAI()).embed_batch(texts)

    def test_api_error_wrapped(self):
        client = LLMClient(openai_client=FakeOpenAI(embed_error=RuntimeError("429")))
        with pytest.raises(EmbeddingError, match="429"):
            client.embed("hello")

    def test_no_client(self):
        with pytest.raises(EmbeddingError):
            LLMClient().embed("hello")


class TestFromSettings:
    """Tests for building the handle from settings."""

    def test_clients_only_for_configured_keys(self):
        client = LLMClient.from_settings(Settings())
        assert client.openai_client is None
        assert client.anthropic_client is None
        assert client.embedding_model == "text-embedding-3-small"

    def test_keys_create_clients(self):
        settings = Settings(openai_api_key="sk-test", anthropic_api_key="ak-test", llm_provider="anthropic")
        client = LLMClient.from_settings(settings)
        assert client.openai_client is not None
        assert client.anthropic_client is not None
        assert client.provider == "anthropic"
