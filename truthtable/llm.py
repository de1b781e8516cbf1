"""
Language-model service handle for TruthTable.

One long-lived object that performs chat completions (OpenAI by default,
Anthropic when LLM_PROVIDER=anthropic) and OpenAI embeddings. Components
receive it by injection so tests can substitute a scripted fake.
"""

import logging
from typing import List, Optional

from anthropic import Anthropic
from openai import OpenAI

from truthtable.config import Settings
from truthtable.errors import EmbeddingError

logger = logging.getLogger(__name__)


class LLMClient:
    """Chat completion and embedding calls behind one interface."""

    def __init__(
        self,
        openai_client: Optional[OpenAI] = None,
        anthropic_client: Optional[Anthropic] = None,
        provider: str = "openai",
        chat_model: str = "gpt-4o-mini",
        embedding_model: str = "text-embedding-3-small",
        embedding_dimensions: Optional[int] = None,
    ):
        self.openai_client = openai_client
        self.anthropic_client = anthropic_client
        self.provider = provider
        self.chat_model = chat_model
        self.embedding_model = embedding_model
        self.embedding_dimensions = embedding_dimensions

    @classmethod
    def from_settings(cls, settings: Settings) -> "LLMClient":
        """
        Create clients for whichever API keys are configured.

        Args:
            settings: Loaded settings

        Returns:
            LLMClient instance (clients without a key stay None)
        """
        openai_client = OpenAI(api_key=settings.openai_api_key) if settings.openai_api_key else None
        anthropic_client = (
            Anthropic(api_key=settings.anthropic_api_key) if settings.anthropic_api_key else None
        )

        if openai_client is None:
            logger.warning("OPENAI_API_KEY not set, embeddings and OpenAI completions disabled")
        if settings.llm_provider == "anthropic" and anthropic_client is None:
            logger.warning("LLM_PROVIDER=anthropic but ANTHROPIC_API_KEY not set")

        return cls(
            openai_client=openai_client,
            anthropic_client=anthropic_client,
            provider=settings.llm_provider,
            chat_model=settings.llm_model,
            embedding_model=settings.embedding_model,
            embedding_dimensions=settings.embedding_dimensions,
        )

    def complete(
        self,
        system_prompt: Optional[str],
        user_prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 500,
        user: Optional[str] = None,
    ) -> str:
        """
        Run a single-turn chat completion.

        Args:
            system_prompt: System instructions (None for a bare user prompt)
            user_prompt: The user message
            temperature: Sampling temperature
            max_tokens: Completion token budget
            user: Optional end-user id forwarded to OpenAI for abuse tracking

        Returns:
            The model's text, stripped

        Raises:
            RuntimeError: If no client is configured for the provider
            ValueError: If the model returned no text
        """
        if self.provider == "anthropic":
            text = self._complete_anthropic(system_prompt, user_prompt, temperature, max_tokens)
        else:
            text = self._complete_openai(system_prompt, user_prompt, temperature, max_tokens, user)

        if not text or not text.strip():
            raise ValueError("Language model returned an empty response")
        return text.strip()

    def _complete_openai(self, system_prompt, user_prompt, temperature, max_tokens, user) -> str:
        if self.openai_client is None:
            raise RuntimeError("OpenAI client not configured")

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        kwargs = {}
        if user:
            kwargs["user"] = user

        response = self.openai_client.chat.completions.create(
            model=self.chat_model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            **kwargs,
        )
        return response.choices[0].message.content or ""

    def _complete_anthropic(self, system_prompt, user_prompt, temperature, max_tokens) -> str:
        if self.anthropic_client is None:
            raise RuntimeError("Anthropic client not configured")

        kwargs = {}
        if system_prompt:
            kwargs["system"] = system_prompt

        response = self.anthropic_client.messages.create(
            model=self.chat_model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=[{"role": "user", "content": user_prompt}],
            **kwargs,
        )
        return "".join(block.text for block in response.content if block.type == "text")

    def embed(self, text: str) -> List[float]:
        """
        Embed a single text.

        Raises:
            EmbeddingError: If the text is empty or the API call fails
        """
        vectors = self.embed_batch([text])
        return vectors[0]

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Embed several texts in one API call.

        Args:
            texts: Non-empty strings to embed

        Returns:
            One vector per input text, in input order

        Raises:
            EmbeddingError: If any text is empty or the API call fails
        """
        if not texts or any(not t or not t.strip() for t in texts):
            raise EmbeddingError("Cannot embed empty text")
        if self.openai_client is None:
            raise EmbeddingError("OpenAI client not configured")

        kwargs = {}
        if self.embedding_dimensions:
            kwargs["dimensions"] = self.embedding_dimensions

        try:
            response = self.openai_client.embeddings.create(
                model=self.embedding_model,
                input=texts,
                encoding_format="float",
                **kwargs,
            )
        except Exception as e:
            raise EmbeddingError(f"Embedding request failed: {e}") from e

        return [item.embedding for item in response.data]
