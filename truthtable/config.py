"""
Configuration for TruthTable.

Centralized settings read from the environment (and a local .env file).
No side effects at module level: nothing is read until Settings.from_env()
is called.
"""

import os
import logging
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_CHAT_MODEL = "gpt-4o-mini"
DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-5-20250929"
DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"
DEFAULT_EMBEDDING_DIMENSIONS = 1536

# Table names in the Supabase project
USERS_TABLE = "users"
DREAM_DNA_TABLE = "dream_dna"
RAW_TRANSCRIPTS_TABLE = "transcripts_raw"
VECTORIZED_TRANSCRIPTS_TABLE = "transcripts_vectorized"
SESSIONS_TABLE = "conversation_sessions"
LEGACY_TRANSCRIPTS_TABLE = "call_transcripts"


class Settings(BaseModel):
    """Runtime settings for the pipeline and API."""

    supabase_url: str = ""
    supabase_key: str = ""
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    llm_provider: str = Field("openai", description="Completion backend: openai or anthropic")
    llm_model: str = DEFAULT_CHAT_MODEL
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    embedding_dimensions: int = DEFAULT_EMBEDDING_DIMENSIONS
    user_lookup_url: Optional[str] = Field(
        None, description="External identity lookup endpoint; store lookup is used when unset"
    )
    reembed_batch_size: int = 20
    reembed_delay_seconds: float = 1.0

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Build settings from environment variables.

        Loads .env first so local development works without exporting
        anything by hand.

        Returns:
            Settings instance
        """
        load_dotenv()

        provider = os.environ.get("LLM_PROVIDER", "openai").strip().lower()
        if provider not in ("openai", "anthropic"):
            logger.warning(f"Unknown LLM_PROVIDER '{provider}', defaulting to openai")
            provider = "openai"

        default_model = DEFAULT_ANTHROPIC_MODEL if provider == "anthropic" else DEFAULT_CHAT_MODEL

        return cls(
            supabase_url=os.environ.get("SUPABASE_URL", "").strip(),
            supabase_key=(
                os.environ.get("SUPABASE_SERVICE_ROLE_KEY")
                or os.environ.get("SUPABASE_ANON_KEY", "")
            ).strip(),
            openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
            anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY") or None,
            llm_provider=provider,
            llm_model=os.environ.get("LLM_MODEL", default_model),
            embedding_model=os.environ.get("EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL),
            embedding_dimensions=int(
                os.environ.get("EMBEDDING_DIMENSIONS", DEFAULT_EMBEDDING_DIMENSIONS)
            ),
            user_lookup_url=os.environ.get("USER_LOOKUP_URL") or None,
            reembed_batch_size=int(os.environ.get("REEMBED_BATCH_SIZE", 20)),
            reembed_delay_seconds=float(os.environ.get("REEMBED_DELAY_SECONDS", 1.0)),
        )
