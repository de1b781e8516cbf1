"""
Service wiring for TruthTable.

Builds the long-lived client handles (Supabase store, LLM) once and hands
them to every component. Tests pass their own store and llm objects.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from truthtable.config import Settings
from truthtable.embeddings import EmbeddingGenerator
from truthtable.fact_extractor import FactExtractor
from truthtable.identity import HTTPIdentityLookup, IdentityResolver
from truthtable.llm import LLMClient
from truthtable.persistence import PersistenceCoordinator
from truthtable.pipeline import WebhookProcessor
from truthtable.rag import RetrievalContextAssembler
from truthtable.store import SupabaseStore, get_supabase_client
from truthtable.synthesizer import ResponseSynthesizer

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Every component the API needs, sharing one store and one llm."""

    settings: Settings
    store: Any
    llm: Any
    identity: IdentityResolver
    processor: WebhookProcessor
    assembler: RetrievalContextAssembler
    synthesizer: ResponseSynthesizer


def build_services(
    settings: Optional[Settings] = None,
    store: Any = None,
    llm: Any = None,
) -> Services:
    """
    Create the component graph.

    Args:
        settings: Settings (read from the environment when omitted)
        store: Data store (SupabaseStore built from settings when omitted)
        llm: LLM handle (LLMClient built from settings when omitted)

    Returns:
        Services instance
    """
    settings = settings or Settings.from_env()
    if store is None:
        store = SupabaseStore(get_supabase_client(settings))
    if llm is None:
        llm = LLMClient.from_settings(settings)

    identity = IdentityResolver(store)
    lookup = HTTPIdentityLookup(settings.user_lookup_url) if settings.user_lookup_url else identity

    processor = WebhookProcessor(
        identity=identity,
        extractor=FactExtractor(llm),
        embedder=EmbeddingGenerator(llm),
        persistence=PersistenceCoordinator(store),
        store=store,
    )
    assembler = RetrievalContextAssembler(
        store, llm, identity=lookup, embedding_model=settings.embedding_model
    )

    logger.info(
        f"Services ready: provider={settings.llm_provider}, model={settings.llm_model}, "
        f"embeddings={settings.embedding_model}, lookup={'http' if settings.user_lookup_url else 'store'}"
    )

    return Services(
        settings=settings,
        store=store,
        llm=llm,
        identity=identity,
        processor=processor,
        assembler=assembler,
        synthesizer=ResponseSynthesizer(llm),
    )
