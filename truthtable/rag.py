"""
Retrieval context assembly for TruthTable.

Gathers everything a follow-up answer is grounded on:
1. Recent conversations for the user, ranked by cosine similarity between
   the query embedding and each record's full-transcript vector (recency
   when no comparable vector exists)
2. Static business-formation knowledge filtered by domain vocabulary
3. The user's intent profile (dream_dna)
4. The gap report for the requested call stage

Each step degrades independently: a failed lookup, embedding or read
yields an empty section, never an exception. Only an invalid stage raises.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from truthtable.config import (
    DREAM_DNA_TABLE,
    LEGACY_TRANSCRIPTS_TABLE,
    USERS_TABLE,
    VECTORIZED_TRANSCRIPTS_TABLE,
)
from truthtable.gap_analyzer import analyze_gaps
from truthtable.identity import classify_identifier
from truthtable.knowledge import select_knowledge
from truthtable.models import RetrievalContext, RetrievedTranscript
from truthtable.similarity import coerce_vector, cosine_similarity

logger = logging.getLogger(__name__)

RECENT_RECORD_LIMIT = 5
TOP_TRANSCRIPTS = 3
TOP_KNOWLEDGE = 3


def _json_field(value: Any, default: Any) -> Any:
    """Stored JSON may come back as native objects or as JSON strings."""
    if value is None:
        return default
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return default
    return value


class CandidateRecord:
    """A stored conversation row reduced to what ranking needs."""

    def __init__(self, row: Dict[str, Any], source: str):
        self.source = source
        self.row = row
        if source == VECTORIZED_TRANSCRIPTS_TABLE:
            metadata = _json_field(row.get("processing_metadata"), {})
            self.call_id = row.get("call_session_id")
            self.call_stage = metadata.get("call_stage") if isinstance(metadata, dict) else None
            self.summary = row.get("content_summary")
            self.vector = coerce_vector(row.get("full_transcript_vector") or row.get("vector_embeddings"))
        else:
            self.call_id = row.get("call_id")
            self.call_stage = row.get("call_stage")
            self.summary = row.get("semantic_summary")
            self.vector = coerce_vector(row.get("full_transcript_vector"))
        self.vector_model = row.get("vector_model")

    def to_transcript(self, similarity: Optional[float] = None) -> RetrievedTranscript:
        stage = self.call_stage
        return RetrievedTranscript(
            id=str(self.row["id"]) if self.row.get("id") is not None else None,
            call_id=self.call_id,
            call_stage=int(stage) if isinstance(stage, (int, str)) and str(stage).isdigit() else None,
            summary=self.summary,
            created_at=str(self.row["created_at"]) if self.row.get("created_at") else None,
            similarity=similarity,
            source=self.source,
        )


class RetrievalContextAssembler:
    """Builds RetrievalContext objects for RAG answers."""

    def __init__(self, store, llm, identity=None, embedding_model: Optional[str] = None):
        self.store = store
        self.llm = llm
        self.identity = identity
        self.embedding_model = embedding_model or getattr(llm, "embedding_model", None)

    def resolve_user_id(self, identifier: Optional[str]) -> Optional[str]:
        """
        Map a phone/email identifier to a user id.

        Opaque ids pass through. A failed lookup keeps the original
        identifier.
        """
        if not identifier:
            return None
        if classify_identifier(identifier) == "id" or self.identity is None:
            return identifier
        try:
            resolved = self.identity.lookup_user_id(identifier)
            logger.info(f"Resolved user ID: {identifier} -> {resolved}")
            return resolved
        except LookupError as e:
            logger.warning(f"User lookup failed, using original identifier: {e}")
            return identifier

    def embed_query(self, query: str) -> Optional[List[float]]:
        try:
            return self.llm.embed(query)
        except Exception as e:
            logger.warning(f"Query embedding failed, falling back to recency: {e}")
            return None

    def fetch_records(self, user_id: str, limit: int = RECENT_RECORD_LIMIT) -> List[CandidateRecord]:
        """Most recent records for a user: vectorized table first, legacy table if empty."""
        for table in (VECTORIZED_TRANSCRIPTS_TABLE, LEGACY_TRANSCRIPTS_TABLE):
            try:
                rows = self.store.select_many(
                    table,
                    filters={"user_id": user_id},
                    order_by="created_at",
                    descending=True,
                    limit=limit,
                )
            except Exception as e:
                logger.warning(f"Reading {table} failed for user {user_id}: {e}")
                continue
            if rows:
                logger.info(f"Retrieved {len(rows)} transcripts from {table}")
                return [CandidateRecord(row, table) for row in rows]
        return []

    def rank_records(
        self,
        query_vector: Optional[List[float]],
        records: List[CandidateRecord],
        top_k: int = TOP_TRANSCRIPTS,
    ) -> List[RetrievedTranscript]:
        """
        Rank records by similarity, keeping recency order for the rest.

        Records embedded with a different model than the current one are
        not compared, since their vectors live in another space.
        """
        scored: List[Tuple[float, int, CandidateRecord]] = []
        unscored: List[CandidateRecord] = []

        for index, record in enumerate(records):
            comparable = (
                query_vector is not None
                and record.vector is not None
                and len(record.vector) == len(query_vector)
            )
            if comparable and record.vector_model and self.embedding_model and record.vector_model != self.embedding_model:
                logger.info(
                    f"Skipping similarity for {record.source} row {record.row.get('id')}: "
                    f"model {record.vector_model} != {self.embedding_model}"
                )
                comparable = False
            if comparable:
                scored.append((cosine_similarity(query_vector, record.vector), index, record))
            else:
                unscored.append(record)

        scored.sort(key=lambda item: (-item[0], item[1]))
        ranked = [record.to_transcript(similarity) for similarity, _, record in scored]
        ranked.extend(record.to_transcript() for record in unscored)
        return ranked[:top_k]

    def fetch_intent_profile(self, user_id: Optional[str]) -> Optional[Dict[str, Any]]:
        if not user_id:
            return None
        try:
            return self.store.select_one(DREAM_DNA_TABLE, {"user_id": user_id})
        except Exception as e:
            logger.warning(f"Intent profile retrieval failed for user {user_id}: {e}")
            return None

    def fetch_profile(self, user_id: Optional[str]) -> Dict[str, Any]:
        if not user_id:
            return {}
        try:
            return self.store.select_one(USERS_TABLE, {"id": user_id}) or {}
        except Exception as e:
            logger.warning(f"Profile retrieval failed for user {user_id}: {e}")
            return {}

    def assemble(
        self,
        query: str,
        user_id: Optional[str],
        call_stage: int = 1,
        include_transcripts: bool = True,
        include_knowledge: bool = True,
        include_intent_profile: bool = True,
    ) -> RetrievalContext:
        """
        Assemble grounding context for a query.

        Args:
            query: Free-text user question
            user_id: User id, phone number or email
            call_stage: Stage for the gap report (1-4)
            include_transcripts: Include similar past conversations
            include_knowledge: Include knowledge base snippets
            include_intent_profile: Include the intent profile section

        Returns:
            RetrievalContext (the gap report is always present)

        Raises:
            ValueError: If call_stage is not 1-4
        """
        resolved = self.resolve_user_id(user_id)
        context = RetrievalContext(user_id=user_id, resolved_user_id=resolved, call_stage=call_stage)

        if include_transcripts and resolved:
            records = self.fetch_records(resolved)
            query_vector = self.embed_query(query) if records else None
            context.transcripts = self.rank_records(query_vector, records)

        if include_knowledge:
            context.knowledge = select_knowledge(query, limit=TOP_KNOWLEDGE)

        intent_profile = self.fetch_intent_profile(resolved)
        if include_intent_profile:
            context.intent_profile = intent_profile

        profile = self.fetch_profile(resolved)
        if not profile and resolved:
            logger.info(f"No profile for {resolved}, gap report computed over empty profile")
        context.gap_report = analyze_gaps(call_stage, profile, intent_profile)

        logger.info(
            f"Assembled context: {len(context.transcripts)} transcripts, "
            f"{len(context.knowledge)} knowledge, intent={'yes' if context.intent_profile else 'no'}, "
            f"gaps={context.gap_report.completion_percentage}%"
        )
        return context

    def search(self, query: str, user_id: str, limit: int = 5) -> List[RetrievedTranscript]:
        """Similarity search over one user's stored conversations."""
        resolved = self.resolve_user_id(user_id)
        if not resolved:
            return []
        records = self.fetch_records(resolved, limit=max(limit, RECENT_RECORD_LIMIT))
        if not records:
            return []
        return self.rank_records(self.embed_query(query), records, top_k=limit)


def format_context(context: RetrievalContext) -> str:
    """
    Format assembled context into labeled prompt sections.

    Args:
        context: Assembled retrieval context

    Returns:
        Context string (empty sections are omitted)
    """
    parts: List[str] = []

    if context.transcripts:
        parts.append("## Previous Conversation Context:")
        for i, transcript in enumerate(context.transcripts, 1):
            line = f"Call {i} (stage {transcript.call_stage or 'unknown'}): {transcript.summary or 'No summary available'}"
            if transcript.similarity is not None:
                line += f" (Relevance: {round(transcript.similarity * 100)}%)"
            parts.append(line)
        parts.append("")

    if context.knowledge:
        parts.append("## Relevant Business Formation Knowledge:")
        for snippet in context.knowledge:
            parts.append(f"{snippet.category}: {snippet.content}")
        parts.append("")

    if context.intent_profile:
        dna = context.intent_profile
        parts.append("## User Dream DNA Context:")
        parts.append(f"Vision: {dna.get('vision_statement') or 'Not specified'}")
        parts.append(f"Business Concept: {dna.get('business_concept') or 'Not specified'}")
        parts.append(f"Target Customers: {dna.get('target_customers') or 'Not specified'}")
        parts.append(f"Unique Value: {dna.get('unique_value_prop') or 'Not specified'}")
        parts.append("")

    gaps = context.gap_report
    if gaps:
        parts.append("## Truth Table Gap Analysis:")
        parts.append(f"Call Stage {gaps.stage} Progress: {gaps.completion_percentage}% complete")
        parts.append(f"Priority: {gaps.priority}")
        if gaps.missing.required:
            parts.append(f"Critical Missing: {', '.join(gaps.missing.required)}")
        if gaps.missing.important:
            parts.append(f"Important Missing: {', '.join(gaps.missing.important)}")
        if gaps.missing.optional:
            parts.append(f"Optional Missing: {', '.join(gaps.missing.optional)}")
        parts.append("")

    return "\n".join(parts).strip()
