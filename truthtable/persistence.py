"""
Multi-store persistence for processed conversations.

One processed call is written to four stores:
- raw archive (transcripts_raw): immutable transcript plus original payload
- vectorized store (transcripts_vectorized): summary, topics and vectors
- session tracker (conversation_sessions): upserted by (user_id, session_id)
- legacy combined record (call_transcripts): kept for older readers

The writes are independent attempts. There is no transaction and no
rollback: each failure is logged with the user and call ids and recorded
in the returned PersistenceOutcome, and the remaining writes still run.
"""

import logging
from typing import Any, Callable, Dict, List, Tuple

from truthtable import monitoring
from truthtable.config import (
    LEGACY_TRANSCRIPTS_TABLE,
    RAW_TRANSCRIPTS_TABLE,
    SESSIONS_TABLE,
    VECTORIZED_TRANSCRIPTS_TABLE,
)
from truthtable.knowledge import extract_key_topics
from truthtable.models import (
    CanonicalConversation,
    ConversationRecord,
    EmbeddingSet,
    ExtractedFacts,
    PersistenceOutcome,
    WriteAttempt,
)

logger = logging.getLogger(__name__)

SESSION_CONFLICT_KEY = "user_id,session_id"


class PersistenceCoordinator:
    """Writes one conversation to every store and reports per-store results."""

    def __init__(self, store):
        self.store = store

    def raw_row(
        self, record: ConversationRecord, conversation: CanonicalConversation, raw_payload: Dict[str, Any]
    ) -> Dict[str, Any]:
        return {
            "id": record.record_id,
            "user_id": record.user_id,
            "call_session_id": record.call_id,
            "call_stage": record.call_stage,
            "full_transcript": record.full_transcript,
            "turns": [turn.model_dump() for turn in record.turns],
            "user_messages": conversation.user_messages,
            "assistant_messages": conversation.assistant_messages,
            "raw_payload": raw_payload,
            "created_at": record.created_at.isoformat(),
        }

    def vectorized_row(
        self, record: ConversationRecord, facts: ExtractedFacts, embeddings: EmbeddingSet
    ) -> Dict[str, Any]:
        return {
            "user_id": record.user_id,
            "call_session_id": record.call_id,
            "raw_transcript_id": record.record_id,
            "content_summary": embeddings.summary_text,
            "key_topics": extract_key_topics(record.full_transcript),
            "full_transcript_vector": embeddings.full_transcript,
            "user_messages_vector": embeddings.user_messages,
            "summary_vector": embeddings.summary,
            "vector_model": embeddings.model,
            "processing_metadata": {
                "call_stage": record.call_stage,
                "extracted_data": facts.facts_dict(),
                "extraction_method": facts.method,
                "confidence": facts.confidence,
                "vectors_generated": embeddings.vectors_generated,
                "embedding_errors": embeddings.errors,
            },
            "created_at": record.created_at.isoformat(),
        }

    def session_row(
        self, record: ConversationRecord, embeddings: EmbeddingSet
    ) -> Dict[str, Any]:
        return {
            "user_id": record.user_id,
            "session_id": record.call_id,
            "call_stage": record.call_stage,
            "status": "completed",
            "transcript_length": len(record.full_transcript),
            "vectors_generated": embeddings.vectors_generated,
            "last_activity_at": record.created_at.isoformat(),
            "updated_at": record.created_at.isoformat(),
        }

    def legacy_row(
        self,
        record: ConversationRecord,
        conversation: CanonicalConversation,
        facts: ExtractedFacts,
        embeddings: EmbeddingSet,
    ) -> Dict[str, Any]:
        return {
            "user_id": record.user_id,
            "call_id": record.call_id,
            "call_stage": record.call_stage,
            "full_transcript": record.full_transcript,
            "user_messages": conversation.user_messages,
            "assistant_messages": conversation.assistant_messages,
            "extracted_data": facts.facts_dict(),
            "full_transcript_vector": embeddings.full_transcript,
            "user_messages_vector": embeddings.user_messages,
            "semantic_summary_vector": embeddings.summary,
            "semantic_summary": embeddings.summary_text,
            "vector_model": embeddings.model,
            "processed_at": record.created_at.isoformat(),
            "created_at": record.created_at.isoformat(),
        }

    def _attempt(self, record: ConversationRecord, store_name: str, table: str, write: Callable[[], Any]) -> WriteAttempt:
        try:
            write()
        except Exception as e:
            logger.error(
                f"Write to {store_name} ({table}) failed for user {record.user_id}, "
                f"call {record.call_id}: {e}"
            )
            monitoring.track_store_write(store_name, success=False)
            return WriteAttempt(store=store_name, table=table, success=False, error=str(e))

        monitoring.track_store_write(store_name, success=True)
        return WriteAttempt(store=store_name, table=table, success=True)

    def persist(
        self,
        record: ConversationRecord,
        conversation: CanonicalConversation,
        facts: ExtractedFacts,
        embeddings: EmbeddingSet,
        raw_payload: Dict[str, Any],
    ) -> PersistenceOutcome:
        """
        Attempt all four writes for one conversation.

        Args:
            record: The immutable conversation record
            conversation: Canonical transcript triple
            facts: Extracted facts
            embeddings: Generated vectors (possibly partial)
            raw_payload: Original webhook body, archived for resubmission

        Returns:
            PersistenceOutcome listing every attempt in write order
        """
        writes: List[Tuple[str, str, Callable[[], Any]]] = [
            (
                "raw",
                RAW_TRANSCRIPTS_TABLE,
                lambda: self.store.insert(RAW_TRANSCRIPTS_TABLE, self.raw_row(record, conversation, raw_payload)),
            ),
            (
                "vectorized",
                VECTORIZED_TRANSCRIPTS_TABLE,
                lambda: self.store.insert(
                    VECTORIZED_TRANSCRIPTS_TABLE, self.vectorized_row(record, facts, embeddings)
                ),
            ),
            (
                "sessions",
                SESSIONS_TABLE,
                lambda: self.store.upsert(
                    SESSIONS_TABLE, self.session_row(record, embeddings), on_conflict=SESSION_CONFLICT_KEY
                ),
            ),
            (
                "legacy",
                LEGACY_TRANSCRIPTS_TABLE,
                lambda: self.store.insert(
                    LEGACY_TRANSCRIPTS_TABLE, self.legacy_row(record, conversation, facts, embeddings)
                ),
            ),
        ]

        outcome = PersistenceOutcome()
        for store_name, table, write in writes:
            outcome.attempts.append(self._attempt(record, store_name, table, write))

        if outcome.failed:
            logger.warning(
                f"Persisted call {record.call_id} with failures in {outcome.failed} "
                f"(succeeded: {outcome.succeeded})"
            )
        else:
            logger.info(f"Persisted call {record.call_id} to all {len(outcome.attempts)} stores")
        return outcome
