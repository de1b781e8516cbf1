"""
Webhook ingestion pipeline.

Runs one completed call through every stage:
schema resolution -> identity -> stage selection -> fact extraction ->
embeddings -> multi-store persistence -> profile progress.

Only malformed input (InputError) stops a webhook. Identity, extraction,
embedding and individual store failures are recorded in the result and
processing continues. When the owning user cannot be resolved, the call is
stored under the caller's original identifier.
"""

import time
import uuid
import logging
from typing import Any, Dict

from truthtable import monitoring
from truthtable.errors import IdentityLookupError, InputError, PersistenceError
from truthtable.gap_analyzer import first_incomplete_stage
from truthtable.models import ConversationRecord, ResolvedWebhook
from truthtable.profiles import update_progress
from truthtable.schema_resolver import resolve_webhook, unwrap_envelope

logger = logging.getLogger(__name__)

# Voice-platform server messages that are not call completions
NON_COMPLETION_EVENTS = {
    "status-update",
    "speech-update",
    "transcript",
    "conversation-update",
    "function-call",
    "tool-calls",
    "hang",
    "user-interrupted",
    "assistant-request",
    "model-output",
    "voice-input",
}


def event_type_of(payload: Any) -> str:
    if not isinstance(payload, dict):
        return ""
    body = unwrap_envelope(payload)
    value = body.get("type") or body.get("event_type") or ""
    return value if isinstance(value, str) else ""


class WebhookProcessor:
    """Processes call-completion webhooks end to end."""

    def __init__(self, identity, extractor, embedder, persistence, store):
        self.identity = identity
        self.extractor = extractor
        self.embedder = embedder
        self.persistence = persistence
        self.store = store

    def determine_stage(self, resolved: ResolvedWebhook, profile: Dict[str, Any]) -> int:
        """Explicit stage hint wins; otherwise the first stage not yet completed."""
        if resolved.stage_hint:
            return resolved.stage_hint
        return first_incomplete_stage(profile)

    def process(self, payload: Any) -> Dict[str, Any]:
        """
        Process one webhook body.

        Args:
            payload: Parsed JSON body

        Returns:
            Processing summary (camelCase keys, returned to the caller)

        Raises:
            InputError: If the payload cannot be processed
        """
        start_time = time.time()

        event_type = event_type_of(payload)
        if event_type in NON_COMPLETION_EVENTS:
            logger.info(f"Skipping non-completion webhook event: {event_type}")
            monitoring.track_webhook("skipped", time.time() - start_time)
            return {"success": True, "skipped": True, "eventType": event_type}

        try:
            resolved = resolve_webhook(payload)
        except InputError as e:
            logger.warning(f"Rejected webhook: {e}")
            monitoring.track_webhook("rejected", time.time() - start_time)
            raise

        logger.info(
            f"Call {resolved.call_id} - type: {resolved.event_type or 'unknown'}, "
            f"customer: {resolved.customer_identifier}, "
            f"transcript: {len(resolved.conversation.full_transcript)} chars"
        )

        try:
            lookup = self.identity.resolve(
                phone=resolved.customer_phone,
                email=resolved.customer_email,
                create_if_missing=True,
            )
        except (PersistenceError, IdentityLookupError) as e:
            logger.error(
                f"Identity resolution failed for call {resolved.call_id}, "
                f"storing under {resolved.customer_identifier}: {e}"
            )
            lookup = None

        if lookup:
            user_id = lookup.user.id
            profile = lookup.user.as_mapping()
        else:
            user_id = resolved.customer_identifier
            profile = {}

        stage = self.determine_stage(resolved, profile)
        conversation = resolved.conversation
        record = ConversationRecord(
            record_id=str(uuid.uuid4()),
            user_id=user_id,
            call_id=resolved.call_id,
            call_stage=stage,
            full_transcript=conversation.full_transcript,
            turns=tuple(conversation.turns),
        )

        facts = self.extractor.extract(conversation, user_id=user_id)
        monitoring.track_extraction(facts.method)

        embeddings = self.embedder.generate(conversation, call_stage=stage)

        outcome = self.persistence.persist(record, conversation, facts, embeddings, resolved.raw_payload)

        failed_stores = list(outcome.failed)
        if lookup:
            try:
                update_progress(self.store, user_id, profile, stage, facts)
            except PersistenceError as e:
                logger.error(f"Progress update failed for user {user_id}, call {record.call_id}: {e}")
                failed_stores.append("users")
        else:
            failed_stores.append("users")

        monitoring.track_webhook("processed", time.time() - start_time)
        extracted = facts.filled_fields()
        logger.info(
            f"Processed call {record.call_id} for user {user_id}: stage {stage}, "
            f"{len(extracted)} fields via {facts.method}, {embeddings.vectors_generated} vectors"
        )

        return {
            "success": True,
            "callId": record.call_id,
            "callStage": stage,
            "userId": user_id,
            "extractedFields": len(extracted),
            "extractionMethod": facts.method,
            "vectorsGenerated": embeddings.vectors_generated,
            "transcriptLength": len(conversation.full_transcript),
            "failedStores": failed_stores,
        }
