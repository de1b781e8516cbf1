"""
Embedding generation for TruthTable.

Each conversation gets up to three vectors:
- full_transcript: the whole conversation
- user_messages: only the customer's turns (the customer's voice)
- summary: a short stage-aware LLM summary, stored alongside its text

The three are produced independently. A failed summary never blocks the
other two; each failure is recorded in EmbeddingSet.errors.
"""

import logging

from truthtable.errors import EmbeddingError
from truthtable.models import CanonicalConversation, EmbeddingSet

logger = logging.getLogger(__name__)

STAGE_CONTEXT = {
    1: "foundation and business concept discussion",
    2: "brand identity and visual elements planning",
    3: "operations setup and business systems planning",
    4: "launch strategy and growth planning",
}

SUMMARY_PROMPT_TEMPLATE = """Analyze this Call {stage} transcript ({stage_context}) and create a concise semantic summary focusing on:
1. Key business decisions made
2. Customer preferences and requirements
3. Important details for future reference
4. Progress toward business formation goals

Transcript:
{transcript}

Provide a 2-3 sentence summary capturing the essence of this conversation:"""

SUMMARY_MAX_TOKENS = 150
SUMMARY_TEMPERATURE = 0.3
MAX_EMBED_CHARS = 24000


class EmbeddingGenerator:
    """Produces the three per-conversation vectors."""

    def __init__(self, llm):
        self.llm = llm

    @property
    def model(self) -> str:
        return getattr(self.llm, "embedding_model", "unknown")

    def _embed(self, text: str) -> list:
        return self.llm.embed(text[:MAX_EMBED_CHARS])

    def summarize(self, transcript: str, call_stage: int) -> str:
        """
        Generate the semantic summary text.

        Raises:
            EmbeddingError: If the completion fails or is empty
        """
        prompt = SUMMARY_PROMPT_TEMPLATE.format(
            stage=call_stage,
            stage_context=STAGE_CONTEXT.get(call_stage, "business formation discussion"),
            transcript=transcript[:MAX_EMBED_CHARS],
        )
        try:
            return self.llm.complete(
                None,
                prompt,
                temperature=SUMMARY_TEMPERATURE,
                max_tokens=SUMMARY_MAX_TOKENS,
            )
        except Exception as e:
            raise EmbeddingError(f"Summary generation failed: {e}") from e

    def generate(self, conversation: CanonicalConversation, call_stage: int = 1) -> EmbeddingSet:
        """
        Generate all vectors for a conversation.

        Args:
            conversation: Canonical transcript triple
            call_stage: Stage the call belongs to (shapes the summary prompt)

        Returns:
            EmbeddingSet with whichever vectors succeeded and an errors map
        """
        result = EmbeddingSet(model=self.model)

        try:
            result.full_transcript = self._embed(conversation.full_transcript)
        except Exception as e:
            result.errors["full_transcript"] = str(e)
            logger.warning(f"Full transcript embedding failed: {e}")

        user_text = " ".join(conversation.user_messages)
        if user_text.strip():
            try:
                result.user_messages = self._embed(user_text)
            except Exception as e:
                result.errors["user_messages"] = str(e)
                logger.warning(f"User messages embedding failed: {e}")
        else:
            result.errors["user_messages"] = "no user messages"

        try:
            summary_text = self.summarize(conversation.full_transcript, call_stage)
            result.summary_text = summary_text
            result.summary = self._embed(summary_text)
        except Exception as e:
            result.errors["summary"] = str(e)
            logger.warning(f"Summary embedding failed: {e}")

        for vector in (result.full_transcript, result.user_messages, result.summary):
            if vector:
                result.dimensions = len(vector)
                break

        logger.info(
            f"Generated {result.vectors_generated}/3 vectors"
            + (f" (failed: {sorted(result.errors)})" if result.errors else "")
        )
        return result
