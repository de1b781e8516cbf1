"""
Response synthesis for RAG answers.

Builds one grounded prompt from the assembled context and asks the
language model for a short conversational answer. Best effort: any
failure returns a fixed apology and is never retried.
"""

import logging
from typing import Optional

from truthtable.models import RetrievalContext
from truthtable.rag import format_context

logger = logging.getLogger(__name__)

APOLOGY = "I'm sorry, I encountered an error while processing your request."

RESPONSE_MAX_TOKENS = 300
RESPONSE_TEMPERATURE = 0.7

SYSTEM_PROMPT_TEMPLATE = """You are Elliot, a professional business formation consultant for DreamSeed. This is Call {stage} of 4 in our systematic business formation process.

{context}

**Instructions:**
- Use the provided context to give personalized, accurate advice
- Reference previous conversations when relevant for continuity
- Cite specific business formation knowledge when applicable
- Consider the user's Dream DNA context for personalization
- Use the truth table gap analysis to identify what's still missing
- If critical information is missing, prioritize gathering it
- Keep responses conversational and actionable
- Focus on the current call stage objectives

Provide a helpful, personalized response that leverages all available context and guides the user toward completing their business formation requirements."""


def build_system_prompt(context: RetrievalContext) -> str:
    grounding = format_context(context) or "No stored context is available for this user yet."
    return SYSTEM_PROMPT_TEMPLATE.format(stage=context.call_stage, context=grounding)


class ResponseSynthesizer:
    """Turns a query plus retrieval context into the final answer text."""

    def __init__(self, llm):
        self.llm = llm

    def respond(self, query: str, context: RetrievalContext, user_id: Optional[str] = None) -> str:
        """
        Generate the answer.

        Args:
            query: The user's question
            context: Assembled retrieval context
            user_id: Optional end-user id forwarded to the provider

        Returns:
            Model text, or APOLOGY on any failure
        """
        try:
            return self.llm.complete(
                build_system_prompt(context),
                query,
                temperature=RESPONSE_TEMPERATURE,
                max_tokens=RESPONSE_MAX_TOKENS,
                user=user_id,
            )
        except Exception as e:
            logger.error(f"Response generation failed: {type(e).__name__}: {e}")
            return APOLOGY
