"""
Pydantic models for TruthTable.

Defines the data structures that flow through the pipeline: normalized
conversations, extracted facts, embeddings, profiles, gap reports and
write outcomes.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

# Business fields tracked by the fact extractor, in prompt order
FACT_FIELDS: Tuple[str, ...] = (
    "customer_name",
    "customer_email",
    "customer_phone",
    "business_name",
    "business_type",
    "state_of_operation",
    "entity_type",
    "services",
    "timeline",
    "package_preference",
    "urgency_level",
    "key_requirements",
    "pain_points",
    "budget_mentioned",
    "next_steps",
)

# Fields that each add 20 points to the extraction confidence score
CONFIDENCE_FIELDS: Tuple[str, ...] = (
    "customer_name",
    "customer_email",
    "customer_phone",
    "business_name",
    "state_of_operation",
)

STAGES: Tuple[int, ...] = (1, 2, 3, 4)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class Turn(BaseModel):
    """A single speaker-tagged utterance."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    text: str


class CanonicalConversation(BaseModel):
    """The normalized transcript triple every payload shape resolves to."""

    full_transcript: str = Field(..., description="'role: text' lines joined by newlines")
    user_messages: List[str] = Field(default_factory=list)
    assistant_messages: List[str] = Field(default_factory=list)
    turns: List[Turn] = Field(default_factory=list)


class ResolvedWebhook(BaseModel):
    """A webhook payload after schema resolution."""

    call_id: str
    event_type: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    stage_hint: Optional[int] = None
    conversation: CanonicalConversation
    raw_payload: Dict[str, Any] = Field(default_factory=dict)

    @property
    def customer_identifier(self) -> str:
        """Email wins over phone, matching how profiles are looked up."""
        return self.customer_email or self.customer_phone or ""


class ConversationRecord(BaseModel):
    """Immutable record of one processed call."""

    model_config = ConfigDict(frozen=True)

    record_id: str
    user_id: str
    call_id: str
    call_stage: int = Field(..., ge=1, le=4)
    full_transcript: str
    turns: Tuple[Turn, ...] = ()
    created_at: datetime = Field(default_factory=utc_now)


class ExtractedFacts(BaseModel):
    """Structured business-formation facts pulled from a transcript."""

    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    business_name: Optional[str] = None
    business_type: Optional[str] = None
    state_of_operation: Optional[str] = None
    entity_type: Optional[str] = None
    services: Optional[str] = None
    timeline: Optional[str] = None
    package_preference: Optional[str] = None
    urgency_level: Optional[str] = None
    key_requirements: Optional[Union[List[str], str]] = None
    pain_points: Optional[str] = None
    budget_mentioned: Optional[str] = None
    next_steps: Optional[str] = None
    method: Literal["llm", "fallback"] = Field(..., description="Which extraction branch produced this")
    confidence: int = Field(0, ge=0, le=100)

    def filled_fields(self) -> Dict[str, Any]:
        """Return only the business fields that have a value."""
        values = {}
        for name in FACT_FIELDS:
            value = getattr(self, name)
            if value is None or value == "" or value == []:
                continue
            values[name] = value
        return values

    def facts_dict(self) -> Dict[str, Any]:
        """All business fields, nulls included, without extraction metadata."""
        return {name: getattr(self, name) for name in FACT_FIELDS}


class EmbeddingSet(BaseModel):
    """Up to three vectors generated for one conversation."""

    full_transcript: Optional[List[float]] = None
    user_messages: Optional[List[float]] = None
    summary: Optional[List[float]] = None
    summary_text: Optional[str] = None
    model: str
    dimensions: Optional[int] = None
    errors: Dict[str, str] = Field(default_factory=dict)

    @property
    def vectors_generated(self) -> int:
        return sum(
            1 for vector in (self.full_transcript, self.user_messages, self.summary) if vector
        )


class UserProfile(BaseModel):
    """A customer profile row. Unknown columns are kept as extra fields."""

    model_config = ConfigDict(extra="allow")

    id: str
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    business_name: Optional[str] = None
    business_type: Optional[str] = None
    state_of_operation: Optional[str] = None
    current_call_stage: Optional[int] = 1
    call_1_completed: Optional[bool] = False
    call_2_completed: Optional[bool] = False
    call_3_completed: Optional[bool] = False
    call_4_completed: Optional[bool] = False

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "UserProfile":
        """Build a profile from a users row, coercing the primary key to str."""
        data = dict(row)
        data["id"] = str(data["id"])
        return cls.model_validate(data)

    def as_mapping(self) -> Dict[str, Any]:
        return self.model_dump()

    def is_stage_completed(self, stage: int) -> bool:
        return bool(getattr(self, f"call_{stage}_completed", False))


class MissingFields(BaseModel):
    required: List[str] = Field(default_factory=list)
    important: List[str] = Field(default_factory=list)
    optional: List[str] = Field(default_factory=list)


class GapReport(BaseModel):
    """Per-stage completeness diagnostic."""

    model_config = ConfigDict(populate_by_name=True)

    stage: int
    missing: MissingFields
    complete: int
    total: int
    completion_percentage: int = Field(..., ge=0, le=100, alias="completionPercentage")
    priority: Literal["critical", "important", "optional"]


class KnowledgeSnippet(BaseModel):
    """Static business-formation reference entry."""

    model_config = ConfigDict(frozen=True)

    category: str
    content: str


class WriteAttempt(BaseModel):
    """Result of one store write."""

    store: str
    table: str
    success: bool
    error: Optional[str] = None


class PersistenceOutcome(BaseModel):
    """Collected results of all store writes for one conversation."""

    attempts: List[WriteAttempt] = Field(default_factory=list)

    @property
    def succeeded(self) -> List[str]:
        return [a.store for a in self.attempts if a.success]

    @property
    def failed(self) -> List[str]:
        return [a.store for a in self.attempts if not a.success]

    @property
    def all_succeeded(self) -> bool:
        return bool(self.attempts) and not self.failed


class RetrievedTranscript(BaseModel):
    """A past conversation selected as RAG context."""

    id: Optional[str] = None
    call_id: Optional[str] = None
    call_stage: Optional[int] = None
    summary: Optional[str] = None
    created_at: Optional[str] = None
    similarity: Optional[float] = None
    source: str = Field(..., description="Table the record was read from")


class RetrievalContext(BaseModel):
    """Everything the response synthesizer is grounded on."""

    user_id: Optional[str] = None
    resolved_user_id: Optional[str] = None
    call_stage: int = 1
    transcripts: List[RetrievedTranscript] = Field(default_factory=list)
    knowledge: List[KnowledgeSnippet] = Field(default_factory=list)
    intent_profile: Optional[Dict[str, Any]] = None
    gap_report: Optional[GapReport] = None
