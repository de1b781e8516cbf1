"""
Structured fact extraction for TruthTable.

Extracts business-formation facts from call transcripts using one of two
branches:
- LLM branch: a fixed prompt asking for strict JSON over the fact schema
- Fallback branch: deterministic regex heuristics for name, email (including
  spoken "at"/"dot" forms), phone, business name, state, entity type,
  business type, timeline and urgency

The LLM branch is tried first when a client is available; anything it
cannot turn into a JSON object sends the transcript down the fallback
branch. Extraction never raises. The result's `method` field records which
branch produced it.
"""

import re
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from truthtable.errors import ExtractionError
from truthtable.models import (
    CONFIDENCE_FIELDS,
    FACT_FIELDS,
    CanonicalConversation,
    ExtractedFacts,
)

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a data extraction specialist. Extract structured business formation data from conversation transcripts.

Return ONLY valid JSON with these exact fields (use null if not found):
{
  "customer_name": "full name",
  "customer_email": "email@domain.com",
  "customer_phone": "+1XXXXXXXXXX format",
  "business_name": "specific business name if mentioned",
  "business_type": "type of business/industry",
  "state_of_operation": "state name",
  "entity_type": "LLC/Corp/Inc/etc",
  "services": "what services/products they offer",
  "timeline": "Immediate/Within a month/Flexible/specific timeframe",
  "package_preference": "Basic/Standard/Premium if mentioned",
  "urgency_level": "High/Medium/Low",
  "key_requirements": "array of main requirements mentioned",
  "pain_points": "problems they're trying to solve",
  "budget_mentioned": "any budget discussed",
  "next_steps": "what they agreed to do next"
}

Important:
- Convert "at" and "dot" to @ and . in emails
- Format phone as +1 followed by 10 digits
- Use proper case for names and states
- Only extract what the customer actually said; never guess"""

USER_PROMPT_TEMPLATE = """Extract business formation data from this conversation:

{transcript}

Return ONLY the JSON object with extracted data."""

EXTRACTION_TEMPERATURE = 0.1
EXTRACTION_MAX_TOKENS = 500
MAX_TRANSCRIPT_CHARS = 12000

NULL_LIKE = {
    "", "null", "none", "unknown", "n/a", "na", "tbd", "not sure",
    "not mentioned", "not specified", "not provided",
}

CODE_FENCE = re.compile(r"^\s*```(?:json)?\s*|\s*```\s*$", re.IGNORECASE)

US_STATES = [
    "Alabama", "Alaska", "Arizona", "Arkansas", "California", "Colorado",
    "Connecticut", "Delaware", "Florida", "Georgia", "Hawaii", "Idaho",
    "Illinois", "Indiana", "Iowa", "Kansas", "Kentucky", "Louisiana", "Maine",
    "Maryland", "Massachusetts", "Michigan", "Minnesota", "Mississippi",
    "Missouri", "Montana", "Nebraska", "Nevada", "New Hampshire", "New Jersey",
    "New Mexico", "New York", "North Carolina", "North Dakota", "Ohio",
    "Oklahoma", "Oregon", "Pennsylvania", "Rhode Island", "South Carolina",
    "South Dakota", "Tennessee", "Texas", "Utah", "Vermont", "Virginia",
    "Washington", "West Virginia", "Wisconsin", "Wyoming",
]

# Longest first so "West Virginia" wins over "Virginia"
_STATE_PATTERNS = [
    (state, re.compile(r"\b" + re.escape(state) + r"\b", re.IGNORECASE))
    for state in sorted(US_STATES, key=len, reverse=True)
]

NAME_PATTERN = re.compile(r"(?i:my name is|this is|i'm|i am)\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)")

EMAIL_PATTERN = re.compile(r"([A-Za-z0-9._%+-]+@[A-Za-z0-9-]+(?:\.[A-Za-z0-9-]+)*\.[A-Za-z]{2,})")

SPOKEN_EMAIL_PATTERN = re.compile(
    r"e-?mail(?:\s+address)?(?:\s+is)?[\s:,]+"
    r"([a-z0-9_%+-]+(?:\s+dot\s+[a-z0-9_%+-]+)*)\s+at\s+"
    r"([a-z0-9-]+(?:\s+dot\s+[a-z0-9-]+)*)\s+dot\s+([a-z]{2,})\b",
    re.IGNORECASE,
)

PHONE_PATTERN = re.compile(r"(?<!\d)(?:\+?1[\s.-]?)?\(?(\d{3})\)?[\s.-]?(\d{3})[\s.-]?(\d{4})(?!\d)")

BUSINESS_NAME_PATTERN = re.compile(
    r"(?i:business|company)\s+(?:(?i:is)\s+)?(?i:called|named)\s+"
    r"([A-Z0-9][\w&'-]*(?:\s+[A-Z0-9][\w&'-]*)*)"
)

ENTITY_TYPE_PATTERNS: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"\bllc\b|limited liability company", re.IGNORECASE), "LLC"),
    (re.compile(r"\bs[\s-]?corp(?:oration)?\b", re.IGNORECASE), "S-Corp"),
    (re.compile(r"\bc[\s-]?corp(?:oration)?\b|\bcorporation\b|\bincorporate\b", re.IGNORECASE), "Corporation"),
    (re.compile(r"\bpartnership\b", re.IGNORECASE), "Partnership"),
    (re.compile(r"\bsole proprietor(?:ship)?\b", re.IGNORECASE), "Sole Proprietorship"),
]

BUSINESS_TYPE_KEYWORDS: List[Tuple[str, str]] = [
    ("political advising", "Political Advising"),
    ("real estate", "Real Estate"),
    ("e-commerce", "E-commerce"),
    ("online store", "E-commerce"),
    ("consulting", "Consulting"),
    ("music", "Music Business"),
    ("bakery", "Bakery"),
    ("restaurant", "Restaurant"),
    ("food truck", "Food Service"),
    ("catering", "Food Service"),
    ("photography", "Photography"),
    ("fitness", "Fitness"),
    ("landscaping", "Landscaping"),
    ("cleaning", "Cleaning Services"),
    ("marketing", "Marketing"),
    ("software", "Technology"),
    ("app", "Technology"),
]

HIGH_URGENCY = ("urgent", "asap", "as soon as possible", "right away", "immediately", "soon")
LOW_URGENCY = ("no rush", "take my time", "take time", "not in a hurry", "no hurry")

TIMELINE_KEYWORDS: List[Tuple[Tuple[str, ...], str]] = [
    (("immediately", "right away", "asap", "as soon as possible"), "Immediate"),
    (("this month", "within a month", "next few weeks", "couple of weeks"), "Within a month"),
    (("no rush", "flexible", "whenever", "next year"), "Flexible"),
]


def confidence_score(values: Dict[str, Any]) -> int:
    """20 points for each identity-critical field that has a value."""
    return 20 * sum(1 for field in CONFIDENCE_FIELDS if values.get(field))


def strip_code_fences(text: str) -> str:
    return CODE_FENCE.sub("", text).strip()


def spoken_email_to_address(text: str) -> Optional[str]:
    """Turn 'jane at acme dot com' style text into an address, if possible."""
    match = re.search(
        r"([a-z0-9._%+-]+(?:\s+dot\s+[a-z0-9_%+-]+)*)\s+at\s+([a-z0-9-]+(?:\s+dot\s+[a-z0-9-]+)*)\s+dot\s+([a-z]{2,})\b",
        text,
        re.IGNORECASE,
    )
    if not match:
        return None
    local = re.sub(r"\s+dot\s+", ".", match.group(1), flags=re.IGNORECASE)
    domain = re.sub(r"\s+dot\s+", ".", match.group(2), flags=re.IGNORECASE)
    return f"{local}@{domain}.{match.group(3)}".lower()


def _normalize_phone(value: str) -> Optional[str]:
    match = PHONE_PATTERN.search(value)
    if not match:
        return None
    return "+1" + "".join(match.groups())


def _clean_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, bool)):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, list):
        parts = [p for p in (_clean_text(v) for v in value) if p]
        return ", ".join(parts) if parts else None
    text = str(value).strip().strip("\"'").strip()
    text = text.rstrip(".").strip()
    if text.lower() in NULL_LIKE:
        return None
    return text


def clean_llm_values(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Coerce raw LLM JSON into fact-schema values.

    Unknown keys are dropped, placeholder strings become None, emails are
    lower-cased and phones normalized to +1XXXXXXXXXX.
    """
    cleaned: Dict[str, Any] = {}
    for field in FACT_FIELDS:
        raw = data.get(field)
        if field == "key_requirements" and isinstance(raw, list):
            items = [item for item in (_clean_text(v) for v in raw) if item]
            cleaned[field] = items or None
            continue

        value = _clean_text(raw)
        if value and field == "customer_email":
            if "@" not in value:
                value = spoken_email_to_address(value)
            value = value.lower() if value else None
        elif value and field == "customer_phone":
            value = _normalize_phone(value) or value
        cleaned[field] = value
    return cleaned


def parse_llm_response(text: str) -> Dict[str, Any]:
    """
    Parse the model's reply into a dict.

    Raises:
        ExtractionError: If the reply is not a JSON object after removing
            code fences
    """
    try:
        data = json.loads(strip_code_fences(text))
    except json.JSONDecodeError as e:
        raise ExtractionError(f"LLM response is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ExtractionError(f"LLM response is JSON {type(data).__name__}, expected object")
    return data


def extract_facts_fallback(text: str) -> ExtractedFacts:
    """
    Deterministic regex extraction.

    Args:
        text: Transcript text (ideally the customer's turns only)

    Returns:
        ExtractedFacts with method="fallback"
    """
    values: Dict[str, Any] = {field: None for field in FACT_FIELDS}
    if not text or not text.strip():
        return ExtractedFacts(**values, method="fallback", confidence=0)

    lower = text.lower()

    name_match = NAME_PATTERN.search(text)
    if name_match:
        values["customer_name"] = name_match.group(1).strip()

    email_match = EMAIL_PATTERN.search(text)
    if email_match:
        values["customer_email"] = email_match.group(1).lower()
    else:
        spoken = SPOKEN_EMAIL_PATTERN.search(text)
        if spoken:
            local = re.sub(r"\s+dot\s+", ".", spoken.group(1), flags=re.IGNORECASE)
            domain = re.sub(r"\s+dot\s+", ".", spoken.group(2), flags=re.IGNORECASE)
            values["customer_email"] = f"{local}@{domain}.{spoken.group(3)}".lower()

    values["customer_phone"] = _normalize_phone(text)

    business_match = BUSINESS_NAME_PATTERN.search(text)
    if business_match:
        values["business_name"] = business_match.group(1).strip()

    for state, pattern in _STATE_PATTERNS:
        if pattern.search(text):
            values["state_of_operation"] = state
            break

    for pattern, entity_type in ENTITY_TYPE_PATTERNS:
        if pattern.search(text):
            values["entity_type"] = entity_type
            break

    for keyword, business_type in BUSINESS_TYPE_KEYWORDS:
        if re.search(r"\b" + re.escape(keyword) + r"\b", lower):
            values["business_type"] = business_type
            break

    for keywords, timeline in TIMELINE_KEYWORDS:
        if any(k in lower for k in keywords):
            values["timeline"] = timeline
            break

    if any(k in lower for k in LOW_URGENCY):
        values["urgency_level"] = "Low"
    elif any(k in lower for k in HIGH_URGENCY):
        values["urgency_level"] = "High"

    filled = [k for k, v in values.items() if v]
    logger.info(f"Fallback extraction found {len(filled)} fields: {filled}")

    return ExtractedFacts(**values, method="fallback", confidence=confidence_score(values))


class FactExtractor:
    """Two-branch extractor: LLM JSON first, regex fallback second."""

    def __init__(self, llm=None):
        self.llm = llm

    def _llm_branch(self, transcript: str, user_id: Optional[str] = None) -> Optional[ExtractedFacts]:
        """Return facts from the LLM, or None when the fallback must run."""
        if self.llm is None:
            return None

        prompt = USER_PROMPT_TEMPLATE.format(transcript=transcript[:MAX_TRANSCRIPT_CHARS])
        try:
            reply = self.llm.complete(
                SYSTEM_PROMPT,
                prompt,
                temperature=EXTRACTION_TEMPERATURE,
                max_tokens=EXTRACTION_MAX_TOKENS,
                user=user_id,
            )
            data = parse_llm_response(reply)
        except ExtractionError as e:
            logger.warning(f"LLM extraction unusable, using fallback: {e}")
            return None
        except Exception as e:
            logger.warning(f"LLM extraction call failed, using fallback: {type(e).__name__}: {e}")
            return None

        values = clean_llm_values(data)
        logger.info(f"LLM extraction found {sum(1 for v in values.values() if v)} fields")
        return ExtractedFacts(**values, method="llm", confidence=confidence_score(values))

    def extract(self, conversation: CanonicalConversation, user_id: Optional[str] = None) -> ExtractedFacts:
        """
        Extract facts from a normalized conversation. Never raises.

        Args:
            conversation: Canonical transcript triple
            user_id: Owning user id, forwarded to the LLM provider

        Returns:
            ExtractedFacts with method "llm" or "fallback"
        """
        facts = self._llm_branch(conversation.full_transcript, user_id=user_id)
        if facts is not None:
            return facts

        # The assistant introduces itself ("this is Elliot"), so only the
        # customer's own words feed the regexes
        text = "\n".join(conversation.user_messages) or conversation.full_transcript
        return extract_facts_fallback(text)
