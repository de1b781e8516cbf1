"""
Webhook schema resolution for TruthTable.

The voice platform delivers call transcripts in several shapes:
- artifact shape: {"artifact": {"messages": [...]}} (also under call.artifact)
- messages shape: {"messages": [...]}
- transcript shape: {"transcript": "User: ...\nAI: ..."}

Each payload is decoded into exactly one of these shapes (in that
precedence order) and then normalized by a single function into a
CanonicalConversation. Payloads matching none of them are rejected.
"""

import re
import uuid
import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from truthtable.errors import InputError
from truthtable.models import CanonicalConversation, ResolvedWebhook, Turn

logger = logging.getLogger(__name__)

USER_ROLES = {"user", "customer", "human", "caller"}
ASSISTANT_ROLES = {"assistant", "bot", "ai", "agent"}

# "Role: text" at the start of a transcript line
SPEAKER_LINE = re.compile(r"^\s*([A-Za-z]+)\s*:\s*(.*)$")


class ArtifactShape(BaseModel):
    """Message array nested under an artifact object."""

    kind: str = "artifact"
    messages: List[Dict[str, Any]] = Field(default_factory=list)


class MessagesShape(BaseModel):
    """Flat message array at the top level."""

    kind: str = "messages"
    messages: List[Dict[str, Any]] = Field(default_factory=list)


class TranscriptShape(BaseModel):
    """Bare transcript string."""

    kind: str = "transcript"
    transcript: str


PayloadShape = Union[ArtifactShape, MessagesShape, TranscriptShape]


def map_role(role: Any) -> Optional[str]:
    """
    Map a platform speaker role onto "user" or "assistant".

    Returns:
        "user", "assistant", or None for roles that are not conversation
        turns (system prompts, tool calls)
    """
    if not isinstance(role, str):
        return None
    role = role.strip().lower()
    if role in USER_ROLES:
        return "user"
    if role in ASSISTANT_ROLES:
        return "assistant"
    return None


def unwrap_envelope(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Strip the {"message": {...}} server-message wrapper if present."""
    inner = payload.get("message")
    if isinstance(inner, dict):
        return inner
    return payload


def detect_shape(payload: Dict[str, Any]) -> PayloadShape:
    """
    Decode a payload into one of the known transcript shapes.

    Args:
        payload: Webhook body with any envelope already removed

    Returns:
        ArtifactShape, MessagesShape or TranscriptShape

    Raises:
        InputError: If no known shape matches
    """
    call = payload.get("call") if isinstance(payload.get("call"), dict) else {}
    artifact = payload.get("artifact")
    if not isinstance(artifact, dict):
        artifact = call.get("artifact") if isinstance(call.get("artifact"), dict) else None

    if artifact is not None and isinstance(artifact.get("messages"), list):
        return ArtifactShape(messages=[m for m in artifact["messages"] if isinstance(m, dict)])

    if isinstance(payload.get("messages"), list):
        return MessagesShape(messages=[m for m in payload["messages"] if isinstance(m, dict)])

    if isinstance(payload.get("transcript"), str):
        return TranscriptShape(transcript=payload["transcript"])

    if artifact is not None and isinstance(artifact.get("transcript"), str):
        return TranscriptShape(transcript=artifact["transcript"])

    raise InputError(
        "Unrecognized webhook payload: expected artifact.messages, messages or transcript"
    )


def _turns_from_messages(messages: List[Dict[str, Any]]) -> List[Turn]:
    turns = []
    for msg in messages:
        role = map_role(msg.get("role"))
        if role is None:
            continue
        text = msg.get("content") or msg.get("message") or ""
        if not isinstance(text, str) or not text.strip():
            continue
        turns.append(Turn(role=role, text=text.strip()))
    return turns


def _turns_from_text(transcript: str) -> List[Turn]:
    pending: List[List[str]] = []
    tagged = False

    for line in transcript.splitlines():
        if not line.strip():
            continue
        match = SPEAKER_LINE.match(line)
        role = map_role(match.group(1)) if match else None
        if role is not None:
            tagged = True
            pending.append([role, match.group(2).strip()])
        elif pending:
            # Continuation of the previous speaker's turn
            pending[-1][1] = f"{pending[-1][1]} {line.strip()}".strip()
        else:
            pending.append(["user", line.strip()])

    if not tagged:
        text = " ".join(transcript.split())
        return [Turn(role="user", text=text)] if text else []

    return [Turn(role=role, text=text) for role, text in pending if text]


def normalize(shape: PayloadShape) -> CanonicalConversation:
    """
    Normalize any decoded shape into the canonical transcript triple.

    Raises:
        InputError: If the shape carries no usable transcript text
    """
    if isinstance(shape, TranscriptShape):
        turns = _turns_from_text(shape.transcript)
    else:
        turns = _turns_from_messages(shape.messages)

    if not turns:
        raise InputError(f"Webhook payload ({shape.kind} shape) contains no transcript text")

    return CanonicalConversation(
        full_transcript="\n".join(f"{t.role}: {t.text}" for t in turns),
        user_messages=[t.text for t in turns if t.role == "user"],
        assistant_messages=[t.text for t in turns if t.role == "assistant"],
        turns=turns,
    )


def _first_string(*candidates: Any) -> Optional[str]:
    for value in candidates:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _stage_hint(payload: Dict[str, Any], call: Dict[str, Any]) -> Optional[int]:
    assistant = payload.get("assistant") if isinstance(payload.get("assistant"), dict) else {}
    call_metadata = call.get("metadata") if isinstance(call.get("metadata"), dict) else {}
    assistant_metadata = assistant.get("metadata") if isinstance(assistant.get("metadata"), dict) else {}
    candidates = [
        payload.get("callStage"),
        call_metadata.get("callStage"),
        assistant_metadata.get("callStage"),
    ]
    for value in candidates:
        if value is None:
            continue
        try:
            stage = int(value)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring non-numeric callStage: {value!r}")
            continue
        if 1 <= stage <= 4:
            return stage
        logger.warning(f"Ignoring out-of-range callStage: {stage}")
    return None


def resolve_webhook(payload: Any) -> ResolvedWebhook:
    """
    Decode a raw webhook body into a ResolvedWebhook.

    Args:
        payload: Parsed JSON body

    Returns:
        ResolvedWebhook with the canonical conversation and customer identity

    Raises:
        InputError: If the body is not an object, has no customer phone or
            email, has no transcript text, or matches no known shape
    """
    if not isinstance(payload, dict):
        raise InputError("Webhook body must be a JSON object")

    body = unwrap_envelope(payload)
    call = body.get("call") if isinstance(body.get("call"), dict) else {}
    call_customer = call.get("customer") if isinstance(call.get("customer"), dict) else {}
    customer = body.get("customer") if isinstance(body.get("customer"), dict) else {}

    phone = _first_string(call_customer.get("number"), customer.get("number"), body.get("customerNumber"))
    email = _first_string(call_customer.get("email"), customer.get("email"), body.get("customerEmail"))

    if not phone and not email:
        raise InputError("Webhook payload has no customer phone number or email")

    conversation = normalize(detect_shape(body))

    call_id = _first_string(call.get("id"), body.get("callId"))
    if not call_id:
        call_id = str(uuid.uuid4())
        logger.info(f"Webhook carried no call id, generated {call_id}")

    return ResolvedWebhook(
        call_id=call_id,
        event_type=_first_string(body.get("type"), body.get("event_type")),
        customer_phone=phone,
        customer_email=email.lower() if email else None,
        stage_hint=_stage_hint(body, call),
        conversation=conversation,
        raw_payload=payload,
    )
