"""
User profile progress updates.

After a call is processed, its extracted facts are merged into the users
row and the stage completion flags are advanced. Progress is monotonic: a
completed stage is never un-completed and current_call_stage never goes
down.
"""

import logging
from typing import Any, Dict, Mapping, Optional

from truthtable.config import USERS_TABLE
from truthtable.errors import PersistenceError
from truthtable.gap_analyzer import is_present
from truthtable.models import ExtractedFacts, utc_now

logger = logging.getLogger(__name__)

# Extracted facts that have a column on the users table
PROFILE_FACT_COLUMNS = (
    "customer_name",
    "customer_email",
    "customer_phone",
    "business_name",
    "business_type",
    "state_of_operation",
    "entity_type",
    "package_preference",
    "urgency_level",
    "timeline",
)

# Identity columns are only filled when empty so lookups keep working
FILL_ONLY_COLUMNS = ("customer_email", "customer_phone")


def build_progress_update(
    existing: Optional[Mapping[str, Any]],
    stage: int,
    facts: ExtractedFacts,
    now: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Compute the column values to write for a processed call.

    Args:
        existing: Current users row (may be empty for a new profile)
        stage: Stage the call completed
        facts: Extracted facts for the call
        now: ISO timestamp override (defaults to current UTC time)

    Returns:
        Column -> value mapping, never containing None for a fact column
    """
    existing = existing or {}
    now = now or utc_now().isoformat()
    update: Dict[str, Any] = {}

    filled = facts.filled_fields()
    for column in PROFILE_FACT_COLUMNS:
        value = filled.get(column)
        if value is None:
            continue
        if column in FILL_ONLY_COLUMNS and is_present(existing.get(column)):
            continue
        update[column] = value

    if not existing.get(f"call_{stage}_completed"):
        update[f"call_{stage}_completed"] = True
        update[f"call_{stage}_completed_at"] = now

    current = existing.get("current_call_stage") or 0
    update["current_call_stage"] = max(int(current), stage)
    update["updated_at"] = now
    return update


def update_progress(
    store,
    user_id: str,
    existing: Optional[Mapping[str, Any]],
    stage: int,
    facts: ExtractedFacts,
) -> Dict[str, Any]:
    """
    Write the progress update for one processed call.

    Raises:
        PersistenceError: If the update fails
    """
    update = build_progress_update(existing, stage, facts)
    try:
        store.update(USERS_TABLE, update, {"id": user_id})
    except PersistenceError:
        raise
    except Exception as e:
        raise PersistenceError(f"Profile update failed: {e}", store="users", user_id=user_id) from e

    logger.info(f"Updated progress for user {user_id}: stage {stage}, {len(update)} columns")
    return update
