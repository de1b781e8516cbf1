"""
Truth-table gap analysis.

Pure function over a fixed per-stage field table. Each field is read from
one of two sources: the user profile ("profile") or the intent profile
("intent", the dream_dna row). No I/O happens here; the report is
recomputed from the given mappings on every call.
"""

from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple

from truthtable.models import GapReport, MissingFields

Source = Literal["profile", "intent"]
FieldSpec = Tuple[str, Source]

TIERS = ("required", "important", "optional")

STAGE_REQUIREMENTS: Dict[int, Dict[str, List[FieldSpec]]] = {
    1: {
        "required": [
            ("customer_name", "profile"),
            ("customer_email", "profile"),
            ("business_name", "profile"),
            ("business_type", "profile"),
            ("state_of_operation", "profile"),
        ],
        "important": [
            ("business_concept", "intent"),
            ("target_customers", "intent"),
            ("timeline", "profile"),
            ("urgency_level", "profile"),
        ],
        "optional": [
            ("unique_value_prop", "intent"),
            ("startup_capital", "profile"),
            ("revenue_goals", "intent"),
        ],
    },
    2: {
        "required": [
            ("brand_personality", "intent"),
            ("brand_values", "intent"),
            ("visual_style", "intent"),
            ("color_preferences", "intent"),
        ],
        "important": [
            ("brand_mission", "intent"),
            ("brand_vision", "intent"),
            ("logo_direction", "intent"),
            ("website_style", "intent"),
        ],
        "optional": [
            ("competitive_advantage", "intent"),
            ("brand_positioning", "intent"),
            ("domain_preference", "profile"),
        ],
    },
    3: {
        "required": [
            ("business_location", "profile"),
            ("operational_model", "profile"),
            ("team_structure", "profile"),
        ],
        "important": [
            ("processes", "profile"),
            ("systems", "profile"),
            ("technology_needs", "profile"),
        ],
        "optional": [
            ("partnerships", "profile"),
            ("suppliers", "profile"),
            ("logistics", "profile"),
        ],
    },
    4: {
        "required": [
            ("launch_strategy", "profile"),
            ("marketing_plan", "profile"),
            ("sales_process", "profile"),
        ],
        "important": [
            ("customer_acquisition", "profile"),
            ("growth_plan", "profile"),
            ("success_metrics", "profile"),
        ],
        "optional": [
            ("exit_strategy", "profile"),
            ("scaling_plan", "profile"),
            ("funding_needs", "profile"),
        ],
    },
}


def is_present(value: Any) -> bool:
    """A field counts as filled unless it is None, blank, or an empty collection."""
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) > 0
    return True


def analyze_gaps(
    stage: int,
    profile: Optional[Mapping[str, Any]],
    intent_profile: Optional[Mapping[str, Any]] = None,
) -> GapReport:
    """
    Compute the completeness report for one call stage.

    Args:
        stage: Call stage, 1-4
        profile: User profile fields (empty or None for an unknown user)
        intent_profile: Intent-profile fields, if any

    Returns:
        GapReport with missing fields per tier, completion percentage and
        priority

    Raises:
        ValueError: If the stage is not 1-4
    """
    if stage not in STAGE_REQUIREMENTS:
        raise ValueError(f"Unknown call stage: {stage}")

    sources = {"profile": profile or {}, "intent": intent_profile or {}}
    requirements = STAGE_REQUIREMENTS[stage]

    missing: Dict[str, List[str]] = {tier: [] for tier in TIERS}
    total = 0
    for tier in TIERS:
        for field, source in requirements[tier]:
            total += 1
            if not is_present(sources[source].get(field)):
                missing[tier].append(field)

    complete = total - sum(len(fields) for fields in missing.values())
    completion = round(complete / total * 100) if total else 100

    if missing["required"]:
        priority = "critical"
    elif missing["important"]:
        priority = "important"
    else:
        priority = "optional"

    return GapReport(
        stage=stage,
        missing=MissingFields(**missing),
        complete=complete,
        total=total,
        completion_percentage=completion,
        priority=priority,
    )


def first_incomplete_stage(profile: Optional[Mapping[str, Any]]) -> int:
    """The first stage whose completion flag is unset (4 once all are set)."""
    profile = profile or {}
    for stage in sorted(STAGE_REQUIREMENTS):
        if not profile.get(f"call_{stage}_completed"):
            return stage
    return max(STAGE_REQUIREMENTS)
