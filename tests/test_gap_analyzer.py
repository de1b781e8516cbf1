"""
Tests for truth-table gap analysis.
"""

import pytest

from truthtable.gap_analyzer import STAGE_REQUIREMENTS, analyze_gaps, first_incomplete_stage, is_present

STAGE1_REQUIRED = {
    "customer_name": "Jane Doe",
    "customer_email": "jane@acme.com",
    "business_name": "Acme Bakery",
    "business_type": "Bakery",
    "state_of_operation": "Texas",
}


class TestAnalyzeGaps:
    """Tests for analyze_gaps()."""

    def test_empty_profile_is_critical(self):
        """Test that nothing known means everything missing."""
        print("\n📋 Testing empty profile gap report...")
        report = analyze_gaps(1, {}, None)

        assert report.priority == "critical"
        assert report.complete == 0
        assert report.total == 12
        assert report.completion_percentage == 0
        assert report.missing.required == [f for f, _ in STAGE_REQUIREMENTS[1]["required"]]
        print("   ✅ Empty profile is critical!")

    def test_all_required_present_becomes_important(self):
        """Test that filling the required tier lowers priority to important."""
        report = analyze_gaps(1, STAGE1_REQUIRED, {})
        assert report.priority == "important"
        assert report.missing.required == []
        assert report.complete == 5
        assert report.completion_percentage == round(5 / 12 * 100)

    def test_intent_fields_read_from_intent_profile(self):
        """Test that intent-sourced fields are not satisfied by the user profile."""
        profile = dict(STAGE1_REQUIRED, timeline="Immediate", urgency_level="High",
                       business_concept="profile copy is ignored")
        intent = {"business_concept": "Artisan bread", "target_customers": "Local cafes"}

        report = analyze_gaps(1, profile, intent)
        assert report.priority == "optional"
        assert report.missing.important == []

        report_without_intent = analyze_gaps(1, profile, None)
        assert "business_concept" in report_without_intent.missing.important

    def test_fully_complete_stage(self):
        """Test that a complete stage reports 100 percent."""
        intent = {field: "x" for tier in STAGE_REQUIREMENTS[2].values() for field, src in tier if src == "intent"}
        profile = {"domain_preference": "acme.com"}
        report = analyze_gaps(2, profile, intent)
        assert report.completion_percentage == 100
        assert report.priority == "optional"
        assert report.complete == report.total

    def test_partial_critical_gap(self):
        """Test the report when two required fields are still missing."""
        profile = {
            "customer_name": "Jane Doe",
            "customer_email": "jane@acme.com",
            "business_type": "Bakery",
        }
        report = analyze_gaps(1, profile)
        assert report.priority == "critical"
        assert report.missing.required == ["business_name", "state_of_operation"]

    def test_blank_values_count_as_missing(self):
        """Test that whitespace and empty collections are not present."""
        assert not is_present("   ")
        assert not is_present([])
        assert not is_present({})
        assert not is_present(None)
        assert is_present(0)
        assert is_present(False)
        assert is_present(["x"])

    @pytest.mark.parametrize("stage", sorted(STAGE_REQUIREMENTS))
    def test_completion_never_drops_as_fields_fill(self, stage):
        """Test that filling fields one at a time only ever raises completion."""
        profile, intent = {}, {}
        previous = analyze_gaps(stage, profile, intent).completion_percentage
        assert previous == 0

        for tier in STAGE_REQUIREMENTS[stage].values():
            for field, source in tier:
                (intent if source == "intent" else profile)[field] = "known"
                current = analyze_gaps(stage, profile, intent).completion_percentage
                assert 0 <= current <= 100
                assert current >= previous
                previous = current

        assert previous == 100

    def test_alias_serialization(self):
        """Test that completion percentage serializes as completionPercentage."""
        dumped = analyze_gaps(3, {}).model_dump(by_alias=True)
        assert dumped["completionPercentage"] == 0
        assert dumped["missing"]["required"] == ["business_location", "operational_model", "team_structure"]

    @pytest.mark.parametrize("stage", [0, 5, -1])
    def test_unknown_stage_rejected(self, stage):
        """Test that stages outside 1-4 raise ValueError."""
        with pytest.raises(ValueError):
            analyze_gaps(stage, {})


class TestFirstIncompleteStage:
    """Tests for stage inference from completion flags."""

    def test_new_user_starts_at_one(self):
        assert first_incomplete_stage({}) == 1
        assert first_incomplete_stage(None) == 1

    def test_skips_completed_stages(self):
        assert first_incomplete_stage({"call_1_completed": True}) == 2
        assert first_incomplete_stage({"call_1_completed": True, "call_2_completed": True}) == 3

    def test_all_complete_stays_at_four(self):
        profile = {f"call_{n}_completed": True for n in range(1, 5)}
        assert first_incomplete_stage(profile) == 4
