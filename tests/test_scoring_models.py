"""
Tests for dimensions, the evaluator persona registry and investigation records.

Tests cover:
- DimensionScores invariants (exactly seven keys, range, scale)
- Weighted aggregation against the fixed weight table
- Persona lookup, coverage and the Arbiter's remit
- Investigation records: strict fields, legal status moves, row conversion
"""

import pytest
from pydantic import ValidationError

from briefing.agents.personas import (
    EVALUATOR_PERSONAS,
    EvaluatorRole,
    get_evaluator_persona,
    get_primary_personas,
    primary_dimension_owners,
)
from briefing.database.investigations import investigation_from_row, source_from_row
from briefing.exceptions import DimensionScoreError, UnknownEvaluatorRoleError
from briefing.models.dimensions import (
    ALL_DIMENSIONS,
    DIMENSION_WEIGHTS,
    Dimension,
    DimensionScores,
    normalize_score,
    round_score,
)
from briefing.models.investigation import Draft, Investigation, InvestigationStatus

from conftest import dimension_scores


# =============================================================================
# Dimension scores
# =============================================================================

class TestDimensionScores:
    """The seven-key invariant and aggregation."""

    def test_weights_sum_to_100(self):
        assert sum(DIMENSION_WEIGHTS.values()) == 100
        assert set(DIMENSION_WEIGHTS) == set(ALL_DIMENSIONS)

    def test_missing_dimension_rejected(self):
        scores = dimension_scores()
        del scores[Dimension.BIAS_DETECTION]
        with pytest.raises(DimensionScoreError, match="biasDetection"):
            DimensionScores(scores)

    def test_unknown_dimension_rejected(self):
        scores = {d.value: 7 for d in ALL_DIMENSIONS}
        scores["charisma"] = 9
        with pytest.raises(DimensionScoreError, match="unknown dimension"):
            DimensionScores(scores)

    def test_out_of_range_rejected(self):
        with pytest.raises(DimensionScoreError):
            DimensionScores(dimension_scores(evidence_quality=10.5))

    def test_accepts_wire_names(self):
        scores = DimensionScores({d.value: 6 for d in ALL_DIMENSIONS})
        assert scores["evidenceQuality"] == 6.0
        assert len(scores) == 7

    def test_low_evidence_scenario(self):
        """evidenceQuality 4, everything else 8 → 7.2 under the fixed weights."""
        scores = DimensionScores(dimension_scores(8.0, evidence_quality=4.0))
        assert scores.weighted_overall() == 7.2

    def test_uniform_scores_aggregate_to_themselves(self):
        assert DimensionScores(dimension_scores(6.0)).weighted_overall() == 6.0

    def test_from_dict_normalizes_unit_scale(self):
        data = {d.value: 0.5 for d in ALL_DIMENSIONS}
        data["accessibility"] = 0.9
        scores = DimensionScores.from_dict(data, scale=1)
        assert scores[Dimension.ACCESSIBILITY] == pytest.approx(9.0)
        assert scores[Dimension.OBJECTIVITY] == pytest.approx(5.0)

    def test_lowest_orders_by_score_then_declaration(self):
        scores = DimensionScores(dimension_scores(8.0, objectivity=5.0, accessibility=5.0, bias_detection=3.0))
        lowest = [d for d, _ in scores.lowest(3)]
        assert lowest == [Dimension.BIAS_DETECTION, Dimension.ACCESSIBILITY, Dimension.OBJECTIVITY]

    def test_equal_scores_compare_equal(self):
        assert DimensionScores(dimension_scores(7.0)) == DimensionScores(dimension_scores(7.0))


class TestNormalization:
    def test_hundred_scale(self):
        assert normalize_score(85, 100) == 8.5

    def test_unsupported_scale(self):
        with pytest.raises(DimensionScoreError, match="unsupported"):
            normalize_score(3, 5)

    @pytest.mark.parametrize("value", [None, "high", True, float("nan")])
    def test_non_numeric(self, value):
        with pytest.raises(DimensionScoreError):
            normalize_score(value)

    def test_round_half_away_from_zero(self):
        assert round_score(6.25) == pytest.approx(6.3)
        assert round_score(6.75) == pytest.approx(6.8)
        assert round_score(-1.25) == pytest.approx(-1.3)


# =============================================================================
# Persona registry
# =============================================================================

class TestPersonaRegistry:
    """Lookup and coverage."""

    def test_unknown_role_raises(self):
        with pytest.raises(UnknownEvaluatorRoleError, match="unknown evaluator role: Unknown"):
            get_evaluator_persona("Unknown")

    @pytest.mark.parametrize("role", [None, "", "skeptic ", 3])
    def test_no_default_persona(self, role):
        with pytest.raises(UnknownEvaluatorRoleError):
            get_evaluator_persona(role)

    def test_lookup_by_string_and_enum(self):
        assert get_evaluator_persona("Skeptic") is get_evaluator_persona(EvaluatorRole.SKEPTIC)

    def test_primary_personas_cover_every_dimension(self):
        owners = primary_dimension_owners()
        assert all(owners[d] for d in ALL_DIMENSIONS)

    def test_skeptic_owns_evidence_quality(self):
        assert primary_dimension_owners()[Dimension.EVIDENCE_QUALITY] == (EvaluatorRole.SKEPTIC,)

    def test_some_dimensions_are_cross_checked(self):
        owners = primary_dimension_owners()
        assert len(owners[Dimension.FIRST_PRINCIPLES_COHERENCE]) == 2
        assert len(owners[Dimension.INTERNAL_CONSISTENCY]) == 2

    def test_arbiter_scores_all_dimensions(self):
        arbiter = get_evaluator_persona(EvaluatorRole.ARBITER)
        assert arbiter.dimensions == frozenset(ALL_DIMENSIONS)
        assert not arbiter.is_primary

    def test_primary_order_and_prompts(self):
        personas = get_primary_personas()
        assert [p.role for p in personas] == [
            EvaluatorRole.SKEPTIC,
            EvaluatorRole.ADVOCATE,
            EvaluatorRole.GENERALIST,
        ]
        for persona in EVALUATOR_PERSONAS.values():
            assert "0-10" in persona.prompt_template
            assert "{dimensions}" in persona.prompt_template

    def test_registry_is_read_only(self):
        with pytest.raises(TypeError):
            EVALUATOR_PERSONAS[EvaluatorRole.SKEPTIC] = None


# =============================================================================
# Investigation records
# =============================================================================

def make_investigation(**overrides) -> Investigation:
    fields = {"id": "inv-1", "subject": "Should cities adopt congestion pricing?", "owner_id": "owner-1"}
    fields.update(overrides)
    return Investigation(**fields)


def walk(investigation: Investigation, *statuses: InvestigationStatus) -> Investigation:
    for status in statuses:
        investigation.transition_to(status)
    return investigation


class TestInvestigationRecord:
    """Strict fields, legal status moves and conversion from stored rows."""

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            make_investigation(priority="urgent")

    def test_missing_field_rejected(self):
        with pytest.raises(ValidationError):
            Investigation(id="inv-1", subject="Should cities adopt congestion pricing?")

    def test_score_out_of_range_rejected_on_assignment(self):
        investigation = make_investigation()
        with pytest.raises(ValidationError):
            investigation.overall_score = 11.0

    def test_full_lifecycle(self):
        investigation = walk(
            make_investigation(),
            InvestigationStatus.GENERATING,
            InvestigationStatus.SCORING,
            InvestigationStatus.REFINING,
            InvestigationStatus.COMPLETE,
        )
        assert investigation.is_terminal

    @pytest.mark.parametrize("path,target", [
        ((), InvestigationStatus.COMPLETE),
        ((), InvestigationStatus.SCORING),
        ((InvestigationStatus.GENERATING, InvestigationStatus.SCORING, InvestigationStatus.COMPLETE),
         InvestigationStatus.REFINING),
        ((InvestigationStatus.FAILED,), InvestigationStatus.GENERATING),
    ])
    def test_illegal_moves_raise(self, path, target):
        investigation = walk(make_investigation(), *path)
        before = investigation.status

        with pytest.raises(ValueError, match="illegal investigation transition"):
            investigation.transition_to(target)

        assert investigation.status == before

    def test_any_live_status_can_fail(self):
        investigation = walk(make_investigation(), InvestigationStatus.GENERATING, InvestigationStatus.FAILED)
        assert investigation.status == InvestigationStatus.FAILED

    def test_completed_cannot_fail(self):
        investigation = walk(
            make_investigation(),
            InvestigationStatus.GENERATING,
            InvestigationStatus.SCORING,
            InvestigationStatus.COMPLETE,
        )
        with pytest.raises(ValueError):
            investigation.transition_to(InvestigationStatus.FAILED)

    def test_investigation_from_row(self):
        row = {
            "id": "inv-7",
            "subject": "Should cities adopt congestion pricing?",
            "owner_id": "owner-1",
            "kind": "brief",
            "status": "complete",
            "draft": {"title": "Congestion pricing", "sections": {"Introduction": "Drivers pay."}},
            "overall_score": 7.4,
            "refunded": False,
            "warning_reason": None,
            "created_at": "2026-05-01T12:00:00+00:00",
            "updated_at": "2026-05-01T12:03:00+00:00",
        }

        investigation = investigation_from_row(row)

        assert investigation.status == InvestigationStatus.COMPLETE
        assert isinstance(investigation.draft, Draft)
        assert investigation.draft.sections["Introduction"] == "Drivers pay."
        assert investigation.created_at.year == 2026

    def test_investigation_row_with_extra_column_rejected(self):
        row = {"id": "inv-7", "subject": "s", "owner_id": "owner-1", "stripe_session": "cs_123"}
        with pytest.raises(ValidationError):
            investigation_from_row(row)

    def test_source_from_row_drops_link_columns(self):
        row = {
            "id": "src-1",
            "investigation_id": "inv-7",
            "created_at": "2026-05-01T12:00:00+00:00",
            "url": "https://www.oecd.org/transport/pricing",
            "title": "Road pricing review",
            "credibility_score": 9.5,
        }

        source = source_from_row(row)

        assert source.url == "https://www.oecd.org/transport/pricing"
        assert source.credibility_score == 9.5

    def test_source_row_with_unknown_column_rejected(self):
        row = {"url": "https://example.org", "title": "t", "embedding": [0.1, 0.2]}
        with pytest.raises(ValidationError):
            source_from_row(row)
