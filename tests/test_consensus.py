"""
Tests for the consensus scorer and the evaluator agent.

Tests cover:
- Arbiter never called without disagreement, exactly once with it
- 1.5x Arbiter weighting on disputed dimensions only
- Idempotence of scoring
- Evaluator response validation (missing/unknown dimensions, scales)
"""

import pytest

from briefing.agents.consensus import (
    ConsensusScorer,
    build_consensus,
    combine_scores,
    detect_disagreement,
    prioritize_issues,
)
from briefing.agents.evaluator import EvaluatorAgent
from briefing.agents.personas import EvaluatorRole, get_evaluator_persona
from briefing.exceptions import AgentOutputError, DimensionScoreError
from briefing.models.dimensions import Dimension
from briefing.models.scoring import EvaluatorVerdict

from conftest import ScriptedEvaluator, ScriptedLLM, dimension_scores


FPC = Dimension.FIRST_PRINCIPLES_COHERENCE


def panel(skeptic=None, advocate=None, generalist=None, arbiter=None):
    return {
        "Skeptic": skeptic or dimension_scores(8.0),
        "Advocate": advocate or dimension_scores(8.0),
        "Generalist": generalist or dimension_scores(8.0),
        "Arbiter": arbiter or dimension_scores(8.0),
    }


# =============================================================================
# Arbiter invocation
# =============================================================================

class TestArbiterInvocation:
    """The Arbiter is a cost-controlled tiebreaker."""

    @pytest.mark.asyncio
    async def test_low_evidence_without_disagreement(self, draft):
        """Skeptic's low evidence score drives the aggregate; no Arbiter call."""
        low_evidence = dimension_scores(8.0, evidence_quality=4.0)
        evaluator = ScriptedEvaluator(panel(low_evidence, low_evidence, low_evidence))
        scorer = ConsensusScorer(evaluator=evaluator, threshold=2.0)

        result = await scorer.score(draft, "congestion pricing")

        assert evaluator.count("Arbiter") == 0
        assert result.arbiter_invoked is False
        assert result.dimension_scores[Dimension.EVIDENCE_QUALITY] == 4.0
        assert result.overall_score == 7.2
        assert result.consensus_method == "median"

    @pytest.mark.asyncio
    async def test_spread_within_threshold_uses_median(self, draft):
        evaluator = ScriptedEvaluator(panel(
            skeptic=dimension_scores(8.0, first_principles_coherence=7.0),
            generalist=dimension_scores(8.0, first_principles_coherence=8.5),
        ))
        scorer = ConsensusScorer(evaluator=evaluator, threshold=2.0)

        result = await scorer.score(draft)

        assert evaluator.count("Arbiter") == 0
        assert result.dimension_scores[FPC] == 7.8

    @pytest.mark.asyncio
    async def test_spread_equal_to_threshold_is_not_disputed(self, draft):
        evaluator = ScriptedEvaluator(panel(
            skeptic=dimension_scores(8.0, first_principles_coherence=6.0),
        ))
        result = await ConsensusScorer(evaluator=evaluator, threshold=2.0).score(draft)

        assert evaluator.count("Arbiter") == 0
        assert result.disputed_dimensions == ()

    @pytest.mark.asyncio
    async def test_disagreement_calls_arbiter_once(self, draft):
        evaluator = ScriptedEvaluator(panel(
            skeptic=dimension_scores(8.0, first_principles_coherence=4.0),
            generalist=dimension_scores(8.0, first_principles_coherence=8.0),
            arbiter=dimension_scores(2.0, first_principles_coherence=8.0),
        ))
        scorer = ConsensusScorer(evaluator=evaluator, threshold=2.0)

        result = await scorer.score(draft)

        assert evaluator.count("Arbiter") == 1
        assert result.arbiter_invoked is True
        assert result.disputed_dimensions == (FPC,)
        assert evaluator.disputed_seen[-1] == (FPC,)
        assert result.consensus_method == "tiebreaker"

    @pytest.mark.asyncio
    async def test_disputed_dimension_weights_arbiter_one_and_a_half(self, draft):
        """(4 + 8 + 1.5 * 8) / 3.5 = 6.857 → 6.9; an unweighted mean would give 6.7."""
        evaluator = ScriptedEvaluator(panel(
            skeptic=dimension_scores(8.0, first_principles_coherence=4.0),
            generalist=dimension_scores(8.0, first_principles_coherence=8.0),
            arbiter=dimension_scores(2.0, first_principles_coherence=8.0),
        ))

        result = await ConsensusScorer(evaluator=evaluator, threshold=2.0).score(draft)

        assert result.dimension_scores[FPC] == 6.9
        # Arbiter's 2.0 elsewhere is ignored: those dimensions were not disputed.
        assert result.dimension_scores[Dimension.ACCESSIBILITY] == 8.0
        assert result.dimension_scores[Dimension.EVIDENCE_QUALITY] == 8.0
        assert result.overall_score == 7.8

    @pytest.mark.asyncio
    async def test_two_disputes_still_one_arbiter_call(self, draft):
        evaluator = ScriptedEvaluator(panel(
            skeptic=dimension_scores(8.0, first_principles_coherence=3.0),
            advocate=dimension_scores(8.0, internal_consistency=9.0),
            generalist=dimension_scores(8.0, internal_consistency=5.0),
        ))

        result = await ConsensusScorer(evaluator=evaluator, threshold=2.0).score(draft)

        assert evaluator.count("Arbiter") == 1
        assert set(result.disputed_dimensions) == {FPC, Dimension.INTERNAL_CONSISTENCY}


# =============================================================================
# Determinism
# =============================================================================

class TestDeterminism:
    @pytest.mark.asyncio
    async def test_rescoring_unchanged_draft_is_idempotent(self, draft):
        evaluator = ScriptedEvaluator(panel(
            skeptic=dimension_scores(6.0, first_principles_coherence=3.0),
        ))
        scorer = ConsensusScorer(evaluator=evaluator, threshold=2.0)

        first = await scorer.score(draft)
        second = await scorer.score(draft)

        assert first == second

    @pytest.mark.asyncio
    async def test_sequential_matches_parallel(self, draft):
        scores = panel(skeptic=dimension_scores(7.0, evidence_quality=5.0))
        parallel = await ConsensusScorer(ScriptedEvaluator(scores), 2.0, parallel=True).score(draft)
        sequential = await ConsensusScorer(ScriptedEvaluator(scores), 2.0, parallel=False).score(draft)

        assert parallel == sequential


class TestPureCombination:
    def _verdict(self, role, scores):
        return EvaluatorVerdict(role=role, scores=scores, critiques={}, critique="")

    def test_dispute_without_arbiter_is_an_error(self):
        verdicts = [
            self._verdict("Skeptic", {FPC: 2.0}),
            self._verdict("Generalist", {FPC: 9.0}),
        ]
        disputed = detect_disagreement(verdicts, 2.0)
        with pytest.raises(ValueError):
            combine_scores(verdicts, disputed, None)

    def test_uncovered_dimension_is_an_error(self):
        with pytest.raises(ValueError, match="no primary score"):
            combine_scores([self._verdict("Skeptic", {FPC: 7.0})], ())

    def test_build_consensus_ignores_arbiter_without_dispute(self):
        persona_scores = panel()
        verdicts = [
            self._verdict(role, {
                d: persona_scores[role][d]
                for d in get_evaluator_persona(role).ordered_dimensions()
            })
            for role in ("Skeptic", "Advocate", "Generalist")
        ]
        arbiter = self._verdict("Arbiter", dimension_scores(1.0))

        result = build_consensus(verdicts, 2.0, arbiter)

        assert result.arbiter_invoked is False
        assert result.overall_score == 8.0

    def test_prioritize_issues_merges_near_duplicates(self):
        issue = {"dimension": "evidenceQuality", "severity": "medium", "description": "No source for the traffic figure"}
        same = {"dimension": "evidenceQuality", "severity": "high", "description": "no source for the traffic figure", "suggested_fix": "cite it"}
        other = {"dimension": "objectivity", "severity": "low", "description": "Loaded wording in the introduction"}
        verdicts = [
            EvaluatorVerdict("Skeptic", {}, {}, "", issues=(issue, other)),
            EvaluatorVerdict("Generalist", {}, {}, "", issues=(same,)),
        ]

        ranked = prioritize_issues(verdicts)

        assert len(ranked) == 2
        assert ranked[0]["agreed_by"] == 2
        assert ranked[0]["severity"] == "high"
        assert ranked[0]["suggested_fix"] == "cite it"

    def test_build_consensus_ranks_panel_issues(self):
        persona_scores = panel()
        issues = {
            "Skeptic": ({"dimension": "evidenceQuality", "severity": "high", "description": "No source for the traffic figure"},),
            "Advocate": ({"dimension": "objectivity", "severity": "low", "description": "Loaded wording in the introduction"},),
            "Generalist": (),
        }
        verdicts = [
            EvaluatorVerdict(
                role=role,
                scores={d: persona_scores[role][d] for d in get_evaluator_persona(role).ordered_dimensions()},
                critiques={},
                critique="",
                issues=issues[role],
            )
            for role in ("Skeptic", "Advocate", "Generalist")
        ]

        result = build_consensus(verdicts, 2.0)

        assert [i["description"] for i in result.issues_for(Dimension.EVIDENCE_QUALITY)] == [
            "No source for the traffic figure"
        ]
        assert result.issues_for(Dimension.ACCESSIBILITY) == []
        assert len(result.to_dict()["priority_issues"]) == 2



# =============================================================================
# EvaluatorAgent response handling
# =============================================================================

def skeptic_response(**overrides):
    data = {
        "scale": 10,
        "dimensions": {
            "evidenceQuality": {"score": 4, "critique": "One source only"},
            "factualAccuracy": {"score": 7, "critique": "Figures check out"},
            "firstPrinciplesCoherence": {"score": 6.5, "critique": "Assumes the premise"},
        },
        "overall_critique": "Thin evidence",
        "confidence": 0.9,
    }
    data.update(overrides)
    return data


class TestEvaluatorAgent:
    """Validation of persona responses."""

    @pytest.mark.asyncio
    async def test_parses_assigned_dimensions(self, draft, fast_invoker):
        llm = ScriptedLLM([skeptic_response()])
        agent = EvaluatorAgent(llm=llm, invoker=fast_invoker)

        verdict = await agent.evaluate(draft, get_evaluator_persona("Skeptic"), subject="q")

        assert verdict.role == "Skeptic"
        assert verdict.scores[Dimension.EVIDENCE_QUALITY] == 4.0
        assert set(verdict.scores) == get_evaluator_persona("Skeptic").dimensions
        assert verdict.critique == "Thin evidence"

    @pytest.mark.asyncio
    async def test_missing_dimension_fails_loudly(self, draft, fast_invoker):
        data = skeptic_response()
        del data["dimensions"]["factualAccuracy"]
        agent = EvaluatorAgent(llm=ScriptedLLM([data]), invoker=fast_invoker)

        with pytest.raises(DimensionScoreError, match="factualAccuracy"):
            await agent.evaluate(draft, get_evaluator_persona("Skeptic"))

    @pytest.mark.asyncio
    async def test_unknown_dimension_fails_loudly(self, draft, fast_invoker):
        data = skeptic_response()
        data["dimensions"]["vibes"] = {"score": 9}
        agent = EvaluatorAgent(llm=ScriptedLLM([data]), invoker=fast_invoker)

        with pytest.raises(DimensionScoreError, match="unknown dimension"):
            await agent.evaluate(draft, get_evaluator_persona("Skeptic"))

    def test_hundred_point_scale_is_normalized(self):
        agent = EvaluatorAgent(llm=ScriptedLLM(), invoker=None)
        data = skeptic_response(scale=100, dimensions={
            "evidenceQuality": 40,
            "factualAccuracy": 70,
            "firstPrinciplesCoherence": 65,
        })

        verdict = agent.parse_verdict(data, get_evaluator_persona("Skeptic"))

        assert verdict.scores[Dimension.FACTUAL_ACCURACY] == 7.0

    def test_list_form_and_unassigned_dimensions(self):
        agent = EvaluatorAgent(llm=ScriptedLLM(), invoker=None)
        data = skeptic_response(dimensions=[
            {"dimension": "evidenceQuality", "score": 5, "critique": "ok"},
            {"dimension": "factualAccuracy", "score": 6},
            {"dimension": "firstPrinciplesCoherence", "score": 7},
            {"dimension": "accessibility", "score": 1},
        ])

        verdict = agent.parse_verdict(data, get_evaluator_persona("Skeptic"))

        assert Dimension.ACCESSIBILITY not in verdict.scores
        assert verdict.scores[Dimension.EVIDENCE_QUALITY] == 5.0

    @pytest.mark.asyncio
    async def test_malformed_json_is_not_retried(self, draft, fast_invoker):
        llm = ScriptedLLM(["I would rate this brief fairly highly."])
        agent = EvaluatorAgent(llm=llm, invoker=fast_invoker)

        with pytest.raises(AgentOutputError):
            await agent.evaluate(draft, get_evaluator_persona("Skeptic"))
        assert len(llm.calls) == 1

    @pytest.mark.asyncio
    async def test_arbiter_prompt_lists_disputes(self, draft, fast_invoker):
        arbiter = get_evaluator_persona(EvaluatorRole.ARBITER)
        data = {"dimensions": {d.value: {"score": 7} for d in arbiter.ordered_dimensions()}}
        llm = ScriptedLLM([data])
        agent = EvaluatorAgent(llm=llm, invoker=fast_invoker)
        panel_verdict = EvaluatorVerdict("Skeptic", {FPC: 3.0}, {FPC: "circular"}, "")

        await agent.evaluate(draft, arbiter, disputed=(FPC,), panel=(panel_verdict,))

        prompt = llm.calls[0][-1].content
        assert "Panel disagreement" in prompt
        assert "Skeptic gave firstPrinciplesCoherence 3.0" in prompt
