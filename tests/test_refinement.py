"""
Tests for RefinementLoop.

Tests cover:
- Skipping refinement for drafts already above the threshold
- Convergence, exhaustion and stall outcomes
- Best-draft retention when a round lowers the score
- Attempt bound and round callbacks
"""

from typing import List

import pytest

from briefing.models.dimensions import Dimension
from briefing.models.refinement import (
    EditPriority,
    FixerResult,
    RefinementState,
    SuggestedEdit,
)
from briefing.pipeline.refinement import RefinementLoop

from conftest import make_consensus


class QueuedScorer:
    """Returns queued consensus results and records the drafts it scored."""

    def __init__(self, results):
        self.results = list(results)
        self.scored = []

    async def score(self, draft, subject=""):
        self.scored.append(draft)
        return self.results.pop(0)


class RewritingFixers:
    """Each round replaces the whole Conclusion with a marked sentence."""

    def __init__(self, locatable: bool = True):
        self.locatable = locatable
        self.rounds = 0
        self.drafts_seen = []
        self.dimensions_seen: List[list] = []

    async def run(self, draft, consensus, dimensions):
        self.rounds += 1
        self.drafts_seen.append(draft)
        self.dimensions_seen.append(list(dimensions))
        original = draft.sections["Conclusion"] if self.locatable else "text that is not there"
        return [FixerResult(
            dimension=dimensions[0],
            edits=(SuggestedEdit(
                section="Conclusion",
                original_text=original,
                proposed_text=f"Round {self.rounds} conclusion.",
                rationale="tighter ending",
                priority=EditPriority.HIGH,
            ),),
            confidence=0.8,
        )]


def make_loop(scorer, fixers, **kwargs):
    kwargs.setdefault("max_attempts", 3)
    kwargs.setdefault("max_fixers", 3)
    kwargs.setdefault("floor", 7.0)
    return RefinementLoop(scorer=scorer, fixers=fixers, **kwargs)


# =============================================================================
# Outcomes
# =============================================================================

class TestRefinementOutcomes:
    """Terminal states of the loop."""

    @pytest.mark.asyncio
    async def test_passing_draft_is_not_refined(self, draft):
        scorer, fixers = QueuedScorer([]), RewritingFixers()
        loop = make_loop(scorer, fixers)

        outcome = await loop.run(draft, make_consensus(6.0))

        assert outcome.state == RefinementState.NOT_NEEDED
        assert outcome.draft is draft
        assert outcome.attempts == ()
        assert fixers.rounds == 0
        assert scorer.scored == []

    @pytest.mark.asyncio
    async def test_converges_when_threshold_reached(self, draft):
        scorer = QueuedScorer([make_consensus(7.0)])
        fixers = RewritingFixers()

        outcome = await make_loop(scorer, fixers).run(draft, make_consensus(5.0))

        assert outcome.state == RefinementState.CONVERGED
        assert outcome.succeeded
        assert len(outcome.attempts) == 1
        assert outcome.draft.sections["Conclusion"] == "Round 1 conclusion."
        assert outcome.consensus.overall_score == 7.0
        assert outcome.warning_reason is None
        attempt = outcome.attempts[0]
        assert (attempt.score_before, attempt.score_after) == (5.0, 7.0)
        assert attempt.edits_applied == 1

    @pytest.mark.asyncio
    async def test_exhaustion_returns_best_not_last(self, draft):
        scorer = QueuedScorer([make_consensus(5.0), make_consensus(4.5), make_consensus(4.8)])
        fixers = RewritingFixers()

        outcome = await make_loop(scorer, fixers).run(draft, make_consensus(4.0))

        assert outcome.state == RefinementState.EXHAUSTED
        assert len(outcome.attempts) == 3
        assert outcome.consensus.overall_score == 5.0
        assert outcome.draft.sections["Conclusion"] == "Round 1 conclusion."
        assert "5.0/10 after 3 refinement attempts" in outcome.warning_reason
        # Rounds two and three both start from the round one draft.
        assert fixers.drafts_seen[1] == fixers.drafts_seen[2]
        assert fixers.drafts_seen[1].sections["Conclusion"] == "Round 1 conclusion."

    @pytest.mark.asyncio
    async def test_tie_keeps_earlier_draft(self, draft):
        scorer = QueuedScorer([make_consensus(5.0), make_consensus(5.0)])
        fixers = RewritingFixers()

        outcome = await make_loop(scorer, fixers, max_attempts=2).run(draft, make_consensus(5.0))

        assert outcome.draft == draft
        assert fixers.drafts_seen == [draft, draft]

    @pytest.mark.asyncio
    async def test_stalls_without_dimensions_below_floor(self, draft):
        scorer, fixers = QueuedScorer([]), RewritingFixers()

        outcome = await make_loop(scorer, fixers, floor=3.0).run(draft, make_consensus(5.0))

        assert outcome.state == RefinementState.STALLED
        assert len(outcome.attempts) == 1
        assert outcome.attempts[0].fixers_deployed == ()
        assert fixers.rounds == 0
        assert outcome.warning_reason is not None

    @pytest.mark.asyncio
    async def test_stalls_when_no_edit_applies(self, draft):
        scorer, fixers = QueuedScorer([]), RewritingFixers(locatable=False)

        outcome = await make_loop(scorer, fixers).run(draft, make_consensus(5.0))

        assert outcome.state == RefinementState.STALLED
        assert scorer.scored == []
        attempt = outcome.attempts[0]
        assert attempt.edits_applied == 0
        assert attempt.edits_skipped == 1
        assert attempt.skipped[0].reason == "original text not found"
        assert outcome.draft == draft


# =============================================================================
# Bounds and callbacks
# =============================================================================

class TestRefinementBounds:
    @pytest.mark.asyncio
    async def test_never_exceeds_max_attempts(self, draft):
        scorer = QueuedScorer([make_consensus(4.0)] * 10)
        fixers = RewritingFixers()

        outcome = await make_loop(scorer, fixers, max_attempts=2).run(draft, make_consensus(4.0))

        assert len(outcome.attempts) == 2
        assert fixers.rounds == 2
        assert len(scorer.scored) == 2

    @pytest.mark.asyncio
    async def test_fixers_target_weakest_dimensions(self, draft):
        scorer = QueuedScorer([make_consensus(7.0)])
        fixers = RewritingFixers()
        start = make_consensus(7.0, evidence_quality=2.0, objectivity=3.0, bias_detection=4.0, accessibility=5.0)
        loop = make_loop(scorer, fixers)

        assert loop.needs_refinement(start)
        await loop.run(draft, start)

        assert fixers.dimensions_seen[0] == [
            Dimension.EVIDENCE_QUALITY,
            Dimension.OBJECTIVITY,
            Dimension.BIAS_DETECTION,
        ]

    @pytest.mark.asyncio
    async def test_round_callbacks(self, draft):
        scorer = QueuedScorer([make_consensus(5.5), make_consensus(6.5)])
        started, completed = [], []

        async def on_started(number, dimensions):
            started.append((number, len(dimensions)))

        async def on_completed(attempt):
            completed.append(attempt.attempt_number)

        outcome = await make_loop(scorer, RewritingFixers()).run(
            draft,
            make_consensus(5.0),
            on_round_started=on_started,
            on_round_completed=on_completed,
        )

        assert outcome.state == RefinementState.CONVERGED
        assert started == [(1, 3), (2, 3)]
        assert completed == [1, 2]
