"""
RefinementLoop: score → select fixers → fix → reconcile → rescore.

Runs only when the first scoring pass is below QUALITY_THRESHOLD, and at
most ``max_attempts`` rounds. Each round works from the best draft seen
so far, so a round that lowers the score is discarded rather than built
upon. On exhaustion the best-scoring draft is returned with a warning.
"""

import time
from typing import Awaitable, Callable, List, Optional, Sequence

from briefing.agents.consensus import ConsensusScorer
from briefing.agents.fixers import FixerOrchestrator, select_fixers
from briefing.agents.reconciliation import EditReconciler
from briefing.config import config
from briefing.models.dimensions import QUALITY_THRESHOLD, Dimension
from briefing.models.investigation import Draft
from briefing.models.refinement import (
    AppliedEdit,
    RefinementAttempt,
    RefinementOutcome,
    RefinementState,
    SkippedEdit,
)
from briefing.models.scoring import ConsensusResult
from briefing.utils.logging import refinement_logger


RoundStarted = Callable[[int, Sequence[Dimension]], Awaitable[None]]
RoundCompleted = Callable[[RefinementAttempt], Awaitable[None]]


def warning_reason(consensus: ConsensusResult, attempts: int, floor: float) -> str:
    weakest = [
        f"{d.value} ({score:.1f})"
        for d, score in consensus.dimension_scores.lowest(3)
        if score < floor
    ]
    reason = f"Brief scored {consensus.overall_score:.1f}/10 after {attempts} refinement attempts."
    if weakest:
        reason += f" Lowest dimensions: {', '.join(weakest)}"
    return reason


class RefinementLoop:
    def __init__(
        self,
        scorer: ConsensusScorer,
        fixers: FixerOrchestrator,
        reconciler: Optional[EditReconciler] = None,
        max_attempts: Optional[int] = None,
        max_fixers: Optional[int] = None,
        floor: Optional[float] = None,
        threshold: float = QUALITY_THRESHOLD,
    ):
        self.scorer = scorer
        self.fixers = fixers
        self.reconciler = reconciler or EditReconciler()
        self.max_attempts = max_attempts or config.MAX_REFINEMENT_ATTEMPTS
        self.max_fixers = max_fixers or config.MAX_FIXERS_PER_ROUND
        self.floor = config.FIXER_SCORE_FLOOR if floor is None else floor
        self.threshold = threshold

    def needs_refinement(self, consensus: ConsensusResult) -> bool:
        return consensus.overall_score < self.threshold

    async def run(
        self,
        draft: Draft,
        consensus: ConsensusResult,
        subject: str = "",
        on_round_started: Optional[RoundStarted] = None,
        on_round_completed: Optional[RoundCompleted] = None,
    ) -> RefinementOutcome:
        if not self.needs_refinement(consensus):
            return RefinementOutcome(RefinementState.NOT_NEEDED, draft, consensus)

        best_draft, best = draft, consensus
        attempts: List[RefinementAttempt] = []
        state = RefinementState.EXHAUSTED

        for number in range(1, self.max_attempts + 1):
            start_time = time.monotonic()
            dimensions = select_fixers(best, self.floor, self.max_fixers)

            if on_round_started:
                await on_round_started(number, dimensions)

            if not dimensions:
                attempt = self._attempt(number, dimensions, (), (), best, best, start_time)
                attempts.append(attempt)
                if on_round_completed:
                    await on_round_completed(attempt)
                state = RefinementState.STALLED
                break

            results = await self.fixers.run(best_draft, best, dimensions)
            reconciled = self.reconciler.reconcile(best_draft, results)

            if not reconciled.applied:
                attempt = self._attempt(
                    number, dimensions, reconciled.applied, reconciled.skipped, best, best, start_time
                )
                attempts.append(attempt)
                if on_round_completed:
                    await on_round_completed(attempt)
                state = RefinementState.STALLED
                break

            rescored = await self.scorer.score(reconciled.draft, subject)
            attempt = self._attempt(
                number,
                dimensions,
                reconciled.applied,
                reconciled.skipped,
                best,
                rescored,
                start_time,
            )
            attempts.append(attempt)
            if on_round_completed:
                await on_round_completed(attempt)

            refinement_logger.info(
                f"Refinement round {number} complete",
                before=attempt.score_before,
                after=attempt.score_after,
                applied=attempt.edits_applied,
            )

            # Ties keep the earlier draft.
            if rescored.overall_score > best.overall_score:
                best_draft, best = reconciled.draft, rescored

            if best.overall_score >= self.threshold:
                return RefinementOutcome(
                    RefinementState.CONVERGED, best_draft, best, tuple(attempts)
                )

        reason = warning_reason(best, len(attempts), self.floor)
        refinement_logger.warning(reason, state=state.value)
        return RefinementOutcome(state, best_draft, best, tuple(attempts), warning_reason=reason)

    def _attempt(
        self,
        number: int,
        dimensions: Sequence[Dimension],
        applied: Sequence[AppliedEdit],
        skipped: Sequence[SkippedEdit],
        before: ConsensusResult,
        after: ConsensusResult,
        start_time: float,
    ) -> RefinementAttempt:
        return RefinementAttempt(
            attempt_number=number,
            fixers_deployed=tuple(dimensions),
            edits_applied=len(applied),
            edits_skipped=len(skipped),
            score_before=before.overall_score,
            score_after=after.overall_score,
            dimension_changes={
                d.value: (before.dimension_scores[d], after.dimension_scores[d])
                for d in dimensions
            },
            latency_ms=int((time.monotonic() - start_time) * 1000),
            skipped=tuple(skipped),
        )
