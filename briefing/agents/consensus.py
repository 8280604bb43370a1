"""
ConsensusScorer: turns three persona verdicts into one score.

1. The primary personas score their own dimensions (optionally in parallel).
2. A dimension scored by more than one persona is disputed when the
   spread of its scores exceeds the disagreement threshold.
3. The Arbiter is consulted exactly once per pass, and only when
   something is disputed. On a disputed dimension its score counts 1.5x
   against each primary score; undisputed dimensions keep the median of
   the primary scores.
4. The seven final scores are aggregated with the fixed weight table.
"""

import asyncio
import re
import statistics
from typing import Any, Dict, List, Optional, Sequence, Tuple

from briefing.agents.evaluator import EvaluatorAgent
from briefing.agents.personas import (
    EvaluatorRole,
    get_evaluator_persona,
    get_primary_personas,
)
from briefing.config import config
from briefing.models.dimensions import ALL_DIMENSIONS, Dimension, DimensionScores, round_score
from briefing.models.investigation import Draft
from briefing.models.scoring import ConsensusResult, EvaluatorVerdict
from briefing.utils.logging import scoring_logger


ARBITER_WEIGHT = 1.5

CRITIQUE_SEPARATOR = "\n\n---\n\n"

_SEVERITY_RANK = {"high": 3, "medium": 2, "low": 1}


def detect_disagreement(
    verdicts: Sequence[EvaluatorVerdict],
    threshold: float,
) -> Tuple[Dimension, ...]:
    """Dimensions whose primary scores spread by more than ``threshold``."""
    disputed = []
    for dimension in ALL_DIMENSIONS:
        scores = [v.scores[dimension] for v in verdicts if dimension in v.scores]
        if len(scores) > 1 and max(scores) - min(scores) > threshold:
            disputed.append(dimension)
    return tuple(disputed)


def combine_scores(
    verdicts: Sequence[EvaluatorVerdict],
    disputed: Sequence[Dimension],
    arbiter: Optional[EvaluatorVerdict] = None,
) -> DimensionScores:
    """
    Resolve one final score per dimension.

    Raises:
        ValueError: If a dimension has no primary score, or a dispute is
            passed without an arbiter verdict
    """
    if disputed and arbiter is None:
        raise ValueError("disputed dimensions require an arbiter verdict")

    final: Dict[Dimension, float] = {}
    for dimension in ALL_DIMENSIONS:
        scores = [v.scores[dimension] for v in verdicts if dimension in v.scores]
        if not scores:
            raise ValueError(f"no primary score for {dimension.value}")
        if dimension in disputed:
            arbiter_score = arbiter.scores[dimension]
            value = (sum(scores) + ARBITER_WEIGHT * arbiter_score) / (len(scores) + ARBITER_WEIGHT)
        else:
            value = statistics.median(scores)
        final[dimension] = round_score(value)
    return DimensionScores(final)


def consolidate_critique(
    verdicts: Sequence[EvaluatorVerdict],
    arbiter: Optional[EvaluatorVerdict] = None,
) -> str:
    parts = [f"**{v.role}:** {v.critique}" for v in verdicts if v.critique]
    if arbiter is not None and arbiter.critique:
        parts.append(f"**{arbiter.role} (tiebreaker):** {arbiter.critique}")
    return CRITIQUE_SEPARATOR.join(parts)


def dimension_critiques(
    verdicts: Sequence[EvaluatorVerdict],
    disputed: Sequence[Dimension],
    arbiter: Optional[EvaluatorVerdict] = None,
) -> Dict[Dimension, str]:
    """One critique string per dimension, merged across the personas that scored it."""
    merged: Dict[Dimension, str] = {}
    for dimension in ALL_DIMENSIONS:
        lines = [
            f"{v.role}: {v.critiques[dimension]}"
            for v in verdicts
            if dimension in v.critiques and v.critiques[dimension]
        ]
        if arbiter is not None and dimension in disputed and arbiter.critiques.get(dimension):
            lines.append(f"{arbiter.role}: {arbiter.critiques[dimension]}")
        merged[dimension] = "\n".join(lines)
    return merged


def _word_set(text: str) -> set:
    return set(re.findall(r"[a-z0-9]+", text.lower()))


def _similar(a: str, b: str, threshold: float = 0.6) -> bool:
    words_a, words_b = _word_set(a), _word_set(b)
    if not words_a or not words_b:
        return False
    return len(words_a & words_b) / len(words_a | words_b) > threshold


def prioritize_issues(
    verdicts: Sequence[EvaluatorVerdict],
    limit: int = 5,
) -> List[Dict[str, Any]]:
    """
    Merge near-duplicate issues across evaluators and rank them.

    Ranked by how many evaluators raised the issue, then severity, then
    whether a concrete fix was suggested.
    """
    merged: List[Dict[str, Any]] = []
    for verdict in verdicts:
        for issue in verdict.issues:
            description = str(issue.get("description", "")).strip()
            if not description:
                continue
            for existing in merged:
                if existing["dimension"] == issue.get("dimension") and _similar(
                    existing["description"], description
                ):
                    existing["agreed_by"] += 1
                    if _SEVERITY_RANK.get(issue.get("severity"), 0) > _SEVERITY_RANK.get(existing["severity"], 0):
                        existing["severity"] = issue.get("severity")
                    if not existing["suggested_fix"] and issue.get("suggested_fix"):
                        existing["suggested_fix"] = issue.get("suggested_fix")
                    break
            else:
                merged.append({
                    "dimension": issue.get("dimension"),
                    "description": description,
                    "severity": issue.get("severity", "medium"),
                    "quote": issue.get("quote"),
                    "suggested_fix": issue.get("suggested_fix") or "",
                    "agreed_by": 1,
                })

    merged.sort(key=lambda i: (
        -i["agreed_by"],
        -_SEVERITY_RANK.get(i["severity"], 0),
        0 if i["suggested_fix"] else 1,
    ))
    return merged[:limit]


def build_consensus(
    verdicts: Sequence[EvaluatorVerdict],
    threshold: float,
    arbiter: Optional[EvaluatorVerdict] = None,
) -> ConsensusResult:
    """Pure combination step: same verdicts in, same result out."""
    disputed = detect_disagreement(verdicts, threshold)
    used_arbiter = arbiter if disputed else None
    scores = combine_scores(verdicts, disputed, used_arbiter)
    all_verdicts = tuple(verdicts) + ((used_arbiter,) if used_arbiter else ())
    return ConsensusResult(
        overall_score=scores.weighted_overall(),
        dimension_scores=scores,
        dimension_critiques=dimension_critiques(verdicts, disputed, used_arbiter),
        critique=consolidate_critique(verdicts, used_arbiter),
        arbiter_invoked=used_arbiter is not None,
        disputed_dimensions=disputed,
        consensus_method="tiebreaker" if used_arbiter else "median",
        verdicts=all_verdicts,
        priority_issues=tuple(prioritize_issues(all_verdicts)),
    )


class ConsensusScorer:
    """
    Scores a draft with the evaluator panel.

    Args:
        evaluator: Agent that runs one persona (injectable for tests)
        threshold: Disagreement threshold in points
        parallel: Run the primary personas concurrently
    """

    def __init__(
        self,
        evaluator: Optional[EvaluatorAgent] = None,
        threshold: Optional[float] = None,
        parallel: Optional[bool] = None,
    ):
        self.evaluator = evaluator or EvaluatorAgent()
        self.threshold = config.DISAGREEMENT_THRESHOLD if threshold is None else threshold
        self.parallel = config.PARALLEL_EVALUATORS if parallel is None else parallel

    async def score(self, draft: Draft, subject: str = "") -> ConsensusResult:
        personas = get_primary_personas()

        if self.parallel:
            verdicts = list(await asyncio.gather(*[
                self.evaluator.evaluate(draft, persona, subject=subject)
                for persona in personas
            ]))
        else:
            verdicts = []
            for persona in personas:
                verdicts.append(await self.evaluator.evaluate(draft, persona, subject=subject))

        disputed = detect_disagreement(verdicts, self.threshold)
        arbiter = None
        if disputed:
            scoring_logger.info(
                "Panel disagreement, consulting arbiter",
                disputed=[d.value for d in disputed],
            )
            arbiter = await self.evaluator.evaluate(
                draft,
                get_evaluator_persona(EvaluatorRole.ARBITER),
                subject=subject,
                disputed=disputed,
                panel=verdicts,
            )

        result = build_consensus(verdicts, self.threshold, arbiter)
        scoring_logger.info(
            "Consensus reached",
            overall_score=result.overall_score,
            method=result.consensus_method,
        )
        return result
