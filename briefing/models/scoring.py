"""Results produced by evaluator personas and the consensus scorer."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Tuple

from briefing.models.dimensions import Dimension, DimensionScores


@dataclass(frozen=True)
class EvaluatorVerdict:
    """One persona's scores for the dimensions it is responsible for."""
    role: str
    scores: Mapping[Dimension, float]
    critiques: Mapping[Dimension, str]
    critique: str
    issues: Tuple[Dict[str, Any], ...] = ()
    confidence: float = 0.5

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role,
            "scores": {d.value: s for d, s in self.scores.items()},
            "critiques": {d.value: c for d, c in self.critiques.items()},
            "critique": self.critique,
            "issues": list(self.issues),
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class ConsensusResult:
    """
    Outcome of one scoring pass.

    Immutable: the next pass produces a new ConsensusResult.
    """
    overall_score: float
    dimension_scores: DimensionScores
    dimension_critiques: Mapping[Dimension, str]
    critique: str
    arbiter_invoked: bool
    disputed_dimensions: Tuple[Dimension, ...] = ()
    consensus_method: str = "median"
    verdicts: Tuple[EvaluatorVerdict, ...] = field(default=(), compare=False)
    # Merged and ranked across the panel, highest priority first.
    priority_issues: Tuple[Dict[str, Any], ...] = field(default=(), compare=False)

    @property
    def has_disagreement(self) -> bool:
        return bool(self.disputed_dimensions)

    def issues_for(self, dimension: Dimension) -> List[Dict[str, Any]]:
        return [i for i in self.priority_issues if i.get("dimension") == dimension.value]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_score": self.overall_score,
            "dimension_scores": self.dimension_scores.to_dict(),
            "dimension_critiques": {d.value: c for d, c in self.dimension_critiques.items()},
            "critique": self.critique,
            "arbiter_invoked": self.arbiter_invoked,
            "disputed_dimensions": [d.value for d in self.disputed_dimensions],
            "consensus_method": self.consensus_method,
            "verdicts": [v.to_dict() for v in self.verdicts],
            "priority_issues": list(self.priority_issues),
        }
