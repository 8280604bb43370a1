"""Edits, fixer results, and the refinement history they produce."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, Optional, Tuple

from briefing.exceptions import ValidationError
from briefing.models.dimensions import Dimension
from briefing.models.investigation import Draft
from briefing.models.scoring import ConsensusResult


class EditPriority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def weight(self) -> int:
        return PRIORITY_WEIGHTS[self]


PRIORITY_WEIGHTS: Dict[EditPriority, int] = {
    EditPriority.CRITICAL: 4,
    EditPriority.HIGH: 3,
    EditPriority.MEDIUM: 2,
    EditPriority.LOW: 1,
}


@dataclass(frozen=True)
class SuggestedEdit:
    """A single proposed replacement inside one section of a draft."""
    section: str
    original_text: str
    proposed_text: str
    rationale: str
    priority: EditPriority = EditPriority.MEDIUM

    def __post_init__(self):
        for name in ("section", "original_text", "rationale"):
            if not str(getattr(self, name)).strip():
                raise ValidationError(f"suggested edit has an empty {name}")
        if not isinstance(self.priority, EditPriority):
            try:
                object.__setattr__(self, "priority", EditPriority(self.priority))
            except ValueError:
                raise ValidationError(f"unknown edit priority: {self.priority!r}") from None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "section": self.section,
            "original_text": self.original_text,
            "proposed_text": self.proposed_text,
            "rationale": self.rationale,
            "priority": self.priority.value,
        }


@dataclass(frozen=True)
class FixerResult:
    """Ordered edits from one fixer for its dimension."""
    dimension: Dimension
    edits: Tuple[SuggestedEdit, ...]
    confidence: float
    latency_ms: int = 0

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValidationError(f"fixer confidence {self.confidence!r} is outside [0, 1]")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dimension": self.dimension.value,
            "edits": [e.to_dict() for e in self.edits],
            "confidence": self.confidence,
            "latency_ms": self.latency_ms,
        }


@dataclass(frozen=True)
class SkippedEdit:
    edit: SuggestedEdit
    reason: str
    dimension: Optional[Dimension] = None

    def __post_init__(self):
        if not self.reason:
            raise ValidationError("skipped edit requires a reason")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "edit": self.edit.to_dict(),
            "reason": self.reason,
            "dimension": self.dimension.value if self.dimension else None,
        }


@dataclass(frozen=True)
class AppliedEdit:
    edit: SuggestedEdit
    dimension: Dimension
    agreement: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "edit": self.edit.to_dict(),
            "dimension": self.dimension.value,
            "agreement": self.agreement,
        }


@dataclass(frozen=True)
class ReconciliationResult:
    draft: Draft
    applied: Tuple[AppliedEdit, ...]
    skipped: Tuple[SkippedEdit, ...]

    @property
    def total(self) -> int:
        return len(self.applied) + len(self.skipped)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "applied": [a.to_dict() for a in self.applied],
            "skipped": [s.to_dict() for s in self.skipped],
        }


@dataclass(frozen=True)
class RefinementAttempt:
    """One round of the refinement loop."""
    attempt_number: int
    fixers_deployed: Tuple[Dimension, ...]
    edits_applied: int
    edits_skipped: int
    score_before: float
    score_after: float
    dimension_changes: Dict[str, Tuple[float, float]] = field(default_factory=dict)
    latency_ms: int = 0
    skipped: Tuple[SkippedEdit, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempt_number": self.attempt_number,
            "fixers_deployed": [d.value for d in self.fixers_deployed],
            "edits_applied": self.edits_applied,
            "edits_skipped": self.edits_skipped,
            "score_before": self.score_before,
            "score_after": self.score_after,
            "dimension_changes": {
                k: {"before": before, "after": after}
                for k, (before, after) in self.dimension_changes.items()
            },
            "latency_ms": self.latency_ms,
            "skipped": [s.to_dict() for s in self.skipped],
        }


class RefinementState(str, Enum):
    NOT_NEEDED = "not_needed"
    CONVERGED = "converged"
    EXHAUSTED = "exhausted"
    STALLED = "stalled"


@dataclass(frozen=True)
class RefinementOutcome:
    state: RefinementState
    draft: Draft
    consensus: ConsensusResult
    attempts: Tuple[RefinementAttempt, ...] = ()
    warning_reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state in (RefinementState.NOT_NEEDED, RefinementState.CONVERGED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "final_score": self.consensus.overall_score,
            "attempts": [a.to_dict() for a in self.attempts],
            "warning_reason": self.warning_reason,
        }
