"""Data model for brief generation."""

from briefing.models.dimensions import (
    QUALITY_THRESHOLD,
    Dimension,
    ALL_DIMENSIONS,
    DIMENSION_WEIGHTS,
    DIMENSION_GUIDELINES,
    DimensionScores,
    normalize_score,
    round_score,
)
from briefing.models.investigation import (
    Draft,
    Investigation,
    InvestigationStatus,
    Source,
)
from briefing.models.scoring import ConsensusResult, EvaluatorVerdict
from briefing.models.refinement import (
    EditPriority,
    SuggestedEdit,
    FixerResult,
    AppliedEdit,
    SkippedEdit,
    ReconciliationResult,
    RefinementAttempt,
    RefinementOutcome,
    RefinementState,
)
from briefing.models.events import (
    AgentState,
    AgentStatus,
    RunStarted,
    AgentStarted,
    AgentCompleted,
    StageChanged,
    GenerationComplete,
    GenerationFailed,
    GenerationEvent,
    event_from_dict,
    is_terminal,
)

__all__ = [
    "QUALITY_THRESHOLD",
    "Dimension",
    "ALL_DIMENSIONS",
    "DIMENSION_WEIGHTS",
    "DIMENSION_GUIDELINES",
    "DimensionScores",
    "normalize_score",
    "round_score",
    "Draft",
    "Investigation",
    "InvestigationStatus",
    "Source",
    "ConsensusResult",
    "EvaluatorVerdict",
    "EditPriority",
    "SuggestedEdit",
    "FixerResult",
    "AppliedEdit",
    "SkippedEdit",
    "ReconciliationResult",
    "RefinementAttempt",
    "RefinementOutcome",
    "RefinementState",
    "AgentState",
    "AgentStatus",
    "RunStarted",
    "AgentStarted",
    "AgentCompleted",
    "StageChanged",
    "GenerationComplete",
    "GenerationFailed",
    "GenerationEvent",
    "event_from_dict",
    "is_terminal",
]
