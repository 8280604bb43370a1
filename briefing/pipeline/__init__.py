"""
Brief generation pipeline.

- graph: LangGraph workflow, research → ... → clarity_scoring → [refinement]
- orchestrator: runs the graph for one investigation and owns its EventBus
- refinement: fix / reconcile / rescore loop
- gates: quality tiers and the credit gate
- service: credit check, deduction, run and refund, end to end
"""

from briefing.pipeline.events import EventBus, Subscription
from briefing.pipeline.refinement import RefinementLoop
from briefing.pipeline.graph import BriefState, PipelineAgents, RunContext, create_brief_graph
from briefing.pipeline.orchestrator import BriefResult, StageOrchestrator
from briefing.pipeline.gates import (
    CreditGate,
    CreditReservation,
    QualityGateResult,
    QualityTier,
    evaluate_quality,
)
from briefing.pipeline.service import BriefGenerationService, GenerationOutcome, OutcomeStatus

__all__ = [
    "EventBus",
    "Subscription",
    "RefinementLoop",
    "BriefState",
    "PipelineAgents",
    "RunContext",
    "create_brief_graph",
    "BriefResult",
    "StageOrchestrator",
    "CreditGate",
    "CreditReservation",
    "QualityGateResult",
    "QualityTier",
    "evaluate_quality",
    "BriefGenerationService",
    "GenerationOutcome",
    "OutcomeStatus",
]
