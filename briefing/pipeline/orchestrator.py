"""
StageOrchestrator: runs the brief graph for one investigation.

The orchestrator owns the run's EventBus. It publishes ``started`` before
the graph runs, the graph publishes stage and agent events, and the
orchestrator publishes exactly one terminal event (``complete`` or
``error``) before closing the bus. A cancelled run closes the bus with no
terminal event.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from briefing.agents.classifier import QuestionClassification
from briefing.config import config
from briefing.exceptions import PipelineError, public_message_for
from briefing.models.events import (
    AgentStatus,
    GenerationComplete,
    GenerationFailed,
    RunStarted,
)
from briefing.models.investigation import Draft, Investigation, InvestigationStatus, Source
from briefing.models.refinement import RefinementOutcome
from briefing.models.scoring import ConsensusResult
from briefing.pipeline.events import EventBus
from briefing.pipeline.graph import PipelineAgents, RunContext, create_brief_graph
from briefing.utils.logging import pipeline_logger


@dataclass
class BriefResult:
    """Everything a finished graph run produced."""
    investigation_id: str
    draft: Draft
    consensus: ConsensusResult
    sources: List[Source] = field(default_factory=list)
    summaries: Dict[str, str] = field(default_factory=dict)
    classification: Optional[QuestionClassification] = None
    research: Dict[str, Any] = field(default_factory=dict)
    refinement: Optional[RefinementOutcome] = None
    completed_steps: List[str] = field(default_factory=list)

    @property
    def overall_score(self) -> float:
        return self.consensus.overall_score

    @property
    def warning_reason(self) -> Optional[str]:
        if self.refinement is None:
            return None
        return self.refinement.warning_reason

    def to_dict(self) -> Dict[str, Any]:
        return {
            "investigation_id": self.investigation_id,
            "title": self.draft.title,
            "sections": dict(self.draft.sections),
            "word_count": self.draft.word_count(),
            "overall_score": self.overall_score,
            "consensus": self.consensus.to_dict(),
            "sources": [s.to_dict() for s in self.sources],
            "summaries": dict(self.summaries),
            "classification": self.classification.to_dict() if self.classification else None,
            "research": self.research,
            "refinement": self.refinement.to_dict() if self.refinement else None,
            "completed_steps": list(self.completed_steps),
        }


class StageOrchestrator:
    """
    Drives one pipeline run and owns its progress channel.

    Args:
        agents: The agents the graph calls
        bus: Progress channel for this run (a fresh one if omitted)
        stage_timeout: Per-agent time budget in seconds
    """

    def __init__(
        self,
        agents: PipelineAgents,
        bus: Optional[EventBus] = None,
        stage_timeout: Optional[float] = None,
        graph=None,
    ):
        self.agents = agents
        self.bus = bus or EventBus()
        self.stage_timeout = stage_timeout or config.STAGE_TIMEOUT_SECONDS
        self.graph = graph or create_brief_graph()
        self._context: Optional[RunContext] = None
        self._finished = False

    @property
    def statuses(self) -> Dict[str, AgentStatus]:
        return self._context.statuses if self._context else {}

    @property
    def current_stage(self) -> str:
        return self._context.current_stage if self._context else "initializing"

    @property
    def finished(self) -> bool:
        return self._finished

    async def run(self, investigation: Investigation) -> BriefResult:
        """
        Run the graph to completion.

        Does not publish a terminal event; call complete() or fail() after
        the quality and credit gates have decided the outcome.

        Raises:
            PipelineError: Any stage failed; carries the stage name and a
                message that is safe to show to users
        """
        context = RunContext(
            agents=self.agents,
            bus=self.bus,
            investigation=investigation,
            stage_timeout=self.stage_timeout,
        )
        self._context = context
        self.bus.publish(RunStarted(investigation_id=investigation.id))
        pipeline_logger.info(
            "Starting brief generation",
            investigation_id=investigation.id,
            subject=investigation.subject[:100],
        )

        initial_state = {
            "question": investigation.subject,
            "investigation_id": investigation.id,
            "completed_steps": [],
        }
        try:
            final_state = await self.graph.ainvoke(
                initial_state, config={"configurable": {"run": context}}
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            stage = context.current_stage
            pipeline_logger.error(
                f"Stage {stage} failed",
                investigation_id=investigation.id,
                error_type=type(exc).__name__,
            )
            if isinstance(exc, PipelineError):
                raise
            raise PipelineError(stage, public_message_for(exc), cause=exc) from exc

        result = BriefResult(
            investigation_id=investigation.id,
            draft=final_state["draft"],
            consensus=final_state["consensus"],
            sources=list(final_state.get("sources", [])),
            summaries=dict(final_state.get("summaries", {})),
            classification=final_state.get("classification"),
            research=final_state.get("research", {}),
            refinement=final_state.get("refinement"),
            completed_steps=list(final_state.get("completed_steps", [])),
        )
        pipeline_logger.info(
            "Brief generation finished",
            investigation_id=investigation.id,
            score=result.overall_score,
            steps=len(result.completed_steps),
        )
        return result

    def complete(
        self,
        investigation: Investigation,
        result: BriefResult,
        refunded: bool,
    ) -> bool:
        """
        Mark the investigation complete and publish the ``complete`` event.

        Returns False if the run already finished.
        """
        if self._finished:
            return False
        investigation.draft = result.draft
        investigation.overall_score = result.overall_score
        investigation.refunded = refunded
        investigation.warning_reason = result.warning_reason
        investigation.transition_to(InvestigationStatus.COMPLETE)
        self.bus.publish(GenerationComplete(
            investigation_id=investigation.id,
            score=result.overall_score,
            refunded=refunded,
            warning_reason=result.warning_reason,
        ))
        self._finish()
        return True

    def fail(
        self,
        investigation: Optional[Investigation],
        message: str,
        refunded: bool,
    ) -> bool:
        """
        Mark the investigation failed and publish the ``error`` event.

        ``message`` must already be sanitized. Returns False if the run
        already finished.
        """
        if self._finished:
            return False
        investigation_id = None
        if investigation is not None:
            investigation_id = investigation.id
            investigation.refunded = refunded
            if not investigation.is_terminal:
                investigation.transition_to(InvestigationStatus.FAILED)
        self.bus.publish(GenerationFailed(
            message=message,
            investigation_id=investigation_id,
            refunded=refunded,
        ))
        self._finish()
        return True

    def cancel(self) -> None:
        """Close the bus without a terminal event."""
        if self._finished:
            return
        pipeline_logger.warning("Generation cancelled", stage=self.current_stage)
        self._finish()

    def _finish(self) -> None:
        self._finished = True
        self.bus.close()
