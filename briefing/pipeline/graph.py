"""
LangGraph workflow for brief generation.

This module defines the state machine that takes a question to a scored
(and, if needed, refined) brief.

FLOW:
1. research: web sources with lean and credibility
2. classification: domain and specialist persona
3. structure ∥ narrative: written concurrently; the graph waits for both
4. reconciliation: narrative aligned with structure → Draft
5. summary: four reading levels
6. clarity_scoring: consensus panel
7. refinement: only when the score is below the quality threshold

Per-run collaborators (agents, event bus, timeouts) are not graph state;
they travel in config["configurable"]["run"] as a RunContext.
"""

import asyncio
import operator
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Annotated, Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypedDict, TypeVar

from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, START, StateGraph

from briefing.agents.classifier import QuestionClassification, QuestionClassifier
from briefing.agents.consensus import ConsensusScorer
from briefing.agents.drafting import (
    DraftReconciler,
    NarrativeAgent,
    NarrativeResult,
    StructureAgent,
    StructureResult,
)
from briefing.agents.evaluator import EvaluatorAgent
from briefing.agents.fixers import FixerOrchestrator
from briefing.agents.invoker import AgentInvoker
from briefing.agents.research import ResearchAgent
from briefing.agents.summary import READING_LEVELS, SummaryAgent
from briefing.config import config as app_config
from briefing.exceptions import StageTimeoutError
from briefing.models.dimensions import Dimension
from briefing.models.events import (
    AgentCompleted,
    AgentStarted,
    AgentState,
    AgentStatus,
    StageChanged,
)
from briefing.models.investigation import Draft, Investigation, InvestigationStatus, Source
from briefing.models.refinement import RefinementAttempt, RefinementOutcome
from briefing.models.scoring import ConsensusResult
from briefing.pipeline.events import EventBus
from briefing.pipeline.refinement import RefinementLoop
from briefing.utils.logging import pipeline_logger


T = TypeVar("T")


# ===== State =====

class BriefState(TypedDict, total=False):
    question: str
    investigation_id: str
    sources: List[Source]
    research: Dict[str, Any]
    classification: QuestionClassification
    structure: StructureResult
    narrative: NarrativeResult
    draft: Draft
    reconciliation_changes: List[str]
    summaries: Dict[str, str]
    consensus: ConsensusResult
    refinement: RefinementOutcome
    completed_steps: Annotated[List[str], operator.add]


# ===== Per-run collaborators =====

@dataclass
class PipelineAgents:
    """Every agent a run needs. Build with create() to share one model and invoker."""
    research: ResearchAgent
    classifier: QuestionClassifier
    structure: StructureAgent
    narrative: NarrativeAgent
    reconciler: DraftReconciler
    summary: SummaryAgent
    scorer: ConsensusScorer
    refinement: RefinementLoop

    @classmethod
    def create(
        cls,
        llm: Optional[Any] = None,
        invoker: Optional[AgentInvoker] = None,
        search: Optional[Callable] = None,
    ) -> "PipelineAgents":
        invoker = invoker or AgentInvoker()
        shared = {"llm": llm, "invoker": invoker}
        scorer = ConsensusScorer(evaluator=EvaluatorAgent(**shared))
        return cls(
            research=ResearchAgent(search=search, **shared),
            classifier=QuestionClassifier(**shared),
            structure=StructureAgent(**shared),
            narrative=NarrativeAgent(**shared),
            reconciler=DraftReconciler(**shared),
            summary=SummaryAgent(**shared),
            scorer=scorer,
            refinement=RefinementLoop(scorer=scorer, fixers=FixerOrchestrator(**shared)),
        )


@dataclass
class RunContext:
    agents: PipelineAgents
    bus: EventBus
    investigation: Investigation
    stage_timeout: float = field(default_factory=lambda: app_config.STAGE_TIMEOUT_SECONDS)
    statuses: Dict[str, AgentStatus] = field(default_factory=dict)
    current_stage: str = "initializing"

    def enter_stage(self, stage: str, active_agents: Sequence[str] = ()) -> None:
        self.current_stage = stage
        self.bus.publish(StageChanged(stage=stage, active_agents=tuple(active_agents)))
        pipeline_logger.info(f"Stage: {stage}", investigation_id=self.investigation.id)

    def advance_status(self, target: InvestigationStatus) -> None:
        if self.investigation.status != target:
            self.investigation.transition_to(target)

    async def run_agent(
        self,
        stage: str,
        agent: str,
        work: Callable[[], Awaitable[T]],
        timeout: Optional[float] = None,
    ) -> T:
        """
        Run one named agent under the stage timeout, emitting started/completed.

        Raises:
            StageTimeoutError: The agent exceeded the stage timeout
        """
        status = AgentStatus(
            name=agent,
            stage=stage,
            state=AgentState.RUNNING,
            started_at=datetime.now(timezone.utc).isoformat(),
        )
        self.statuses[agent] = status
        self.bus.publish(AgentStarted(agent=agent, stage=stage))
        limit = timeout or self.stage_timeout
        start = time.monotonic()
        try:
            result = await asyncio.wait_for(work(), timeout=limit)
        except asyncio.TimeoutError:
            status.state = AgentState.FAILED
            raise StageTimeoutError(stage, limit) from None
        except Exception:
            status.state = AgentState.FAILED
            raise
        duration_ms = int((time.monotonic() - start) * 1000)
        status.state = AgentState.COMPLETED
        status.completed_at = datetime.now(timezone.utc).isoformat()
        status.duration_ms = duration_ms
        self.bus.publish(AgentCompleted(agent=agent, stage=stage, duration_ms=duration_ms))
        return result


def get_run(config: RunnableConfig) -> RunContext:
    return config["configurable"]["run"]


# ===== Nodes =====

async def research_node(state: BriefState, config: RunnableConfig) -> dict:
    run = get_run(config)
    run.advance_status(InvestigationStatus.GENERATING)
    run.enter_stage("research", ["research"])
    result = await run.run_agent(
        "research", "research", lambda: run.agents.research.research(state["question"])
    )
    return {
        "sources": result.sources,
        "research": result.to_dict(),
        "completed_steps": ["research"],
    }


async def classification_node(state: BriefState, config: RunnableConfig) -> dict:
    run = get_run(config)
    run.enter_stage("classification", ["question_classifier"])
    classification = await run.run_agent(
        "classification",
        "question_classifier",
        lambda: run.agents.classifier.classify(state["question"]),
    )
    # Both drafting agents start from here.
    run.enter_stage("drafting", ["structure", "narrative"])
    return {"classification": classification, "completed_steps": ["classification"]}


async def structure_node(state: BriefState, config: RunnableConfig) -> dict:
    run = get_run(config)
    structure = await run.run_agent(
        "drafting",
        "structure",
        lambda: run.agents.structure.build(
            state["question"], state["classification"], state.get("sources", [])
        ),
    )
    return {"structure": structure, "completed_steps": ["structure"]}


async def narrative_node(state: BriefState, config: RunnableConfig) -> dict:
    run = get_run(config)
    narrative = await run.run_agent(
        "drafting",
        "narrative",
        lambda: run.agents.narrative.write(
            state["question"], state["classification"], state.get("sources", [])
        ),
    )
    return {"narrative": narrative, "completed_steps": ["narrative"]}


async def reconciliation_node(state: BriefState, config: RunnableConfig) -> dict:
    run = get_run(config)
    run.enter_stage("reconciliation", ["draft_reconciliation"])
    result = await run.run_agent(
        "reconciliation",
        "draft_reconciliation",
        lambda: run.agents.reconciler.reconcile(
            state["question"], state["structure"], state["narrative"]
        ),
    )
    return {
        "draft": result.draft,
        "reconciliation_changes": result.changes,
        "completed_steps": ["reconciliation"],
    }


async def summary_node(state: BriefState, config: RunnableConfig) -> dict:
    run = get_run(config)
    agents = [f"summary_{level}" for level in READING_LEVELS]
    run.enter_stage("summary", agents)
    summaries: Dict[str, str] = {}
    for level, agent in zip(READING_LEVELS, agents):
        summaries[level] = await run.run_agent(
            "summary",
            agent,
            lambda level=level: run.agents.summary.summarize(state["draft"], level),
        )
    return {"summaries": summaries, "completed_steps": ["summary"]}



async def clarity_scoring_node(state: BriefState, config: RunnableConfig) -> dict:
    run = get_run(config)
    run.advance_status(InvestigationStatus.SCORING)
    run.enter_stage("clarity_scoring", ["consensus_scorer"])
    consensus = await run.run_agent(
        "clarity_scoring",
        "consensus_scorer",
        lambda: run.agents.scorer.score(state["draft"], state["question"]),
    )
    return {"consensus": consensus, "completed_steps": ["clarity_scoring"]}


async def refinement_node(state: BriefState, config: RunnableConfig) -> dict:
    run = get_run(config)
    run.advance_status(InvestigationStatus.REFINING)
    run.enter_stage("refinement", ["refinement_loop"])

    round_started: Dict[int, float] = {}

    async def on_round_started(number: int, dimensions: Sequence[Dimension]) -> None:
        round_started[number] = time.monotonic()
        run.bus.publish(AgentStarted(agent=f"refinement_round_{number}", stage="refinement"))

    async def on_round_completed(attempt: RefinementAttempt) -> None:
        started = round_started.get(attempt.attempt_number, time.monotonic())
        run.bus.publish(AgentCompleted(
            agent=f"refinement_round_{attempt.attempt_number}",
            stage="refinement",
            duration_ms=int((time.monotonic() - started) * 1000),
        ))

    loop = run.agents.refinement
    outcome = await run.run_agent(
        "refinement",
        "refinement_loop",
        lambda: loop.run(
            state["draft"],
            state["consensus"],
            state["question"],
            on_round_started=on_round_started,
            on_round_completed=on_round_completed,
        ),
        # Each round rescores, so the loop gets one stage budget per round.
        timeout=run.stage_timeout * loop.max_attempts,
    )
    return {
        "draft": outcome.draft,
        "consensus": outcome.consensus,
        "refinement": outcome,
        "completed_steps": ["refinement"],
    }


# ===== Routing =====

def route_after_scoring(state: BriefState, config: RunnableConfig) -> str:
    run = get_run(config)
    if run.agents.refinement.needs_refinement(state["consensus"]):
        return "refinement"
    return END


# ===== Graph =====

def create_brief_graph():
    """
    Build and compile the brief workflow.

    structure and narrative fan out from classification and join at
    reconciliation, which runs only once both have finished.
    """
    workflow = StateGraph(BriefState)

    workflow.add_node("research", research_node)
    workflow.add_node("classification", classification_node)
    workflow.add_node("structure", structure_node)
    workflow.add_node("narrative", narrative_node)
    workflow.add_node("reconciliation", reconciliation_node)
    workflow.add_node("summary", summary_node)
    workflow.add_node("clarity_scoring", clarity_scoring_node)
    workflow.add_node("refinement", refinement_node)

    workflow.add_edge(START, "research")
    workflow.add_edge("research", "classification")
    workflow.add_edge("classification", "structure")
    workflow.add_edge("classification", "narrative")
    workflow.add_edge(["structure", "narrative"], "reconciliation")
    workflow.add_edge("reconciliation", "summary")
    workflow.add_edge("summary", "clarity_scoring")
    workflow.add_conditional_edges(
        "clarity_scoring",
        route_after_scoring,
        {"refinement": "refinement", END: END},
    )
    workflow.add_edge("refinement", END)

    return workflow.compile()
