"""
Shared fixtures for the brief engine tests.

Every external collaborator is replaced at the seam the code exposes:
chat models (llm=), retries (sleep=, rng=), the investigation store and
the credit ledger. Nothing here touches the network.
"""

import json
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from langchain_core.messages import AIMessage

from briefing.agents.classifier import QuestionClassification
from briefing.agents.drafting import DraftReconciliationResult, NarrativeResult, StructureResult
from briefing.agents.invoker import AgentInvoker, RetryPolicy
from briefing.agents.research import ResearchResult
from briefing.database.credits import InsufficientCreditsError
from briefing.models.dimensions import ALL_DIMENSIONS, Dimension, DimensionScores
from briefing.models.investigation import Draft, Source
from briefing.models.refinement import RefinementOutcome, RefinementState
from briefing.models.scoring import ConsensusResult, EvaluatorVerdict
from briefing.pipeline.graph import PipelineAgents
from briefing.utils.logging import get_log_buffer


# =============================================================================
# Builders
# =============================================================================

def dimension_scores(default: float = 8.0, **overrides: float) -> Dict[Dimension, float]:
    """All seven dimensions at ``default``; override by member name, lower case."""
    scores = {d: default for d in ALL_DIMENSIONS}
    for name, value in overrides.items():
        scores[Dimension[name.upper()]] = value
    return scores


def make_consensus(default: float = 8.0, **overrides: float) -> ConsensusResult:
    scores = DimensionScores(dimension_scores(default, **overrides))
    return ConsensusResult(
        overall_score=scores.weighted_overall(),
        dimension_scores=scores,
        dimension_critiques={d: f"critique for {d.value}" for d in ALL_DIMENSIONS},
        critique="panel critique",
        arbiter_invoked=False,
    )


# =============================================================================
# Fakes
# =============================================================================

class ScriptedLLM:
    """Chat model stand-in: returns queued responses in order, raising any exceptions queued."""

    def __init__(self, responses: Optional[List[Any]] = None):
        self.responses = list(responses or [])
        self.calls: List[list] = []

    async def ainvoke(self, messages):
        self.calls.append(messages)
        if not self.responses:
            raise AssertionError("ScriptedLLM ran out of responses")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        content = item if isinstance(item, str) else json.dumps(item)
        return AIMessage(content=content)


class ScriptedEvaluator:
    """
    EvaluatorAgent stand-in.

    ``scores_by_role`` maps a role name to per-dimension scores; each
    persona only reports its own dimensions, as the real agent does.
    """

    def __init__(self, scores_by_role: Dict[str, Dict[Dimension, float]]):
        self.scores_by_role = scores_by_role
        self.calls: List[str] = []
        self.disputed_seen: List[tuple] = []

    async def evaluate(self, draft, persona, subject="", disputed=(), panel=()):
        role = persona.role.value
        self.calls.append(role)
        self.disputed_seen.append(tuple(disputed))
        scores = self.scores_by_role[role]
        dimensions = persona.ordered_dimensions()
        return EvaluatorVerdict(
            role=role,
            scores={d: scores[d] for d in dimensions},
            critiques={d: f"{role} on {d.value}" for d in dimensions},
            critique=f"{role} overall",
        )

    def count(self, role: str) -> int:
        return self.calls.count(role)


class FakeInvestigationStore:
    """In-memory persistence collaborator."""

    def __init__(self):
        self.rows: Dict[str, Dict[str, Any]] = {}
        self.sources: Dict[str, list] = {}
        self.completed: List[str] = []
        self.failed: List[Dict[str, Any]] = []
        self.fail_on_complete = False

    async def create_investigation(self, subject, owner_id, kind="brief", timestamp=None):
        investigation_id = f"inv-{len(self.rows) + 1}"
        self.rows[investigation_id] = {
            "id": investigation_id,
            "subject": subject,
            "owner_id": owner_id,
            "kind": kind,
            "status": "pending",
        }
        return {"id": investigation_id}

    async def save_sources(self, investigation_id, sources):
        self.sources[investigation_id] = list(sources)
        return len(sources)

    async def mark_complete(self, investigation_id, **fields):
        if self.fail_on_complete:
            raise RuntimeError("database write failed: password=hunter2")
        self.rows[investigation_id].update(fields, status="complete")
        self.completed.append(investigation_id)
        return self.rows[investigation_id]

    async def mark_failed(self, investigation_id, *, stage, refunded):
        self.rows[investigation_id].update(status="failed", failed_stage=stage, refunded=refunded)
        self.failed.append({"id": investigation_id, "stage": stage, "refunded": refunded})
        return self.rows[investigation_id]


class FakeCreditLedger:
    """In-memory credit ledger that records every deduction and refund."""

    def __init__(self, balances: Optional[Dict[str, int]] = None):
        self.balances = dict(balances or {})
        self.deductions: List[Dict[str, Any]] = []
        self.refunds: List[Dict[str, Any]] = []
        self.refund_error: Optional[Exception] = None

    async def has_credits(self, owner_id, amount=1):
        return self.balances.get(owner_id, 0) >= amount

    async def deduct_credits(self, owner_id, amount, investigation_id, reason):
        if self.balances.get(owner_id, 0) < amount:
            raise InsufficientCreditsError(f"User {owner_id} has insufficient credits")
        self.balances[owner_id] -= amount
        self.deductions.append({"owner_id": owner_id, "amount": amount, "investigation_id": investigation_id})

    async def refund_credits(self, owner_id, amount, investigation_id, reason):
        if self.refund_error is not None:
            raise self.refund_error
        self.balances[owner_id] = self.balances.get(owner_id, 0) + amount
        self.refunds.append({
            "owner_id": owner_id,
            "amount": amount,
            "investigation_id": investigation_id,
            "reason": reason,
        })
        return self.balances[owner_id]

    def refunds_for(self, investigation_id: str) -> List[Dict[str, Any]]:
        return [r for r in self.refunds if r["investigation_id"] == investigation_id]


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def clear_log_buffer():
    get_log_buffer().clear()
    yield


@pytest.fixture
def draft() -> Draft:
    return Draft(
        title="Should cities adopt congestion pricing?",
        sections={
            "Introduction": "Congestion pricing charges drivers to enter busy areas. It is clearly the best policy.",
            "Analysis": "Stockholm cut traffic by 20 percent. Critics say the charge is regressive.",
            "Conclusion": "Cities weigh revenue against fairness.",
        },
    )


@pytest.fixture
def fast_sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def fast_invoker(fast_sleep) -> AgentInvoker:
    """Real retry logic, no real waiting."""
    return AgentInvoker(policy=RetryPolicy(max_attempts=3), sleep=fast_sleep)


@pytest.fixture
def store() -> FakeInvestigationStore:
    return FakeInvestigationStore()


@pytest.fixture
def ledger() -> FakeCreditLedger:
    return FakeCreditLedger({"owner-1": 3, "broke": 0})


def make_agents(draft: Draft, consensus: ConsensusResult, refined: Optional[ConsensusResult] = None) -> PipelineAgents:
    """
    PipelineAgents built from mocks.

    The scorer returns ``consensus``; when ``refined`` is given the
    refinement loop reports it as a converged outcome.
    """
    source = Source(url="https://www.oecd.org/transport/pricing", title="Road pricing review")

    research = MagicMock()
    research.research = AsyncMock(return_value=ResearchResult(sources=[source], average_credibility=9.0))
    classifier = MagicMock()
    classifier.classify = AsyncMock(return_value=QuestionClassification(domain="economics"))
    structure = MagicMock()
    structure.build = AsyncMock(return_value=StructureResult())
    narrative = MagicMock()
    narrative.write = AsyncMock(return_value=NarrativeResult("intro", "body", "end"))
    reconciler = MagicMock()
    reconciler.reconcile = AsyncMock(return_value=DraftReconciliationResult(draft, [], True))
    summary = MagicMock()
    summary.summarize = AsyncMock(side_effect=lambda draft, level: f"{level}: cars pay to drive downtown.")
    scorer = MagicMock()
    scorer.score = AsyncMock(return_value=consensus)

    refinement = MagicMock()
    refinement.max_attempts = 3
    refinement.needs_refinement = lambda c: c.overall_score < 6.0
    final = refined or consensus
    state = RefinementState.CONVERGED if final.overall_score >= 6.0 else RefinementState.EXHAUSTED
    refinement.run = AsyncMock(return_value=RefinementOutcome(
        state=state,
        draft=draft,
        consensus=final,
        warning_reason=None if state == RefinementState.CONVERGED else "Brief scored low",
    ))

    return PipelineAgents(
        research=research,
        classifier=classifier,
        structure=structure,
        narrative=narrative,
        reconciler=reconciler,
        summary=summary,
        scorer=scorer,
        refinement=refinement,
    )
