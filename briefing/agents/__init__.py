"""
Agent system for brief generation.

Every agent reaches the model through AgentInvoker (retry, backoff, jitter).

DRAFTING:
- ResearchAgent: web sources + political lean + credibility
- QuestionClassifier: domain, controversy, type, time frame → specialist persona
- StructureAgent / NarrativeAgent: written in parallel
- DraftReconciler: aligns the narrative with the structure
- SummaryAgent: child / teen / undergrad / postdoc summaries

SCORING:
- EvaluatorAgent: one persona (Skeptic, Advocate, Generalist, Arbiter)
- ConsensusScorer: three primary personas, Arbiter only on disagreement

REFINEMENT:
- Seven fixers, one per dimension, run by FixerOrchestrator
- EditReconciler: deterministic merge of one round's edits
"""

from briefing.agents.invoker import (
    AgentInvoker,
    RetryPolicy,
    InvocationStats,
    compute_delay,
    is_retryable,
)
from briefing.agents.personas import (
    EvaluatorRole,
    EvaluatorPersona,
    EVALUATOR_PERSONAS,
    get_evaluator_persona,
    get_primary_personas,
)
from briefing.agents.evaluator import EvaluatorAgent
from briefing.agents.consensus import (
    ConsensusScorer,
    ARBITER_WEIGHT,
    build_consensus,
    combine_scores,
    detect_disagreement,
    prioritize_issues,
)
from briefing.agents.fixers import (
    BaseFixer,
    FirstPrinciplesFixer,
    ConsistencyFixer,
    EvidenceFixer,
    AccessibilityFixer,
    ObjectivityFixer,
    FactualAccuracyFixer,
    BiasFixer,
    FIXER_CLASSES,
    FixerOrchestrator,
    create_fixer,
    select_fixers,
)
from briefing.agents.reconciliation import EditReconciler
from briefing.agents.research import ResearchAgent, ResearchResult, TavilySearch
from briefing.agents.classifier import QuestionClassifier, QuestionClassification
from briefing.agents.drafting import (
    StructureAgent,
    StructureResult,
    NarrativeAgent,
    NarrativeResult,
    DraftReconciler,
    assemble_draft,
)
from briefing.agents.summary import SummaryAgent, READING_LEVELS

__all__ = [
    "AgentInvoker",
    "RetryPolicy",
    "InvocationStats",
    "compute_delay",
    "is_retryable",
    "EvaluatorRole",
    "EvaluatorPersona",
    "EVALUATOR_PERSONAS",
    "get_evaluator_persona",
    "get_primary_personas",
    "EvaluatorAgent",
    "ConsensusScorer",
    "ARBITER_WEIGHT",
    "build_consensus",
    "combine_scores",
    "detect_disagreement",
    "prioritize_issues",
    "BaseFixer",
    "FirstPrinciplesFixer",
    "ConsistencyFixer",
    "EvidenceFixer",
    "AccessibilityFixer",
    "ObjectivityFixer",
    "FactualAccuracyFixer",
    "BiasFixer",
    "FIXER_CLASSES",
    "FixerOrchestrator",
    "create_fixer",
    "select_fixers",
    "EditReconciler",
    "ResearchAgent",
    "ResearchResult",
    "TavilySearch",
    "QuestionClassifier",
    "QuestionClassification",
    "StructureAgent",
    "StructureResult",
    "NarrativeAgent",
    "NarrativeResult",
    "DraftReconciler",
    "assemble_draft",
    "SummaryAgent",
    "READING_LEVELS",
]
