"""
Fixer agents: one per clarity dimension.

Each fixer reads the draft, the dimension's score and the panel's
critique, and proposes up to five targeted text replacements. Fixers
never edit the draft themselves; EditReconciler applies their edits.

Flow for a refinement round:
  ConsensusResult → select_fixers → FixerOrchestrator (parallel) → EditReconciler
"""

import asyncio
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence, Type

from briefing.agents.base import BaseAgent
from briefing.agents.invoker import AgentInvoker
from briefing.config import config
from briefing.exceptions import AgentOutputError
from briefing.models.dimensions import ALL_DIMENSIONS, DIMENSION_WEIGHTS, Dimension
from briefing.models.investigation import Draft
from briefing.models.refinement import EditPriority, FixerResult, SuggestedEdit
from briefing.models.scoring import ConsensusResult
from briefing.utils.logging import refinement_logger


MAX_EDITS_PER_FIXER = 5


def format_issues(issues: Sequence[Dict[str, Any]]) -> str:
    """Render ranked panel issues as prompt bullet points."""
    if not issues:
        return "None recorded for this dimension."
    lines = []
    for issue in issues:
        severity = issue.get("severity", "medium")
        line = f"- [{severity}, raised by {issue.get('agreed_by', 1)}] {issue['description']}"
        if issue.get("quote"):
            line += f'\n  Quote: "{issue["quote"]}"'
        if issue.get("suggested_fix"):
            line += f"\n  Suggested fix: {issue['suggested_fix']}"
        lines.append(line)
    return "\n".join(lines)


class BaseFixer(BaseAgent):
    """
    Base class for dimension fixers.

    Subclasses set DIMENSION, DESCRIPTION and FOCUS (the checklist shown
    to the model).
    """

    DIMENSION: Dimension
    DESCRIPTION = ""
    FOCUS: Sequence[str] = ()
    DEFAULT_TEMPERATURE = 0.2

    @classmethod
    def default_model(cls) -> str:
        return config.FIXER_MODEL

    @property
    def agent_name(self) -> str:
        return f"fixer:{self.DIMENSION.value}"

    def system_prompt(self) -> str:
        return f"""You are a specialized editor focused on {self.DESCRIPTION}.
Your task is to analyze a policy brief and suggest targeted edits to improve it.

You MUST respond with valid JSON only, no additional text.

Response format:
{{
  "suggested_edits": [
    {{
      "section": "Exact name of the section being edited",
      "original_text": "The exact text to change, copied verbatim from that section",
      "proposed_text": "Your replacement text",
      "rationale": "Why this edit improves the brief",
      "priority": "critical|high|medium|low"
    }}
  ],
  "confidence": 0.0-1.0
}}

Guidelines:
- Only address {self.DIMENSION.value}
- Keep edits small and targeted; never rewrite a whole section
- critical = major flaw, high = significant improvement, medium = helpful, low = polish
- original_text must match the brief exactly so it can be replaced automatically
- Suggest at most {MAX_EDITS_PER_FIXER} edits"""

    def build_prompt(
        self,
        draft: Draft,
        score: float,
        critique: str,
        issues: Sequence[Dict[str, Any]] = (),
    ) -> str:
        checklist = "\n".join(f"- {item}" for item in self.FOCUS)
        sections = ", ".join(draft.section_names())
        return f"""Analyze this brief for {self.DIMENSION.value} problems. The current score for this dimension is {score:.1f}/10.

{f'Evaluator critique: "{critique}"' if critique else ""}

## Sections
{sections}

## Brief content
{draft.render()}

## Issues the evaluators raised
{format_issues(issues)}

## What to look for
{checklist}

Focus on the few changes that would raise this dimension's score the most."""

    async def suggest_edits(
        self,
        draft: Draft,
        score: float,
        critique: str = "",
        issues: Sequence[Dict[str, Any]] = (),
    ) -> FixerResult:
        """
        Ask the model for edits.

        Raises:
            ServiceUnavailableError: The model could not be reached
            AgentOutputError: The response was malformed
        """
        start_time = time.time()
        refinement_logger.debug(
            f"{self.agent_name} analysing draft",
            dimension_score=score,
        )
        data = await self._complete_json(
            self.build_prompt(draft, score, critique, issues),
            system=self.system_prompt(),
            agent_name=self.agent_name,
        )
        edits, confidence = self.parse_response(data)
        return FixerResult(
            dimension=self.DIMENSION,
            edits=tuple(edits),
            confidence=confidence,
            latency_ms=int((time.time() - start_time) * 1000),
        )

    def parse_response(self, data: Dict[str, Any]) -> tuple[List[SuggestedEdit], float]:
        raw_edits = data.get("suggested_edits", data.get("suggestedEdits"))
        if not isinstance(raw_edits, list):
            raise AgentOutputError(self.agent_name, "missing 'suggested_edits' list")

        edits = []
        for index, raw in enumerate(raw_edits[:MAX_EDITS_PER_FIXER]):
            if not isinstance(raw, dict):
                raise AgentOutputError(self.agent_name, f"edit {index} is not an object")
            section = raw.get("section")
            original = raw.get("original_text", raw.get("originalText"))
            proposed = raw.get("proposed_text", raw.get("suggestedText"))
            rationale = raw.get("rationale")
            if not section or not original or proposed is None or not rationale:
                raise AgentOutputError(self.agent_name, f"edit {index} is missing required fields")

            try:
                priority = EditPriority(str(raw.get("priority", "medium")).lower())
            except ValueError:
                priority = EditPriority.MEDIUM

            edits.append(SuggestedEdit(
                section=str(section),
                original_text=str(original),
                proposed_text=str(proposed),
                rationale=str(rationale),
                priority=priority,
            ))

        try:
            confidence = float(data.get("confidence", 0.5))
        except (TypeError, ValueError):
            confidence = 0.5
        return edits, min(1.0, max(0.0, confidence))


class FirstPrinciplesFixer(BaseFixer):
    DIMENSION = Dimension.FIRST_PRINCIPLES_COHERENCE
    DESCRIPTION = "building arguments from foundational premises"
    FOCUS = (
        "Conclusions that rest on premises the brief never states",
        "Arguments that appeal to convention or authority instead of reasoning",
        "Missing links in a causal chain from premise to conclusion",
        "Circular reasoning where the conclusion is assumed",
    )


class ConsistencyFixer(BaseFixer):
    DIMENSION = Dimension.INTERNAL_CONSISTENCY
    DESCRIPTION = "removing contradictions between claims"
    FOCUS = (
        "Figures or dates that differ between sections",
        "Claims in one section that another section contradicts",
        "Terms used with different meanings in different places",
        "Conclusions that do not follow from the body of the brief",
    )


class EvidenceFixer(BaseFixer):
    DIMENSION = Dimension.EVIDENCE_QUALITY
    DESCRIPTION = "improving source usage, citations, and evidence quality"
    FOCUS = (
        "Statistics or expert opinions with no attributed source",
        "Secondary or opinion sources cited for factual claims",
        "Whole sections resting on a single source",
        "Claims that overstate what their source actually says",
    )


class AccessibilityFixer(BaseFixer):
    DIMENSION = Dimension.ACCESSIBILITY
    DESCRIPTION = "making the brief readable for a general audience"
    FOCUS = (
        "Jargon, acronyms, and technical terms used without definition",
        "Sentences long or dense enough to lose a lay reader",
        "Key conclusions buried in the middle of paragraphs",
        "Sections that assume prior knowledge of the topic",
    )


class ObjectivityFixer(BaseFixer):
    DIMENSION = Dimension.OBJECTIVITY
    DESCRIPTION = "presenting competing perspectives fairly"
    FOCUS = (
        "Major perspectives that are missing or mentioned only in passing",
        "Positions presented in a weakened or strawman form",
        "Editorialising that tells the reader what to conclude",
        "Unequal space or charity given to different positions",
    )


class FactualAccuracyFixer(BaseFixer):
    DIMENSION = Dimension.FACTUAL_ACCURACY
    DESCRIPTION = "correcting and qualifying factual claims"
    FOCUS = (
        "Statements of fact that are wrong or out of date",
        "Statistics quoted without the context needed to read them",
        "Certainty expressed about claims that are contested or estimated",
        "Precise-sounding numbers with no basis in the sources",
    )


class BiasFixer(BaseFixer):
    DIMENSION = Dimension.BIAS_DETECTION
    DESCRIPTION = "removing framing, selection, and language bias"
    FOCUS = (
        "Loaded words that carry a judgement; suggest neutral alternatives",
        "Information ordering that buries inconvenient facts",
        "Problem framing that presupposes a particular solution",
        "Attribution that lends credibility to one side only",
    )


FIXER_CLASSES: Mapping[Dimension, Type[BaseFixer]] = {
    cls.DIMENSION: cls
    for cls in (
        FirstPrinciplesFixer,
        ConsistencyFixer,
        EvidenceFixer,
        AccessibilityFixer,
        ObjectivityFixer,
        FactualAccuracyFixer,
        BiasFixer,
    )
}

assert set(FIXER_CLASSES) == set(ALL_DIMENSIONS)


def create_fixer(dimension: Dimension, **kwargs) -> BaseFixer:
    return FIXER_CLASSES[Dimension.parse(dimension)](**kwargs)


def select_fixers(
    consensus: ConsensusResult,
    floor: float,
    max_fixers: int,
) -> List[Dimension]:
    """
    Pick the dimensions to fix this round.

    Dimensions below ``floor``, lowest score first; ties go to the heavier
    weight, then declaration order.
    """
    scores = consensus.dimension_scores
    candidates = [d for d in ALL_DIMENSIONS if scores[d] < floor]
    candidates.sort(key=lambda d: (scores[d], -DIMENSION_WEIGHTS[d], ALL_DIMENSIONS.index(d)))
    return candidates[:max_fixers]


class FixerOrchestrator:
    """
    Deploys fixers for the selected dimensions concurrently.

    Args:
        llm: Shared chat model for every fixer (injectable for tests)
        invoker: Shared AgentInvoker
        fixers: Pre-built fixers keyed by dimension (overrides llm/invoker)
    """

    def __init__(
        self,
        llm: Optional[Any] = None,
        invoker: Optional[AgentInvoker] = None,
        fixers: Optional[Mapping[Dimension, Any]] = None,
    ):
        self._llm = llm
        self._invoker = invoker
        self._fixers: Dict[Dimension, Any] = dict(fixers or {})

    def fixer_for(self, dimension: Dimension):
        if dimension not in self._fixers:
            self._fixers[dimension] = create_fixer(dimension, llm=self._llm, invoker=self._invoker)
        return self._fixers[dimension]

    async def run(
        self,
        draft: Draft,
        consensus: ConsensusResult,
        dimensions: Sequence[Dimension],
    ) -> List[FixerResult]:
        """Results come back in the order of ``dimensions``."""
        if not dimensions:
            return []
        refinement_logger.info(
            "Deploying fixers",
            dimensions=[d.value for d in dimensions],
        )
        return list(await asyncio.gather(*[
            self.fixer_for(d).suggest_edits(
                draft,
                consensus.dimension_scores[d],
                consensus.dimension_critiques.get(d, ""),
                consensus.issues_for(d),
            )
            for d in dimensions
        ]))
