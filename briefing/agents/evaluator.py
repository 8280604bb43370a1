"""
EvaluatorAgent: scores a draft from one persona's perspective.

The persona decides which dimensions are scored. The response must
contain exactly one score for each of them; a missing or unrecognised
dimension is a validation error, never a silent default.
"""

import time
from typing import Any, Dict, Iterable, Sequence

from briefing.agents.base import BaseAgent
from briefing.agents.personas import EvaluatorPersona, EvaluatorRole
from briefing.config import config
from briefing.exceptions import AgentOutputError, DimensionScoreError
from briefing.models.dimensions import (
    DIMENSION_GUIDELINES,
    DIMENSION_WEIGHTS,
    Dimension,
    SUPPORTED_SCALES,
    normalize_score,
)
from briefing.models.investigation import Draft
from briefing.models.scoring import EvaluatorVerdict
from briefing.utils.logging import scoring_logger


def dimension_guidelines_text(dimensions: Iterable[Dimension]) -> str:
    blocks = []
    for dimension in dimensions:
        guide = DIMENSION_GUIDELINES[dimension]
        blocks.append(
            f"### {dimension.value} (weight: {DIMENSION_WEIGHTS[dimension]}%)\n"
            f"{guide['description']}\n\n"
            f"Scoring guidelines:\n{guide['rubric']}"
        )
    return "\n\n".join(blocks)


class EvaluatorAgent(BaseAgent):
    """Runs a single persona against a draft and returns its verdict."""

    AGENT_NAME = "evaluator"
    DEFAULT_TEMPERATURE = 0.0  # Deterministic for consistent evaluation

    @classmethod
    def default_model(cls) -> str:
        return config.EVALUATOR_MODEL

    async def evaluate(
        self,
        draft: Draft,
        persona: EvaluatorPersona,
        subject: str = "",
        disputed: Sequence[Dimension] = (),
        panel: Sequence[EvaluatorVerdict] = (),
    ) -> EvaluatorVerdict:
        """
        Score ``draft`` as ``persona``.

        Args:
            draft: The brief to score
            persona: Persona whose dimensions are scored
            subject: The question the brief answers
            disputed: Dimensions the primary panel disagreed on (Arbiter only)
            panel: Primary verdicts, shown to the Arbiter

        Raises:
            ServiceUnavailableError: The model could not be reached
            AgentOutputError / DimensionScoreError: The response was malformed
        """
        start_time = time.time()
        agent_name = f"evaluator:{persona.role.value}"
        prompt = self._build_prompt(draft, persona, subject, disputed, panel)

        data = await self._complete_json(prompt, system=None, agent_name=agent_name)
        verdict = self.parse_verdict(data, persona)

        scoring_logger.debug(
            f"{persona.name} scored draft",
            seconds=round(time.time() - start_time, 2),
            scores={d.value: s for d, s in verdict.scores.items()},
        )
        return verdict

    def _build_prompt(
        self,
        draft: Draft,
        persona: EvaluatorPersona,
        subject: str,
        disputed: Sequence[Dimension],
        panel: Sequence[EvaluatorVerdict],
    ) -> str:
        dimensions = persona.ordered_dimensions()
        names = ", ".join(d.value for d in dimensions)
        role_prompt = persona.prompt_template.replace("{dimensions}", names)

        dispute_block = ""
        if persona.role == EvaluatorRole.ARBITER and disputed:
            lines = [f"Disputed dimensions: {', '.join(d.value for d in disputed)}", ""]
            for verdict in panel:
                for dimension in disputed:
                    if dimension in verdict.scores:
                        lines.append(
                            f"- {verdict.role} gave {dimension.value} "
                            f"{verdict.scores[dimension]:.1f}: {verdict.critiques.get(dimension, '')}"
                        )
            dispute_block = "\n## Panel disagreement\n" + "\n".join(lines) + "\n"

        example_dimension = dimensions[0].value
        return f"""{role_prompt}

## Question
{subject or draft.title}

## Brief to evaluate
{draft.render()}
{dispute_block}
## Dimensions you score
{dimension_guidelines_text(dimensions)}

## Required output
Return ONLY valid JSON with this exact structure:
{{
  "scale": 10,
  "dimensions": {{
    "{example_dimension}": {{"score": 7.5, "critique": "Specific reasoning quoting the brief"}}
  }},
  "overall_critique": "A short overall assessment from your perspective",
  "issues": [
    {{"dimension": "{example_dimension}", "severity": "high", "description": "...", "quote": "...", "suggested_fix": "..."}}
  ],
  "confidence": 0.8
}}

Include exactly these keys under "dimensions": {names}"""

    def parse_verdict(self, data: Dict[str, Any], persona: EvaluatorPersona) -> EvaluatorVerdict:
        """
        Validate a parsed response against the persona's dimension set.

        Accepts "dimensions" either as an object keyed by dimension or as a
        list of {"dimension", "score", "critique"} entries.
        """
        agent_name = f"evaluator:{persona.role.value}"
        scale = data.get("scale", 10)
        if scale not in SUPPORTED_SCALES:
            raise DimensionScoreError(f"{persona.name} used unsupported scale {scale!r}")

        raw = data.get("dimensions")
        if isinstance(raw, list):
            entries = {}
            for item in raw:
                if not isinstance(item, dict) or "dimension" not in item:
                    raise AgentOutputError(agent_name, "dimension entry without a name")
                entries[item["dimension"]] = item
            raw = entries
        if not isinstance(raw, dict):
            raise AgentOutputError(agent_name, "missing 'dimensions' object")

        scores: Dict[Dimension, float] = {}
        critiques: Dict[Dimension, str] = {}
        for key, entry in raw.items():
            dimension = Dimension.parse(key)
            if dimension not in persona.dimensions:
                # Outside this persona's remit; only assigned dimensions count.
                continue
            if isinstance(entry, dict):
                if "score" not in entry:
                    raise DimensionScoreError(f"{persona.name} gave no score for {dimension.value}")
                value = entry["score"]
                critique = entry.get("critique") or entry.get("reasoning") or ""
            else:
                value, critique = entry, ""
            scores[dimension] = normalize_score(value, scale)
            critiques[dimension] = str(critique)

        missing = [d.value for d in persona.ordered_dimensions() if d not in scores]
        if missing:
            raise DimensionScoreError(
                f"{persona.name} did not score: {', '.join(missing)}"
            )

        confidence = data.get("confidence", 0.5)
        try:
            confidence = min(1.0, max(0.0, float(confidence)))
        except (TypeError, ValueError):
            confidence = 0.5

        issues = tuple(i for i in data.get("issues", []) or [] if isinstance(i, dict))

        return EvaluatorVerdict(
            role=persona.role.value,
            scores={d: scores[d] for d in persona.ordered_dimensions()},
            critiques={d: critiques[d] for d in persona.ordered_dimensions()},
            critique=str(data.get("overall_critique") or data.get("critique") or ""),
            issues=issues,
            confidence=confidence,
        )
