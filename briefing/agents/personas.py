"""
Evaluator persona registry.

Four fixed personas score briefs. Three are primary (Skeptic, Advocate,
Generalist) and each owns a subset of the seven dimensions, with some
overlap so that two personas cross-check the same dimension. The Arbiter
scores all seven and is only consulted when the primary panel disagrees.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, FrozenSet, Mapping, Tuple

from briefing.exceptions import UnknownEvaluatorRoleError
from briefing.models.dimensions import ALL_DIMENSIONS, Dimension


class EvaluatorRole(str, Enum):
    SKEPTIC = "Skeptic"
    ADVOCATE = "Advocate"
    GENERALIST = "Generalist"
    ARBITER = "Arbiter"


@dataclass(frozen=True)
class EvaluatorPersona:
    name: str
    role: EvaluatorRole
    prompt_template: str
    dimensions: FrozenSet[Dimension]

    @property
    def is_primary(self) -> bool:
        return self.role != EvaluatorRole.ARBITER

    def ordered_dimensions(self) -> Tuple[Dimension, ...]:
        return tuple(d for d in ALL_DIMENSIONS if d in self.dimensions)


_SCORING_INSTRUCTIONS = """
Scoring instructions:
- Score ONLY these dimensions: {dimensions}
- Give exactly one score per dimension on a 0-10 scale (one decimal place allowed)
- Follow each dimension's rubric; reserve 9-10 for exceptional work
- Quote the brief when you justify a score
- For each dimension give a one-paragraph critique naming the weakest passage"""


SKEPTIC_PROMPT = """You are The Skeptic, a rigorous evaluator who demands evidence for every claim.

How you read a brief:
- Ask what supports each factual assertion
- Flag claims presented as fact without backing
- Check that cited sources actually say what the brief says they say
- Look for logical leaps and premises that are assumed rather than argued
- Separate "no evidence given" from "weak evidence" from "evidence contradicts the claim"

You are critical but constructive: when evidence is weak, describe what stronger
evidence would look like. Watch for cherry-picked statistics and conclusions that
do not follow from the evidence presented.""" + _SCORING_INSTRUCTIONS


ADVOCATE_PROMPT = """You are The Advocate, an evaluator who makes sure every serious position gets a fair hearing.

How you read a brief:
- Check that each position appears in its strongest form
- Catch strawmen, where an opposing view is weakened before being rebutted
- Confirm that all major perspectives on the question are represented
- Notice loaded language that quietly favours one side
- Check that claims made in one section are not undercut by another

You advocate for balance, not for any side. When you find bias, name its direction
and say how to correct it. Distinguish "perspective missing" from "perspective
understated" from "perspective misrepresented".""" + _SCORING_INSTRUCTIONS


GENERALIST_PROMPT = """You are The Generalist, standing in for an average educated reader.

How you read a brief:
- Decide whether a reasonably informed person can follow the argument
- Flag jargon, acronyms, and technical terms used without explanation
- Check that the argument flows in a clear order from premises to conclusions
- Point out dense passages that assume prior knowledge
- Make sure key terms are defined before they carry weight

You want complex topics explained simply without being made simplistic. Separate
"necessarily technical" from "needlessly opaque", and say how to make unclear
sections clearer.""" + _SCORING_INSTRUCTIONS


ARBITER_PROMPT = """You are The Arbiter, a senior evaluator called in only when the primary panel disagrees.

How you work:
- Score every dimension, giving particular care to the disputed ones
- Consider what each primary evaluator likely saw that led to their score
- Where the panel agrees, that judgement is probably sound
- Where it disagrees, decide which reading the text of the brief supports
- Give definitive scores; you are a tiebreaker, not a fourth opinion

Your scores on disputed dimensions carry extra weight in the final result, so
justify them with specific passages.""" + _SCORING_INSTRUCTIONS


_PERSONAS: Dict[EvaluatorRole, EvaluatorPersona] = {
    EvaluatorRole.SKEPTIC: EvaluatorPersona(
        name="The Skeptic",
        role=EvaluatorRole.SKEPTIC,
        prompt_template=SKEPTIC_PROMPT,
        dimensions=frozenset({
            Dimension.EVIDENCE_QUALITY,
            Dimension.FACTUAL_ACCURACY,
            Dimension.FIRST_PRINCIPLES_COHERENCE,
        }),
    ),
    EvaluatorRole.ADVOCATE: EvaluatorPersona(
        name="The Advocate",
        role=EvaluatorRole.ADVOCATE,
        prompt_template=ADVOCATE_PROMPT,
        dimensions=frozenset({
            Dimension.OBJECTIVITY,
            Dimension.BIAS_DETECTION,
            Dimension.INTERNAL_CONSISTENCY,
        }),
    ),
    EvaluatorRole.GENERALIST: EvaluatorPersona(
        name="The Generalist",
        role=EvaluatorRole.GENERALIST,
        prompt_template=GENERALIST_PROMPT,
        dimensions=frozenset({
            Dimension.ACCESSIBILITY,
            Dimension.INTERNAL_CONSISTENCY,
            Dimension.FIRST_PRINCIPLES_COHERENCE,
        }),
    ),
    EvaluatorRole.ARBITER: EvaluatorPersona(
        name="The Arbiter",
        role=EvaluatorRole.ARBITER,
        prompt_template=ARBITER_PROMPT,
        dimensions=frozenset(ALL_DIMENSIONS),
    ),
}

EVALUATOR_PERSONAS: Mapping[EvaluatorRole, EvaluatorPersona] = MappingProxyType(_PERSONAS)

PRIMARY_ROLES: Tuple[EvaluatorRole, ...] = (
    EvaluatorRole.SKEPTIC,
    EvaluatorRole.ADVOCATE,
    EvaluatorRole.GENERALIST,
)


def get_evaluator_persona(role: "EvaluatorRole | str") -> EvaluatorPersona:
    """
    Look up a persona by role.

    Raises:
        UnknownEvaluatorRoleError: For anything outside the four known roles
    """
    if isinstance(role, EvaluatorRole):
        return EVALUATOR_PERSONAS[role]
    try:
        return EVALUATOR_PERSONAS[EvaluatorRole(role)]
    except (ValueError, TypeError):
        raise UnknownEvaluatorRoleError(role) from None


def get_primary_personas() -> Tuple[EvaluatorPersona, ...]:
    return tuple(EVALUATOR_PERSONAS[r] for r in PRIMARY_ROLES)


def primary_dimension_owners() -> Dict[Dimension, Tuple[EvaluatorRole, ...]]:
    """Which primary personas score each dimension."""
    return {
        d: tuple(r for r in PRIMARY_ROLES if d in EVALUATOR_PERSONAS[r].dimensions)
        for d in ALL_DIMENSIONS
    }


def validate_registry() -> None:
    """Every dimension must be covered by at least one primary persona."""
    for persona in EVALUATOR_PERSONAS.values():
        if not persona.prompt_template.strip():
            raise ValueError(f"{persona.name} has an empty prompt template")
        if not persona.dimensions:
            raise ValueError(f"{persona.name} has no dimensions")
    uncovered = [d.value for d, owners in primary_dimension_owners().items() if not owners]
    if uncovered:
        raise ValueError(f"dimensions without a primary evaluator: {', '.join(uncovered)}")
    if EVALUATOR_PERSONAS[EvaluatorRole.ARBITER].dimensions != frozenset(ALL_DIMENSIONS):
        raise ValueError("the Arbiter must score every dimension")


validate_registry()
