"""
The seven clarity dimensions every brief is scored on.

Each dimension carries a fixed aggregate weight and a 0-10 rubric that
evaluator prompts quote verbatim. Scores are always stored on a 0-10
scale; raw values reported on a 0-1 or 0-100 scale are normalized first.
"""

from enum import Enum
from types import MappingProxyType
from typing import Dict, Any, Iterator, Mapping, Tuple

from briefing.exceptions import DimensionScoreError


# A brief at or above this overall score passes the quality gate.
QUALITY_THRESHOLD = 6.0


class Dimension(str, Enum):
    FIRST_PRINCIPLES_COHERENCE = "firstPrinciplesCoherence"
    INTERNAL_CONSISTENCY = "internalConsistency"
    EVIDENCE_QUALITY = "evidenceQuality"
    ACCESSIBILITY = "accessibility"
    OBJECTIVITY = "objectivity"
    FACTUAL_ACCURACY = "factualAccuracy"
    BIAS_DETECTION = "biasDetection"

    @classmethod
    def parse(cls, value: "Dimension | str") -> "Dimension":
        """Accept an enum member, its wire value, or its member name."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            pass
        try:
            return cls[str(value).upper()]
        except KeyError:
            raise DimensionScoreError(f"unknown dimension: {value!r}") from None


ALL_DIMENSIONS: Tuple[Dimension, ...] = tuple(Dimension)


# Aggregate weights, in percent. Sum is 100.
DIMENSION_WEIGHTS: Mapping[Dimension, int] = MappingProxyType({
    Dimension.FIRST_PRINCIPLES_COHERENCE: 15,
    Dimension.EVIDENCE_QUALITY: 20,       # source diversity
    Dimension.FACTUAL_ACCURACY: 15,       # primary-source ratio
    Dimension.INTERNAL_CONSISTENCY: 15,   # logical completeness
    Dimension.ACCESSIBILITY: 15,          # readability
    Dimension.OBJECTIVITY: 10,            # recency
    Dimension.BIAS_DETECTION: 10,         # user feedback
})

assert sum(DIMENSION_WEIGHTS.values()) == 100


DIMENSION_GUIDELINES: Mapping[Dimension, Dict[str, str]] = MappingProxyType({
    Dimension.FIRST_PRINCIPLES_COHERENCE: {
        "description": "How well the brief builds arguments from foundational truths rather than assumptions",
        "rubric": (
            "10: Arguments derive clearly from first principles with explicit logical chains\n"
            "8-9: Strong foundational reasoning with minor gaps\n"
            "6-7: Some first principles thinking but relies on unstated assumptions\n"
            "4-5: Mostly based on conventional wisdom without questioning premises\n"
            "1-3: Arguments built on unexamined assumptions or circular reasoning"
        ),
    },
    Dimension.INTERNAL_CONSISTENCY: {
        "description": "Whether the brief's claims and arguments align without contradictions",
        "rubric": (
            "10: Perfect logical consistency throughout; all claims support each other\n"
            "8-9: Highly consistent with no contradictions\n"
            "6-7: Generally consistent but some tension between sections\n"
            "4-5: Notable contradictions that undermine arguments\n"
            "1-3: Major internal contradictions; arguments refute each other"
        ),
    },
    Dimension.EVIDENCE_QUALITY: {
        "description": "The strength, relevance, and diversity of sources and data cited",
        "rubric": (
            "10: Primary sources, peer-reviewed research, diverse perspectives, all claims backed\n"
            "8-9: Strong evidence base with minor gaps; mostly primary/secondary sources\n"
            "6-7: Adequate evidence but relies heavily on secondary sources\n"
            "4-5: Weak evidence; few sources, mainly opinion or low-credibility outlets\n"
            "1-3: No evidence or only anecdotal support; claims are unsupported"
        ),
    },
    Dimension.ACCESSIBILITY: {
        "description": "How easily an average educated reader can understand the content",
        "rubric": (
            "10: Crystal clear; complex topics explained simply; no jargon without definition\n"
            "8-9: Highly accessible; rare jargon is explained\n"
            "6-7: Mostly clear but some sections require domain knowledge\n"
            "4-5: Dense or technical; assumes significant prior knowledge\n"
            "1-3: Impenetrable to non-specialists; unexplained jargon throughout"
        ),
    },
    Dimension.OBJECTIVITY: {
        "description": "Whether the brief presents multiple perspectives fairly without advocacy",
        "rubric": (
            "10: All major perspectives presented fairly; no detectable preference\n"
            "8-9: Strong objectivity with balanced treatment\n"
            "6-7: Generally objective but slightly favors one perspective\n"
            "4-5: Clear preference for certain viewpoints; unequal treatment\n"
            "1-3: One-sided advocacy; opposing views dismissed or strawmanned"
        ),
    },
    Dimension.FACTUAL_ACCURACY: {
        "description": "Whether stated facts, statistics, and claims are verifiably correct",
        "rubric": (
            "10: All facts verified; statistics correctly cited with context\n"
            "8-9: Highly accurate; minor issues don't affect conclusions\n"
            "6-7: Mostly accurate but some unverified claims or missing context\n"
            "4-5: Several factual errors that affect argument validity\n"
            "1-3: Major factual errors; misinformation or fabricated claims"
        ),
    },
    Dimension.BIAS_DETECTION: {
        "description": "Identification and mitigation of cognitive, selection, or framing biases",
        "rubric": (
            "10: No detectable bias; actively addresses potential biases\n"
            "8-9: Minimal bias; diverse framing and source selection\n"
            "6-7: Some bias in framing or source selection but not severe\n"
            "4-5: Notable bias in how issues are framed or evidence selected\n"
            "1-3: Severe bias; cherry-picked evidence, loaded language, misleading framing"
        ),
    },
})


SUPPORTED_SCALES = (1, 10, 100)


def normalize_score(value: Any, scale: int = 10) -> float:
    """
    Map a raw score onto 0-10.

    Args:
        value: Raw score as reported
        scale: Upper bound of the raw scale (1, 10 or 100)

    Raises:
        DimensionScoreError: Non-numeric value, unsupported scale, or a value
            outside [0, scale]
    """
    if scale not in SUPPORTED_SCALES:
        raise DimensionScoreError(f"unsupported score scale: 0-{scale}")
    if isinstance(value, bool):
        raise DimensionScoreError(f"score must be numeric, got {value!r}")
    try:
        raw = float(value)
    except (TypeError, ValueError):
        raise DimensionScoreError(f"score must be numeric, got {value!r}") from None
    if raw != raw or raw < 0 or raw > scale:
        raise DimensionScoreError(f"score {value!r} is outside the 0-{scale} scale")
    return raw * 10.0 / scale


def round_score(value: float) -> float:
    """Round half away from zero to one decimal place."""
    return float(int(value * 10 + (0.5 if value >= 0 else -0.5))) / 10


class DimensionScores(Mapping[Dimension, float]):
    """
    Immutable mapping from each of the seven dimensions to a 0-10 score.

    Construction fails when a dimension is missing, unknown, or out of range.
    """

    __slots__ = ("_scores",)

    def __init__(self, scores: Mapping["Dimension | str", Any]):
        parsed: Dict[Dimension, float] = {}
        for key, value in scores.items():
            dimension = Dimension.parse(key)
            if dimension in parsed:
                raise DimensionScoreError(f"duplicate score for {dimension.value}")
            parsed[dimension] = normalize_score(value, 10)

        missing = [d.value for d in ALL_DIMENSIONS if d not in parsed]
        if missing:
            raise DimensionScoreError(f"missing scores for: {', '.join(missing)}")

        self._scores = MappingProxyType({d: parsed[d] for d in ALL_DIMENSIONS})

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], scale: int = 10) -> "DimensionScores":
        """Build from wire data, normalizing from the given scale."""
        return cls({key: normalize_score(value, scale) for key, value in data.items()})

    def __getitem__(self, key: "Dimension | str") -> float:
        return self._scores[Dimension.parse(key)]

    def __iter__(self) -> Iterator[Dimension]:
        return iter(self._scores)

    def __len__(self) -> int:
        return len(self._scores)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, DimensionScores):
            return dict(self._scores) == dict(other._scores)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(self._scores.items()))

    def __repr__(self) -> str:
        inner = ", ".join(f"{d.value}={s:g}" for d, s in self._scores.items())
        return f"DimensionScores({inner})"

    def weighted_overall(self) -> float:
        """Aggregate with the fixed weight table, rounded to one decimal."""
        total = sum(self._scores[d] * w for d, w in DIMENSION_WEIGHTS.items())
        return round_score(total / 100.0)

    def lowest(self, n: int | None = None) -> list[Tuple[Dimension, float]]:
        """Dimensions sorted by ascending score, ties in declaration order."""
        ordered = sorted(
            self._scores.items(),
            key=lambda item: (item[1], ALL_DIMENSIONS.index(item[0]))
        )
        return ordered if n is None else ordered[:n]

    def below(self, floor: float) -> list[Dimension]:
        return [d for d, score in self._scores.items() if score < floor]

    def to_dict(self) -> Dict[str, float]:
        return {d.value: s for d, s in self._scores.items()}
