"""
QuestionClassifier: labels the policy question before drafting.

The classification picks the specialist persona that frames the
structure and narrative agents, and tells them how contested the topic
is. Unrecognised labels fall back to neutral defaults (with a warning);
an unparseable response is an error.
"""

from dataclasses import dataclass
from typing import Any, Dict

from briefing.agents.base import BaseAgent
from briefing.config import config
from briefing.utils.logging import agent_logger


DOMAINS = (
    "economics", "healthcare", "climate", "education", "defense", "immigration",
    "housing", "justice", "technology", "governance", "other",
)
CONTROVERSY_LEVELS = ("low", "medium", "high")
QUESTION_TYPES = ("factual", "analytical", "opinion", "comparative")
TEMPORAL_SCOPES = ("historical", "current", "future", "timeless")


SPECIALIST_PERSONAS: Dict[str, Dict[str, str]] = {
    "economics": {
        "name": "Economic Policy Analyst",
        "expertise": "Macroeconomics, fiscal and monetary policy, trade, and labour markets",
        "framing": "Weigh growth, distribution and fiscal sustainability; cite official statistics and name the economic schools that disagree.",
    },
    "healthcare": {
        "name": "Health Policy Specialist",
        "expertise": "Health systems, public health, and health economics",
        "framing": "Judge policies on clinical effectiveness, cost-effectiveness, equity and patient outcomes; acknowledge finite resources.",
    },
    "climate": {
        "name": "Climate and Environment Analyst",
        "expertise": "Climate science, energy policy, and environmental regulation",
        "framing": "Separate settled science from contested policy choices; quantify trade-offs between cost, reliability and emissions.",
    },
    "education": {
        "name": "Education Policy Expert",
        "expertise": "School systems, curriculum, skills policy, and higher education",
        "framing": "Focus on attainment evidence, access and funding; distinguish correlation from causation in outcome data.",
    },
    "defense": {
        "name": "Defence and Security Analyst",
        "expertise": "Defence policy, national security, and international relations",
        "framing": "Analyse capabilities, threats and alliances with rigour; stay neutral on contested security questions.",
    },
    "immigration": {
        "name": "Migration Policy Analyst",
        "expertise": "Immigration systems, asylum, integration, and demographics",
        "framing": "Cover economic impact, public service pressure, integration and humanitarian obligations; treat concerns on every side as legitimate.",
    },
    "housing": {
        "name": "Housing Policy Specialist",
        "expertise": "Planning, affordability, tenure, and homelessness",
        "framing": "Connect supply, demand and planning constraints; show who gains and who loses from each option.",
    },
    "justice": {
        "name": "Justice and Legal Affairs Analyst",
        "expertise": "Criminal justice, courts, policing, and civil liberties",
        "framing": "Balance public safety, rights and rehabilitation evidence; state the legal position precisely.",
    },
    "technology": {
        "name": "Technology Policy Analyst",
        "expertise": "Tech regulation, AI policy, the digital economy, and data governance",
        "framing": "Weigh innovation against risk; avoid both hype and alarm, and explain technical terms plainly.",
    },
    "governance": {
        "name": "Constitutional and Governance Expert",
        "expertise": "Constitutional affairs, electoral systems, and public administration",
        "framing": "Explain institutional mechanics first, then the arguments over reform.",
    },
    "other": {
        "name": "Policy Generalist",
        "expertise": "Cross-cutting policy analysis and public affairs",
        "framing": "Lay out the main positions, the evidence for each, and what is still uncertain.",
    },
}


@dataclass(frozen=True)
class QuestionClassification:
    domain: str = "other"
    controversy_level: str = "medium"
    question_type: str = "analytical"
    temporal_scope: str = "current"

    @property
    def specialist(self) -> Dict[str, str]:
        return SPECIALIST_PERSONAS.get(self.domain, SPECIALIST_PERSONAS["other"])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "controversy_level": self.controversy_level,
            "question_type": self.question_type,
            "temporal_scope": self.temporal_scope,
            "specialist": self.specialist["name"],
        }


def _pick(value: Any, allowed: tuple, default: str, field: str) -> str:
    if isinstance(value, str) and value.lower() in allowed:
        return value.lower()
    agent_logger.warning(f"Invalid {field} from classifier, defaulting", value=str(value)[:40], default=default)
    return default


class QuestionClassifier(BaseAgent):
    """Classifies a question by domain, controversy, type and time frame."""

    AGENT_NAME = "question_classifier"
    DEFAULT_TEMPERATURE = 0.0

    @classmethod
    def default_model(cls) -> str:
        return config.RESEARCH_MODEL

    async def classify(self, question: str) -> QuestionClassification:
        data = await self._complete_json(self._build_prompt(question))
        return self.parse(data)

    def parse(self, data: Dict[str, Any]) -> QuestionClassification:
        return QuestionClassification(
            domain=_pick(data.get("domain"), DOMAINS, "other", "domain"),
            controversy_level=_pick(
                data.get("controversy_level", data.get("controversyLevel")),
                CONTROVERSY_LEVELS, "medium", "controversy_level",
            ),
            question_type=_pick(
                data.get("question_type", data.get("questionType")),
                QUESTION_TYPES, "analytical", "question_type",
            ),
            temporal_scope=_pick(
                data.get("temporal_scope", data.get("temporalScope")),
                TEMPORAL_SCOPES, "current", "temporal_scope",
            ),
        )

    def _build_prompt(self, question: str) -> str:
        return f"""Classify this policy question. Return ONLY a JSON object.

Fields:
- domain: one of {', '.join(DOMAINS)} (pick the PRIMARY domain)
- controversy_level: low (widely accepted answer), medium (legitimate debate), high (deeply divisive)
- question_type: factual, analytical (causes/effects), opinion (normative), comparative
- temporal_scope: historical, current, future, timeless

Example:
Question: "Should university tuition fees be abolished?"
{{"domain": "education", "controversy_level": "high", "question_type": "opinion", "temporal_scope": "current"}}

Question: {question}"""
