"""
SummaryAgent: rewrites the brief at four reading levels.

Levels run one after another, each a separate model call, so a single
slow level never holds more than one request open.
"""

from typing import Dict, Literal

from briefing.agents.base import BaseAgent
from briefing.config import config
from briefing.exceptions import AgentOutputError
from briefing.models.investigation import Draft


ReadingLevel = Literal["child", "teen", "undergrad", "postdoc"]

READING_LEVELS: Dict[str, Dict[str, str]] = {
    "child": {
        "audience": "a curious 8-10 year old",
        "length": "100-150 words",
        "style": (
            "Use simple everyday words and short sentences. Avoid terms like fiscal, "
            "legislation, regulatory or stakeholders; say money, laws, rules, people in charge. "
            "Explain why people disagree using a comparison from daily life."
        ),
    },
    "teen": {
        "audience": "a 14-16 year old secondary school student",
        "length": "200-250 words",
        "style": (
            "Introduce one or two key terms with a plain definition. Show the main "
            "arguments on each side and one concrete example."
        ),
    },
    "undergrad": {
        "audience": "a first-year university student",
        "length": "350-400 words",
        "style": (
            "Use correct terminology, name the main schools of thought, and cite the "
            "strongest evidence for each position with its limitations."
        ),
    },
    "postdoc": {
        "audience": "a domain expert",
        "length": "450-500 words",
        "style": (
            "Be technically precise. Discuss mechanisms, methodological disputes in the "
            "evidence, second-order effects and open research questions."
        ),
    },
}


class SummaryAgent(BaseAgent):
    """Produces one summary per reading level."""

    AGENT_NAME = "summary"
    DEFAULT_TEMPERATURE = 0.4

    @classmethod
    def default_model(cls) -> str:
        return config.SUMMARY_MODEL

    async def summarize(self, draft: Draft, level: ReadingLevel) -> str:
        if level not in READING_LEVELS:
            raise ValueError(f"unknown reading level: {level}")
        profile = READING_LEVELS[level]
        prompt = f"""Summarise this policy brief for {profile['audience']}.

Length: {profile['length']}.
{profile['style']}
Stay neutral: give each side's best argument and do not tell the reader what to conclude.

## Brief
{draft.render()}

Return ONLY the summary text."""
        text = (await self._complete(prompt, agent_name=f"summary:{level}")).strip()
        if not text:
            raise AgentOutputError(f"summary:{level}", "empty summary")
        return text
