"""
Drafting agents.

Structure and narrative are written independently (and concurrently),
then DraftReconciler aligns the narrative with the structure and
assembles the Draft that gets scored.

Flow:
  classification → StructureAgent ─┐
                 → NarrativeAgent ─┴→ DraftReconciler → Draft
"""

import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List

from briefing.agents.base import BaseAgent
from briefing.agents.classifier import QuestionClassification
from briefing.exceptions import AgentOutputError
from briefing.models.investigation import Draft, Source


SECTION_INTRODUCTION = "Introduction"
SECTION_ANALYSIS = "Analysis"
SECTION_POLICY_OPTIONS = "Policy Options"
SECTION_CONCLUSION = "Conclusion"
SECTION_TAKEAWAYS = "Key Takeaways"


def _source_digest(sources: List[Source], limit: int = 8) -> str:
    if not sources:
        return "No external sources were gathered; rely on well-established, widely reported facts and flag uncertainty."
    lines = []
    for i, source in enumerate(sources[:limit], 1):
        lines.append(
            f"[{i}] {source.title} ({source.publisher}, lean: {source.political_lean}, "
            f"credibility {source.credibility_score:.1f}/10)\n{source.content[:600]}"
        )
    return "\n\n".join(lines)


def _specialist_block(classification: QuestionClassification) -> str:
    specialist = classification.specialist
    return (
        f"You are a {specialist['name']} ({specialist['expertise']}). {specialist['framing']}\n"
        f"The question is {classification.question_type}, about the {classification.temporal_scope} "
        f"situation, and its controversy level is {classification.controversy_level}."
    )


def _list_of_dicts(value: Any) -> List[Dict[str, Any]]:
    return [item for item in (value or []) if isinstance(item, dict)]


@dataclass
class StructureResult:
    """Tabular facts of the brief. The narrative must agree with these."""
    definitions: List[Dict[str, Any]] = field(default_factory=list)
    factors: List[Dict[str, Any]] = field(default_factory=list)
    policies: List[Dict[str, Any]] = field(default_factory=list)
    consequences: List[Dict[str, Any]] = field(default_factory=list)
    timeline: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "definitions": self.definitions,
            "factors": self.factors,
            "policies": self.policies,
            "consequences": self.consequences,
            "timeline": self.timeline,
        }


@dataclass
class NarrativeResult:
    introduction: str
    main_body: str
    conclusion: str
    key_takeaways: List[str] = field(default_factory=list)

    @classmethod
    def from_data(cls, data: Dict[str, Any], agent_name: str) -> "NarrativeResult":
        introduction = data.get("introduction")
        main_body = data.get("main_body", data.get("mainBody"))
        conclusion = data.get("conclusion")
        if not introduction or not main_body or not conclusion:
            raise AgentOutputError(agent_name, "narrative is missing introduction, main_body or conclusion")
        takeaways = data.get("key_takeaways", data.get("keyTakeaways")) or []
        return cls(
            introduction=str(introduction),
            main_body=str(main_body),
            conclusion=str(conclusion),
            key_takeaways=[str(t) for t in takeaways if str(t).strip()],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "introduction": self.introduction,
            "main_body": self.main_body,
            "conclusion": self.conclusion,
            "key_takeaways": self.key_takeaways,
        }


@dataclass
class DraftReconciliationResult:
    draft: Draft
    changes: List[str]
    is_consistent: bool
    reconciliation_time: float = 0.0


class StructureAgent(BaseAgent):
    """Produces the definitions, factors, policies, consequences and timeline tables."""

    AGENT_NAME = "structure"
    DEFAULT_TEMPERATURE = 0.2

    async def build(
        self,
        question: str,
        classification: QuestionClassification,
        sources: List[Source],
    ) -> StructureResult:
        prompt = f"""{_specialist_block(classification)}

Build the factual structure for a policy brief answering: {question}

## Sources
{_source_digest(sources)}

Return ONLY JSON:
{{
  "definitions": [{{"term": "...", "definition": "..."}}],
  "factors": [{{"name": "...", "description": "...", "stakeholders": ["..."], "impact": "..."}}],
  "policies": [{{"name": "...", "description": "...", "proponents": ["..."], "opponents": ["..."], "tradeoffs": "..."}}],
  "consequences": [{{"policy": "...", "first_order": "...", "second_order": "..."}}],
  "timeline": [{{"date": "...", "event": "...", "significance": "..."}}]
}}"""
        data = await self._complete_json(prompt)
        result = StructureResult(
            definitions=_list_of_dicts(data.get("definitions")),
            factors=_list_of_dicts(data.get("factors")),
            policies=_list_of_dicts(data.get("policies")),
            consequences=_list_of_dicts(data.get("consequences")),
            timeline=_list_of_dicts(data.get("timeline")),
        )
        if not result.factors and not result.policies:
            raise AgentOutputError(self.AGENT_NAME, "structure has neither factors nor policies")
        return result


class NarrativeAgent(BaseAgent):
    """Writes the prose of the brief."""

    AGENT_NAME = "narrative"
    DEFAULT_TEMPERATURE = 0.5

    async def write(
        self,
        question: str,
        classification: QuestionClassification,
        sources: List[Source],
    ) -> NarrativeResult:
        prompt = f"""{_specialist_block(classification)}

Write a balanced policy brief answering: {question}

Rules:
- Present every major position in its strongest form
- Attribute facts and figures to the sources below
- Define technical terms the first time they appear
- Write for an educated general reader

## Sources
{_source_digest(sources)}

Return ONLY JSON:
{{
  "introduction": "1-2 paragraphs framing the question",
  "main_body": "The analysis, several paragraphs",
  "conclusion": "What the evidence does and does not settle",
  "key_takeaways": ["3-5 short takeaways"]
}}"""
        data = await self._complete_json(prompt)
        return NarrativeResult.from_data(data, self.AGENT_NAME)


def assemble_draft(question: str, structure: StructureResult, narrative: NarrativeResult) -> Draft:
    """Lay out the scored draft. Section order is fixed."""
    sections: Dict[str, str] = {
        SECTION_INTRODUCTION: narrative.introduction,
        SECTION_ANALYSIS: narrative.main_body,
    }
    if structure.policies:
        lines = []
        for policy in structure.policies:
            line = f"**{policy.get('name', 'Option')}**: {policy.get('description', '')}"
            if policy.get("tradeoffs"):
                line += f" Trade-offs: {policy['tradeoffs']}"
            lines.append(line)
        sections[SECTION_POLICY_OPTIONS] = "\n\n".join(lines)
    sections[SECTION_CONCLUSION] = narrative.conclusion
    if narrative.key_takeaways:
        sections[SECTION_TAKEAWAYS] = "\n".join(f"- {t}" for t in narrative.key_takeaways)
    return Draft(title=question, sections=sections)


class DraftReconciler(BaseAgent):
    """
    Checks the narrative against the structure and rewrites the narrative
    where they disagree. The structure is the source of truth.
    """

    AGENT_NAME = "draft_reconciliation"
    DEFAULT_TEMPERATURE = 0.1

    async def reconcile(
        self,
        question: str,
        structure: StructureResult,
        narrative: NarrativeResult,
    ) -> DraftReconciliationResult:
        start_time = time.time()
        prompt = f"""Compare the STRUCTURE and NARRATIVE of a policy brief. The STRUCTURE is the source of truth.

Check:
1. Every factor discussed in the narrative appears in the structure
2. Policies described in the narrative match the structure's description of them
3. No statement in the narrative contradicts the structure

If something disagrees, rewrite only the affected narrative passages.

## STRUCTURE
{json.dumps(structure.to_dict(), indent=2)}

## NARRATIVE
{json.dumps(narrative.to_dict(), indent=2)}

Return ONLY JSON:
{{
  "reconciled_narrative": {{"introduction": "...", "main_body": "...", "conclusion": "...", "key_takeaways": ["..."]}},
  "changes": ["One line per change made"],
  "is_consistent": true
}}"""
        data = await self._complete_json(prompt)

        raw = data.get("reconciled_narrative", data.get("reconciledNarrative"))
        reconciled = NarrativeResult.from_data(raw, self.AGENT_NAME) if isinstance(raw, dict) else narrative
        changes = [str(c) for c in data.get("changes", []) or []]
        return DraftReconciliationResult(
            draft=assemble_draft(question, structure, reconciled),
            changes=changes,
            is_consistent=bool(data.get("is_consistent", data.get("isConsistent", not changes))),
            reconciliation_time=time.time() - start_time,
        )
