"""
Tests for the drafting-side agents.

Tests cover:
- JSON extraction from model responses
- Classification defaults
- Research: credibility scoring, lean classification, diversity warning
- Narrative/structure validation and draft assembly
- Summaries at every reading level
"""

from datetime import datetime, timezone

import pytest

from briefing.agents.base import extract_json
from briefing.agents.classifier import QuestionClassification, QuestionClassifier
from briefing.agents.drafting import (
    SECTION_POLICY_OPTIONS,
    DraftReconciler,
    NarrativeAgent,
    NarrativeResult,
    StructureAgent,
    StructureResult,
    assemble_draft,
)
from briefing.agents.research import ResearchAgent, credibility_score, source_type_for
from briefing.agents.summary import READING_LEVELS, SummaryAgent
from briefing.config import config
from briefing.exceptions import AgentOutputError

from conftest import ScriptedLLM


NARRATIVE = {
    "introduction": "Congestion charges price road space.",
    "main_body": "Evidence from Stockholm and London is mixed on equity.",
    "conclusion": "The case depends on how revenue is used.",
    "key_takeaways": ["Traffic falls", "Equity is contested", " "],
}


# =============================================================================
# JSON extraction
# =============================================================================

class TestExtractJson:
    def test_fenced_block(self):
        assert extract_json('Here you go:\n```json\n{"a": 1}\n```') == {"a": 1}

    def test_prose_around_object(self):
        assert extract_json('Sure. {"a": {"b": 2}} Hope that helps.') == {"a": {"b": 2}}

    def test_no_json(self):
        with pytest.raises(AgentOutputError, match="no JSON object"):
            extract_json("I cannot help with that.", "summary")


# =============================================================================
# Classification
# =============================================================================

class TestQuestionClassifier:
    @pytest.mark.asyncio
    async def test_classify(self, fast_invoker):
        llm = ScriptedLLM([{"domain": "Economics", "controversyLevel": "high", "question_type": "opinion", "temporal_scope": "current"}])

        result = await QuestionClassifier(llm=llm, invoker=fast_invoker).classify("Should cities charge drivers?")

        assert result == QuestionClassification("economics", "high", "opinion", "current")
        assert result.specialist["name"] == "Economic Policy Analyst"

    def test_unknown_labels_fall_back(self):
        result = QuestionClassifier(llm=ScriptedLLM()).parse({"domain": "astrology", "controversy_level": 7})
        assert result == QuestionClassification()


# =============================================================================
# Research
# =============================================================================

class TestResearch:
    """Credibility scoring and the research stage."""

    NOW = datetime(2026, 6, 1, tzinfo=timezone.utc)

    def test_known_domain_recent(self):
        assert credibility_score("https://www.oecd.org/report", "2025-09-01", now=self.NOW) == 10.0

    def test_subdomain_inherits_reputation(self):
        assert credibility_score("https://news.bbc.co.uk/a", now=self.NOW) == 9.0

    def test_old_unknown_domain(self):
        assert credibility_score("https://someblog.com/x", "2012-01-01T00:00:00Z", now=self.NOW) == 5.5

    def test_bad_date_ignored(self):
        assert credibility_score("https://someblog.com/x", "last tuesday", now=self.NOW) == 6.0

    def test_source_types(self):
        assert source_type_for("https://www.ons.gov.uk/stats") == "primary"
        assert source_type_for("https://en.wikipedia.org/wiki/Toll") == "tertiary"
        assert source_type_for("https://www.ft.com/content") == "secondary"

    @pytest.mark.asyncio
    async def test_research_builds_sources_and_warns(self, fast_invoker):
        async def search(query, max_results):
            return [
                {"url": "https://www.theguardian.com/a", "title": "For the charge"},
                {"url": "https://www.telegraph.co.uk/b", "title": "Against the charge"},
                {"url": "https://www.reuters.com/c", "title": "Explained"},
                {"url": "https://www.nytimes.com/d", "title": "City view"},
                {"title": "no url"},
            ]

        llm = ScriptedLLM([{"classifications": [
            {"index": 0, "political_lean": "center-left"},
            {"index": 1, "political_lean": "center-right"},
            {"index": 2, "political_lean": "center"},
            {"index": 3, "political_lean": "LEFT"},
        ]}])
        agent = ResearchAgent(llm=llm, invoker=fast_invoker, search=search, max_sources=8)

        result = await agent.research("Should cities adopt congestion pricing?")

        assert len(result.sources) == 4
        assert [s.political_lean for s in result.sources] == ["center-left", "center-right", "center", "left"]
        assert result.lean_counts["center"] == 1
        assert "right-leaning" in result.diversity_warning
        assert result.sources[0].publisher == "Theguardian"

    @pytest.mark.asyncio
    async def test_no_search_provider_skips(self, monkeypatch):
        monkeypatch.setattr(config, "TAVILY_API_KEY", None)
        llm = ScriptedLLM()

        result = await ResearchAgent(llm=llm).research("q")

        assert result.sources == []
        assert llm.calls == []


# =============================================================================
# Drafting
# =============================================================================

class TestDrafting:
    def test_narrative_requires_all_parts(self):
        with pytest.raises(AgentOutputError):
            NarrativeResult.from_data({"introduction": "x", "conclusion": "y"}, "narrative")

    def test_blank_takeaways_dropped(self):
        assert NarrativeResult.from_data(NARRATIVE, "narrative").key_takeaways == ["Traffic falls", "Equity is contested"]

    def test_assemble_draft_section_order(self):
        structure = StructureResult(policies=[{"name": "Cordon charge", "description": "Flat daily fee", "tradeoffs": "Regressive"}])
        draft = assemble_draft("Q?", structure, NarrativeResult.from_data(NARRATIVE, "narrative"))

        assert draft.section_names() == ["Introduction", "Analysis", "Policy Options", "Conclusion", "Key Takeaways"]
        assert "Trade-offs: Regressive" in draft.sections[SECTION_POLICY_OPTIONS]
        assert draft.title == "Q?"

    @pytest.mark.asyncio
    async def test_empty_structure_rejected(self, fast_invoker):
        agent = StructureAgent(llm=ScriptedLLM([{"definitions": []}]), invoker=fast_invoker)
        with pytest.raises(AgentOutputError, match="neither factors nor policies"):
            await agent.build("q", QuestionClassification(), [])

    @pytest.mark.asyncio
    async def test_narrative_agent(self, fast_invoker):
        llm = ScriptedLLM([NARRATIVE])
        result = await NarrativeAgent(llm=llm, invoker=fast_invoker).write("q", QuestionClassification("housing"), [])
        assert result.conclusion == NARRATIVE["conclusion"]
        assert "You are a Housing Policy Specialist" in llm.calls[0][-1].content

    @pytest.mark.asyncio
    async def test_reconciler_uses_rewritten_narrative(self, fast_invoker):
        rewritten = dict(NARRATIVE, conclusion="Revenue recycling decides the equity question.")
        llm = ScriptedLLM([{"reconciled_narrative": rewritten, "changes": ["Aligned conclusion"], "is_consistent": False}])
        structure = StructureResult(factors=[{"name": "Equity"}])

        result = await DraftReconciler(llm=llm, invoker=fast_invoker).reconcile(
            "Q?", structure, NarrativeResult.from_data(NARRATIVE, "narrative")
        )

        assert result.draft.sections["Conclusion"] == "Revenue recycling decides the equity question."
        assert result.changes == ["Aligned conclusion"]
        assert result.is_consistent is False


class TestSummaryAgent:
    @pytest.mark.asyncio
    async def test_each_level_uses_its_audience(self, draft, fast_invoker):
        llm = ScriptedLLM([f"{level} summary" for level in READING_LEVELS])
        agent = SummaryAgent(llm=llm, invoker=fast_invoker)

        summaries = {level: await agent.summarize(draft, level) for level in READING_LEVELS}

        assert list(summaries) == ["child", "teen", "undergrad", "postdoc"]
        assert summaries["teen"] == "teen summary"
        assert len(llm.calls) == 4
        assert READING_LEVELS["child"]["audience"] in llm.calls[0][-1].content

    @pytest.mark.asyncio
    async def test_unknown_level_rejected(self, draft):
        with pytest.raises(ValueError, match="unknown reading level"):
            await SummaryAgent(llm=ScriptedLLM()).summarize(draft, "toddler")

    @pytest.mark.asyncio
    async def test_empty_summary_rejected(self, draft, fast_invoker):
        with pytest.raises(AgentOutputError):
            await SummaryAgent(llm=ScriptedLLM(["   "]), invoker=fast_invoker).summarize(draft, "child")
