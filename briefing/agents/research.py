"""
ResearchAgent: gathers and annotates web sources for a question.

1. Search the web (Tavily) for the question
2. Classify each source's political lean in one batched model call
3. Score credibility from domain reputation and recency
4. Warn when one side of the spectrum dominates

Without a search key the stage returns no sources and drafting proceeds
from the model's own knowledge.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import urlparse

import httpx

from briefing.agents.base import BaseAgent
from briefing.agents.invoker import AgentInvoker
from briefing.config import config
from briefing.models.investigation import Source
from briefing.utils.logging import agent_logger


POLITICAL_LEANS = ("left", "center-left", "center", "center-right", "right", "unknown")

DOMAIN_REPUTATION: Dict[str, float] = {
    # Government & international
    "gov.uk": 10.0,
    "ons.gov.uk": 10.0,
    "un.org": 9.5,
    "europa.eu": 9.5,
    "oecd.org": 9.5,
    # Academic
    "jstor.org": 9.0,
    "arxiv.org": 8.5,
    # News
    "bbc.co.uk": 9.0,
    "bbc.com": 9.0,
    "ft.com": 9.0,
    "economist.com": 9.0,
    "reuters.com": 9.0,
    "apnews.com": 9.0,
    "nytimes.com": 9.0,
    "wsj.com": 9.0,
    "washingtonpost.com": 9.0,
    "bloomberg.com": 8.5,
    "theguardian.com": 8.5,
    "telegraph.co.uk": 8.5,
    # Think tanks
    "brookings.edu": 8.5,
    "rand.org": 8.5,
    "pewresearch.org": 8.5,
    "ifs.org.uk": 8.5,
    "chathamhouse.org": 8.5,
}

DEFAULT_REPUTATION = 6.0

PRIMARY_MARKERS = ("gov.", ".gov", ".ac.", ".edu", "oecd.org", "un.org", "jstor.org", "arxiv.org")
TERTIARY_MARKERS = ("wikipedia.org", "britannica.com")

MIN_SIDE_RATIO = 0.3


SearchFn = Callable[[str, int], Awaitable[List[Dict[str, Any]]]]


def _hostname(url: str) -> str:
    host = urlparse(url).hostname or ""
    return host[4:] if host.startswith("www.") else host


def source_type_for(url: str, title: str = "") -> str:
    host = _hostname(url)
    if any(marker in host for marker in PRIMARY_MARKERS):
        return "primary"
    if any(marker in host for marker in TERTIARY_MARKERS) or "explainer" in title.lower():
        return "tertiary"
    return "secondary"


def credibility_score(url: str, published_date: Optional[str] = None, now: Optional[datetime] = None) -> float:
    """Domain reputation adjusted by +/-0.5 for recency."""
    host = _hostname(url)
    base = DOMAIN_REPUTATION.get(host)
    if base is None:
        suffix = next((d for d in DOMAIN_REPUTATION if host.endswith("." + d)), None)
        base = DOMAIN_REPUTATION[suffix] if suffix else DEFAULT_REPUTATION
        if suffix is None and (host.endswith(".edu") or ".ac." in host):
            base = 9.0

    bonus = 0.0
    if published_date:
        try:
            published = datetime.fromisoformat(published_date.replace("Z", "+00:00"))
            if published.tzinfo is None:
                published = published.replace(tzinfo=timezone.utc)
            age_years = ((now or datetime.now(timezone.utc)) - published).days / 365
            bonus = 0.5 if age_years < 2 else (0.0 if age_years < 5 else -0.5)
        except ValueError:
            pass
    return min(10.0, max(0.0, base + bonus))


def publisher_for(url: str) -> str:
    name = _hostname(url).split(".")[0]
    return name[:1].upper() + name[1:]


def lean_counts(sources: List[Source]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for source in sources:
        counts[source.political_lean] = counts.get(source.political_lean, 0) + 1
    return counts


class TavilySearch:
    """Minimal async client for the Tavily search API."""

    def __init__(self, api_key: Optional[str] = None, url: Optional[str] = None, timeout: float = 30.0):
        self.api_key = api_key or config.TAVILY_API_KEY
        self.url = url or config.TAVILY_SEARCH_URL
        self.timeout = timeout

    async def __call__(self, query: str, max_results: int) -> List[Dict[str, Any]]:
        payload = {
            "api_key": self.api_key,
            "query": query,
            "search_depth": "advanced",
            "include_answer": False,
            "include_raw_content": False,
            "max_results": max_results,
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(self.url, json=payload)
            response.raise_for_status()
            data = response.json()
        return list(data.get("results", []))


@dataclass
class ResearchResult:
    sources: List[Source] = field(default_factory=list)
    lean_counts: Dict[str, int] = field(default_factory=dict)
    average_credibility: float = 0.0
    diversity_warning: Optional[str] = None
    research_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sources": [s.to_dict() for s in self.sources],
            "lean_counts": self.lean_counts,
            "average_credibility": self.average_credibility,
            "diversity_warning": self.diversity_warning,
            "research_time": self.research_time,
        }


class ResearchAgent(BaseAgent):
    """
    Args:
        search: Async search callable (query, max_results) -> raw results.
            Defaults to Tavily when a key is configured.
    """

    AGENT_NAME = "research"
    DEFAULT_TEMPERATURE = 0.0

    def __init__(
        self,
        llm: Optional[Any] = None,
        invoker: Optional[AgentInvoker] = None,
        search: Optional[SearchFn] = None,
        max_sources: Optional[int] = None,
    ):
        super().__init__(llm=llm, invoker=invoker)
        if search is None and config.search_configured:
            search = TavilySearch()
        self.search = search
        self.max_sources = max_sources or config.RESEARCH_MAX_SOURCES

    @classmethod
    def default_model(cls) -> str:
        return config.RESEARCH_MODEL

    async def research(self, question: str) -> ResearchResult:
        start_time = time.time()
        if self.search is None:
            agent_logger.warning("No search provider configured, skipping web research")
            return ResearchResult()

        raw = await self.invoker.invoke(
            lambda: self.search(question, self.max_sources),
            "research:search",
        )
        raw = [r for r in raw if isinstance(r, dict) and r.get("url")][: self.max_sources]
        if not raw:
            return ResearchResult(research_time=time.time() - start_time)

        leans = await self._classify_leans(raw)

        sources = []
        for index, item in enumerate(raw):
            url = str(item["url"])
            title = str(item.get("title") or url)
            published = item.get("published_date")
            sources.append(Source(
                url=url,
                title=title,
                content=str(item.get("content") or "")[:4000],
                publisher=publisher_for(url),
                political_lean=leans.get(index, "unknown"),
                source_type=source_type_for(url, title),
                credibility_score=credibility_score(url, published),
                published_date=published,
            ))

        counts = lean_counts(sources)
        result = ResearchResult(
            sources=sources,
            lean_counts=counts,
            average_credibility=round(sum(s.credibility_score for s in sources) / len(sources), 2),
            diversity_warning=self._diversity_warning(counts, len(sources)),
            research_time=time.time() - start_time,
        )
        agent_logger.info(
            "Research complete",
            sources=len(sources),
            leans=counts,
        )
        return result

    async def _classify_leans(self, raw: List[Dict[str, Any]]) -> Dict[int, str]:
        listing = "\n".join(
            f"{i}. {item.get('title', '')} ({_hostname(str(item['url']))})"
            for i, item in enumerate(raw)
        )
        prompt = f"""You are a media bias expert. Classify the political lean of these {len(raw)} sources.

{listing}

Allowed values: {', '.join(POLITICAL_LEANS)}

Return ONLY JSON: {{"classifications": [{{"index": 0, "political_lean": "center"}}]}}"""

        data = await self._complete_json(prompt, agent_name="research:classify")
        leans: Dict[int, str] = {}
        for entry in data.get("classifications", []):
            if not isinstance(entry, dict):
                continue
            lean = str(entry.get("political_lean", "unknown")).lower()
            try:
                index = int(entry.get("index"))
            except (TypeError, ValueError):
                continue
            leans[index] = lean if lean in POLITICAL_LEANS else "unknown"
        return leans

    def _diversity_warning(self, counts: Dict[str, int], total: int) -> Optional[str]:
        left = counts.get("left", 0) + counts.get("center-left", 0)
        right = counts.get("right", 0) + counts.get("center-right", 0)
        if total == 0:
            return None
        if left / total < MIN_SIDE_RATIO or right / total < MIN_SIDE_RATIO:
            message = (
                f"Source diversity is low: {left / total:.0%} left-leaning, "
                f"{right / total:.0%} right-leaning"
            )
            agent_logger.warning(message)
            return message
        return None
