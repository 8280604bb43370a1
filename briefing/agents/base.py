"""
Shared plumbing for every model-backed agent.

Agents build a prompt, send it through the AgentInvoker, and parse the
JSON the model returns. Parsing happens outside the invoker: a malformed
response is a validation failure, not a transient one, so it is never
retried.
"""

import json
from typing import Any, Dict, List, Optional

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import HumanMessage, SystemMessage

from briefing.agents.invoker import AgentInvoker
from briefing.config import config
from briefing.exceptions import AgentOutputError


def response_text(content: Any) -> str:
    """Flatten a chat model response body into plain text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
    return str(content)


def extract_json(text: str, agent_name: str = "agent") -> Any:
    """
    Parse JSON out of a model response.

    Handles ```json fences and leading/trailing prose around a single
    top-level object.

    Raises:
        AgentOutputError: If no valid JSON can be found
    """
    text = text.strip()

    # Handle markdown code blocks
    if "```json" in text:
        text = text.split("```json")[1].split("```")[0].strip()
    elif "```" in text:
        text = text.split("```")[1].split("```")[0].strip()

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(text[start:end + 1])
        except json.JSONDecodeError as e:
            raise AgentOutputError(agent_name, f"invalid JSON ({e.msg})") from None
    raise AgentOutputError(agent_name, "no JSON object in response")


def require_object(data: Any, agent_name: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise AgentOutputError(agent_name, f"expected a JSON object, got {type(data).__name__}")
    return data


class BaseAgent:
    """
    Base class for model-backed agents.

    Args:
        llm: Chat model (defaults to ChatAnthropic built from config; injectable for tests)
        invoker: AgentInvoker applying the retry policy
        model_name: Override the agent's default model
        temperature: Sampling temperature
    """

    AGENT_NAME = "agent"
    DEFAULT_TEMPERATURE = 0.3

    def __init__(
        self,
        llm: Optional[Any] = None,
        invoker: Optional[AgentInvoker] = None,
        model_name: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ):
        self.model_name = model_name or self.default_model()
        self.temperature = self.DEFAULT_TEMPERATURE if temperature is None else temperature
        self.max_tokens = max_tokens or config.MAX_TOKENS
        self._llm = llm
        self.invoker = invoker or AgentInvoker()

    @classmethod
    def default_model(cls) -> str:
        return config.DRAFTING_MODEL

    @property
    def llm(self):
        if self._llm is None:
            self._llm = ChatAnthropic(
                model=self.model_name,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                anthropic_api_key=config.ANTHROPIC_API_KEY,
                timeout=config.AGENT_TIMEOUT_SECONDS,
            )
        return self._llm

    async def _complete(self, prompt: str, system: Optional[str] = None, agent_name: Optional[str] = None) -> str:
        """Send one prompt through the invoker and return the response text."""
        messages: List[Any] = []
        if system:
            messages.append(SystemMessage(content=system))
        messages.append(HumanMessage(content=prompt))

        async def call() -> str:
            response = await self.llm.ainvoke(messages)
            return response_text(response.content)

        return await self.invoker.invoke(call, agent_name or self.AGENT_NAME)

    async def _complete_json(self, prompt: str, system: Optional[str] = None, agent_name: Optional[str] = None) -> Dict[str, Any]:
        name = agent_name or self.AGENT_NAME
        text = await self._complete(prompt, system=system, agent_name=name)
        return require_object(extract_json(text, name), name)
