"""
Progress events emitted during a generation run.

The set of event variants is closed. Consumers dispatch on the concrete
class (or the ``type`` tag on the wire) and must reject anything else.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, Optional, Tuple, Union


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class AgentState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class AgentStatus:
    """Live status of one agent within a run."""
    name: str
    stage: str
    state: AgentState = AgentState.PENDING
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    duration_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        return data


@dataclass(frozen=True)
class RunStarted:
    investigation_id: str
    stage: str = "research"
    timestamp: str = field(default_factory=_now)
    type: str = field(default="started", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AgentStarted:
    agent: str
    stage: str
    timestamp: str = field(default_factory=_now)
    type: str = field(default="agent_started", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AgentCompleted:
    agent: str
    stage: str
    duration_ms: int
    timestamp: str = field(default_factory=_now)
    type: str = field(default="agent_completed", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class StageChanged:
    stage: str
    active_agents: Tuple[str, ...] = ()
    timestamp: str = field(default_factory=_now)
    type: str = field(default="stage_changed", init=False)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["active_agents"] = list(self.active_agents)
        return data


@dataclass(frozen=True)
class GenerationComplete:
    investigation_id: str
    score: float
    refunded: bool
    stage: str = "complete"
    warning_reason: Optional[str] = None
    timestamp: str = field(default_factory=_now)
    type: str = field(default="complete", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class GenerationFailed:
    message: str
    stage: str = "failed"
    investigation_id: Optional[str] = None
    refunded: bool = False
    timestamp: str = field(default_factory=_now)
    type: str = field(default="error", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


GenerationEvent = Union[
    RunStarted, AgentStarted, AgentCompleted, StageChanged, GenerationComplete, GenerationFailed
]

EVENT_TYPES: Dict[str, type] = {
    "started": RunStarted,
    "agent_started": AgentStarted,
    "agent_completed": AgentCompleted,
    "stage_changed": StageChanged,
    "complete": GenerationComplete,
    "error": GenerationFailed,
}

TERMINAL_EVENTS = (GenerationComplete, GenerationFailed)


def is_terminal(event: GenerationEvent) -> bool:
    return isinstance(event, TERMINAL_EVENTS)


def event_from_dict(data: Dict[str, Any]) -> GenerationEvent:
    """
    Rebuild an event from its wire form.

    Raises:
        ValueError: If the type tag is not one of the known variants
    """
    payload = dict(data)
    tag = payload.pop("type", None)
    cls = EVENT_TYPES.get(tag)
    if cls is None:
        raise ValueError(f"unknown generation event type: {tag!r}")
    if cls is StageChanged and "active_agents" in payload:
        payload["active_agents"] = tuple(payload["active_agents"])
    return cls(**payload)


def describe(event: GenerationEvent) -> str:
    """One-line human description. Exhaustive over the variants."""
    if isinstance(event, RunStarted):
        return f"generation started for {event.investigation_id}"
    if isinstance(event, AgentStarted):
        return f"{event.agent} started ({event.stage})"
    if isinstance(event, AgentCompleted):
        return f"{event.agent} completed in {event.duration_ms}ms"
    if isinstance(event, StageChanged):
        return f"stage -> {event.stage}"
    if isinstance(event, GenerationComplete):
        return f"complete with score {event.score}"
    if isinstance(event, GenerationFailed):
        return f"failed: {event.message}"
    raise TypeError(f"unhandled generation event: {type(event).__name__}")
