"""
Investigation records and the draft they carry.

An Investigation is the persistent record of one brief generation run.
Rows read back from storage are validated strictly (extra="forbid") so
a schema drift fails loudly instead of silently dropping fields.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, Optional, List, Tuple

from pydantic import BaseModel, ConfigDict, Field


class InvestigationStatus(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    SCORING = "scoring"
    REFINING = "refining"
    COMPLETE = "complete"
    FAILED = "failed"


# Legal status moves; FAILED is reachable from every non-terminal state.
_TRANSITIONS: Dict[InvestigationStatus, Tuple[InvestigationStatus, ...]] = {
    InvestigationStatus.PENDING: (InvestigationStatus.GENERATING,),
    InvestigationStatus.GENERATING: (InvestigationStatus.SCORING,),
    InvestigationStatus.SCORING: (InvestigationStatus.REFINING, InvestigationStatus.COMPLETE),
    InvestigationStatus.REFINING: (InvestigationStatus.COMPLETE,),
    InvestigationStatus.COMPLETE: (),
    InvestigationStatus.FAILED: (),
}


def can_transition(current: InvestigationStatus, target: InvestigationStatus) -> bool:
    if target == InvestigationStatus.FAILED:
        return current not in (InvestigationStatus.COMPLETE, InvestigationStatus.FAILED)
    return target in _TRANSITIONS[current]


class Draft(BaseModel):
    """
    A brief's text, as ordered named sections.

    Drafts are immutable; edits produce a new Draft.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    title: str = ""
    sections: Dict[str, str] = Field(default_factory=dict)

    def section_names(self) -> List[str]:
        return list(self.sections.keys())

    def find_section(self, name: str) -> Optional[str]:
        """Resolve a section name case-insensitively. Returns the stored key."""
        if name in self.sections:
            return name
        wanted = name.strip().lower()
        for key in self.sections:
            if key.lower() == wanted:
                return key
        return None

    def with_section(self, name: str, text: str) -> "Draft":
        sections = dict(self.sections)
        sections[name] = text
        return Draft(title=self.title, sections=sections)

    def render(self) -> str:
        """Render as markdown, one heading per section."""
        parts = [f"# {self.title}"] if self.title else []
        for name, text in self.sections.items():
            parts.append(f"## {name}\n\n{text}")
        return "\n\n".join(parts)

    def word_count(self) -> int:
        return sum(len(text.split()) for text in self.sections.values())


class Source(BaseModel):
    """A research source attached to an investigation."""

    model_config = ConfigDict(extra="forbid")

    url: str
    title: str
    content: str = ""
    publisher: str = ""
    political_lean: str = "unknown"
    source_type: str = "secondary"
    credibility_score: float = Field(default=5.0, ge=0.0, le=10.0)
    published_date: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()


class Investigation(BaseModel):
    """One brief generation run, as stored."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    id: str
    subject: str
    owner_id: str
    kind: str = "brief"
    status: InvestigationStatus = InvestigationStatus.PENDING
    draft: Optional[Draft] = None
    overall_score: Optional[float] = Field(default=None, ge=0.0, le=10.0)
    refunded: bool = False
    warning_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def transition_to(self, target: InvestigationStatus) -> None:
        """
        Move to a new status.

        Raises:
            ValueError: If the move is not a legal transition
        """
        if not can_transition(self.status, target):
            raise ValueError(
                f"illegal investigation transition {self.status.value} -> {target.value}"
            )
        self.status = target
        self.updated_at = datetime.now(timezone.utc)

    @property
    def is_terminal(self) -> bool:
        return self.status in (InvestigationStatus.COMPLETE, InvestigationStatus.FAILED)
