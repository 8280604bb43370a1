"""
Investigation Service

Stores investigations and their research sources. Rows are turned into
typed records on the way out; a row with unexpected columns is an error,
not something to pass through.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Sequence
from uuid import uuid4

from supabase import Client

from briefing.models.investigation import Draft, Investigation, InvestigationStatus, Source
from .client import get_supabase_admin_client


INVESTIGATION_COLUMNS = (
    "id",
    "subject",
    "owner_id",
    "kind",
    "status",
    "draft",
    "overall_score",
    "refunded",
    "warning_reason",
    "created_at",
    "updated_at",
)

SOURCE_COLUMNS = (
    "url",
    "title",
    "content",
    "publisher",
    "political_lean",
    "source_type",
    "credibility_score",
    "published_date",
)


def investigation_from_row(row: Dict[str, Any]) -> Investigation:
    """
    Build an Investigation from a stored row.

    Raises:
        pydantic.ValidationError: Missing or unknown columns
    """
    data = dict(row)
    draft = data.get("draft")
    if draft:
        data["draft"] = Draft(**draft)
    return Investigation(**data)


def source_from_row(row: Dict[str, Any]) -> Source:
    # Link columns belong to the join, not the source.
    data = {k: v for k, v in row.items() if k not in ("id", "investigation_id", "created_at")}
    return Source(**data)


class InvestigationService:
    """
    Service class for investigation records.
    """

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_admin_client()
        return self._client

    # =========================================================================
    # Creation
    # =========================================================================

    async def create_investigation(
        self,
        subject: str,
        owner_id: str,
        kind: str = "brief",
        timestamp: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Create a pending investigation.

        Returns:
            {"id": <new investigation id>}
        """
        created_at = (timestamp or datetime.now(timezone.utc)).isoformat()
        row = {
            "id": str(uuid4()),
            "subject": subject,
            "owner_id": str(owner_id),
            "kind": kind,
            "status": InvestigationStatus.PENDING.value,
            "refunded": False,
            "created_at": created_at,
            "updated_at": created_at,
        }
        result = self.client.table("investigations").insert(row).execute()
        return {"id": result.data[0]["id"]}

    # =========================================================================
    # Retrieval
    # =========================================================================

    async def get_investigation(self, investigation_id: str) -> Optional[Investigation]:
        result = (
            self.client.table("investigations")
            .select(",".join(INVESTIGATION_COLUMNS))
            .eq("id", investigation_id)
            .execute()
        )
        if not result.data:
            return None
        return investigation_from_row(result.data[0])

    async def get_investigation_sources(self, investigation_id: str) -> List[Source]:
        result = (
            self.client.table("investigation_sources")
            .select(",".join(SOURCE_COLUMNS))
            .eq("investigation_id", investigation_id)
            .order("credibility_score", desc=True)
            .execute()
        )
        return [source_from_row(row) for row in result.data or []]

    async def save_sources(self, investigation_id: str, sources: Sequence[Source]) -> int:
        """Attach research sources. Returns the number of rows written."""
        if not sources:
            return 0
        rows = [{"investigation_id": investigation_id, **source.to_dict()} for source in sources]
        result = self.client.table("investigation_sources").insert(rows).execute()
        return len(result.data or [])

    # =========================================================================
    # Checkpoints
    # =========================================================================

    async def mark_complete(
        self,
        investigation_id: str,
        *,
        draft: Draft,
        overall_score: float,
        refunded: bool,
        warning_reason: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Record a finished brief.

        Args:
            investigation_id: Investigation to update
            draft: Final draft
            overall_score: Final consensus score
            refunded: Whether the credit was returned by the quality gate
            warning_reason: Why refinement did not reach the threshold, if it didn't
            details: Consensus, summaries and refinement history as JSON
        """
        update = {
            "status": InvestigationStatus.COMPLETE.value,
            "draft": {"title": draft.title, "sections": dict(draft.sections)},
            "overall_score": overall_score,
            "refunded": refunded,
            "warning_reason": warning_reason,
            "details": details or {},
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        result = (
            self.client.table("investigations")
            .update(update)
            .eq("id", investigation_id)
            .execute()
        )
        return result.data[0] if result.data else {}

    async def mark_failed(
        self,
        investigation_id: str,
        *,
        stage: str,
        refunded: bool,
    ) -> Dict[str, Any]:
        update = {
            "status": InvestigationStatus.FAILED.value,
            "refunded": refunded,
            "failed_stage": stage,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        result = (
            self.client.table("investigations")
            .update(update)
            .eq("id", investigation_id)
            .execute()
        )
        return result.data[0] if result.data else {}
