"""
Credit Service

The credit ledger the generation pipeline consumes. Balance changes go
through the deduct_credits / add_credits database functions so they are
atomic; refunds are also recorded in credit_refunds for audit.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any, List
from uuid import UUID

from supabase import Client

from .client import get_supabase_admin_client


class InsufficientCreditsError(Exception):
    """Raised when an owner doesn't have enough credits."""
    pass


class CreditService:
    """
    Service class for credit operations.
    """

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_admin_client()
        return self._client

    # =========================================================================
    # Balance
    # =========================================================================

    async def get_balance(self, owner_id: UUID | str) -> int:
        """Get the owner's current credit balance."""
        result = (
            self.client.table("users")
            .select("credits")
            .eq("id", str(owner_id))
            .execute()
        )

        if not result.data:
            raise ValueError(f"User {owner_id} not found")

        return result.data[0]["credits"]

    async def has_credits(self, owner_id: UUID | str, amount: int = 1) -> bool:
        balance = await self.get_balance(owner_id)
        return balance >= amount

    # =========================================================================
    # Deduction and refund
    # =========================================================================

    async def deduct_credits(
        self,
        owner_id: UUID | str,
        amount: int,
        investigation_id: UUID | str,
        reason: str,
    ) -> None:
        """
        Deduct credits for a generation.

        Raises:
            InsufficientCreditsError: If the balance is below ``amount``
        """
        result = self.client.rpc(
            "deduct_credits",
            {
                "p_user_id": str(owner_id),
                "p_amount": amount,
                "p_transaction_type": "brief_generation",
                "p_reference_id": str(investigation_id),
                "p_description": reason,
            }
        ).execute()

        # The function returns true on success
        if not result.data:
            raise InsufficientCreditsError(
                f"User {owner_id} has insufficient credits. Required: {amount}"
            )

    async def refund_credits(
        self,
        owner_id: UUID | str,
        amount: int,
        investigation_id: UUID | str,
        reason: str,
    ) -> int:
        """
        Return credits for a failed or below-threshold generation.

        Returns:
            New credit balance
        """
        self.client.table("credit_refunds").insert({
            "user_id": str(owner_id),
            "investigation_id": str(investigation_id),
            "amount": amount,
            "reason": reason,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }).execute()

        result = self.client.rpc(
            "add_credits",
            {
                "p_user_id": str(owner_id),
                "p_amount": amount,
                "p_transaction_type": "brief_refund",
                "p_reference_id": str(investigation_id),
                "p_description": reason,
                "p_metadata": None,
            }
        ).execute()

        return result.data

    async def get_refunds(self, investigation_id: UUID | str) -> List[Dict[str, Any]]:
        """Refund rows recorded for one investigation, oldest first."""
        result = (
            self.client.table("credit_refunds")
            .select("*")
            .eq("investigation_id", str(investigation_id))
            .order("created_at")
            .execute()
        )
        return result.data or []
