"""
Quality and credit gates around a generation run.

A credit is deducted as soon as the investigation exists, so every path
that does not deliver a passing brief must refund it explicitly.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from briefing.config import config
from briefing.models.dimensions import QUALITY_THRESHOLD
from briefing.utils.logging import credit_logger


HIGH_QUALITY_THRESHOLD = 8.0


class QualityTier(str, Enum):
    HIGH = "high"
    ACCEPTABLE = "acceptable"
    FAILED = "failed"


@dataclass(frozen=True)
class QualityGateResult:
    tier: QualityTier
    score: float
    publishable: bool
    warning_badge: bool
    refund_required: bool

    def to_dict(self):
        return {
            "tier": self.tier.value,
            "score": self.score,
            "publishable": self.publishable,
            "warning_badge": self.warning_badge,
            "refund_required": self.refund_required,
        }


def evaluate_quality(score: float) -> QualityGateResult:
    """
    Classify a final overall score.

    Scores of 8.0 and above are high quality; 6.0 up to 8.0 is acceptable
    and carries a warning badge; anything lower fails the gate and the
    credit is refunded. A failed brief is still returned, flagged.
    """
    if score >= HIGH_QUALITY_THRESHOLD:
        tier = QualityTier.HIGH
    elif score >= QUALITY_THRESHOLD:
        tier = QualityTier.ACCEPTABLE
    else:
        tier = QualityTier.FAILED
    return QualityGateResult(
        tier=tier,
        score=score,
        publishable=tier != QualityTier.FAILED,
        warning_badge=tier != QualityTier.HIGH,
        refund_required=tier == QualityTier.FAILED,
    )


@dataclass
class CreditReservation:
    """A deducted credit that may still need to be refunded."""
    owner_id: str
    investigation_id: str
    amount: int
    refund_attempted: bool = False
    refunded: bool = False


class CreditGate:
    """
    Wraps the credit ledger with check, reserve and refund-at-most-once.

    Args:
        credits: Ledger exposing has_credits, deduct_credits and refund_credits
        cost: Credits per generation, whatever the number of refinement rounds
    """

    def __init__(self, credits, cost: Optional[int] = None):
        self.credits = credits
        self.cost = cost or config.CREDITS_PER_BRIEF

    async def check(self, owner_id: str) -> bool:
        return await self.credits.has_credits(owner_id, self.cost)

    async def reserve(self, owner_id: str, investigation_id: str, subject: str) -> CreditReservation:
        """
        Deduct the generation cost now.

        Raises:
            InsufficientCreditsError: The ledger refused the deduction
        """
        await self.credits.deduct_credits(
            owner_id,
            self.cost,
            investigation_id,
            f"Brief generation: {subject[:80]}",
        )
        credit_logger.info(
            "Credit deducted",
            owner_id=owner_id,
            investigation_id=investigation_id,
            amount=self.cost,
        )
        return CreditReservation(owner_id=owner_id, investigation_id=investigation_id, amount=self.cost)

    async def refund(self, reservation: Optional[CreditReservation], reason: str) -> bool:
        """
        Return a reserved credit. Runs at most once per reservation.

        A ledger failure is logged and reported as False; it never replaces
        the outcome the caller is about to deliver. A refund interrupted by
        cancellation does not count as attempted, so the cancellation path
        can still return the credit.

        Returns:
            True if the reservation has been refunded, by this call or an
            earlier one
        """
        if reservation is None:
            return False
        if reservation.refund_attempted:
            return reservation.refunded
        reservation.refund_attempted = True
        try:
            await self.credits.refund_credits(
                reservation.owner_id,
                reservation.amount,
                reservation.investigation_id,
                reason,
            )
        except asyncio.CancelledError:
            reservation.refund_attempted = False
            raise
        except Exception as e:
            credit_logger.error(
                "Credit refund failed",
                owner_id=reservation.owner_id,
                investigation_id=reservation.investigation_id,
                reason=reason,
                error_type=type(e).__name__,
            )
            return False
        reservation.refunded = True
        credit_logger.info(
            "Credit refunded",
            owner_id=reservation.owner_id,
            investigation_id=reservation.investigation_id,
            reason=reason,
        )
        return True
