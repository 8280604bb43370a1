"""
BriefGenerationService: credit check → create → deduct → run → gate.

This is the entry point the API calls. It is the only place that knows
about both the credit ledger and the pipeline, and it guarantees:

- no investigation is created without a credit check;
- the credit is deducted right after creation, and refunded when the run
  fails, is cancelled, or finishes below the quality threshold;
- the run's bus receives exactly one terminal event, except on
  cancellation, where it is closed with none.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from briefing.config import config
from briefing.database.credits import InsufficientCreditsError
from briefing.exceptions import PipelineError, public_message_for
from briefing.models.events import GenerationFailed
from briefing.models.investigation import Investigation, InvestigationStatus
from briefing.pipeline.events import EventBus
from briefing.pipeline.gates import CreditGate, CreditReservation, QualityGateResult, evaluate_quality
from briefing.pipeline.graph import PipelineAgents
from briefing.pipeline.orchestrator import BriefResult, StageOrchestrator
from briefing.utils.logging import pipeline_logger


INSUFFICIENT_CREDIT_MESSAGE = "insufficient credit"

REFUND_REASON_QUALITY = "quality_below_threshold"
REFUND_REASON_FAILED = "generation_failed"
REFUND_REASON_CANCELLED = "generation_cancelled"


class OutcomeStatus(str, Enum):
    INSUFFICIENT_CREDIT = "insufficient_credit"
    COMPLETED = "completed"
    QUALITY_REFUNDED = "quality_refunded"
    FAILED = "failed"


@dataclass
class GenerationOutcome:
    status: OutcomeStatus
    investigation_id: Optional[str] = None
    score: Optional[float] = None
    refunded: bool = False
    quality: Optional[QualityGateResult] = None
    result: Optional[BriefResult] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "investigation_id": self.investigation_id,
            "score": self.score,
            "refunded": self.refunded,
            "quality": self.quality.to_dict() if self.quality else None,
            "brief": self.result.to_dict() if self.result else None,
            "error": self.error,
        }


class BriefGenerationService:
    """
    Runs one generation end to end against the persistence and credit
    collaborators.

    Args:
        store: Investigation persistence (create_investigation, mark_complete,
            mark_failed, save_sources)
        credits: Credit ledger (has_credits, deduct_credits, refund_credits)
        agents: Pipeline agents; built on first use if omitted
        stage_timeout: Per-agent time budget in seconds
    """

    def __init__(
        self,
        store=None,
        credits=None,
        agents: Optional[PipelineAgents] = None,
        stage_timeout: Optional[float] = None,
    ):
        if store is None or credits is None:
            from briefing.database import CreditService, InvestigationService
            store = store or InvestigationService()
            credits = credits or CreditService()
        self.store = store
        self.credit_gate = CreditGate(credits)
        self._agents = agents
        self.stage_timeout = stage_timeout or config.STAGE_TIMEOUT_SECONDS

    @property
    def agents(self) -> PipelineAgents:
        if self._agents is None:
            self._agents = PipelineAgents.create()
        return self._agents

    async def has_credits(self, owner_id: str) -> bool:
        return await self.credit_gate.check(owner_id)

    async def generate(
        self,
        subject: str,
        owner_id: str,
        kind: str = "brief",
        bus: Optional[EventBus] = None,
    ) -> GenerationOutcome:
        """
        Generate one brief.

        Insufficient credit and a failed quality gate are outcomes, not
        exceptions. Pipeline failures are reported as a FAILED outcome with
        a sanitized message.

        Raises:
            asyncio.CancelledError: The caller cancelled; the credit has
                still been refunded
        """
        bus = bus or EventBus()

        if not await self.credit_gate.check(owner_id):
            return self._reject_insufficient(bus, owner_id)

        now = datetime.now(timezone.utc)
        try:
            created = await self.store.create_investigation(subject, owner_id, kind, now)
        except asyncio.CancelledError:
            bus.close()
            raise
        except Exception as exc:
            return self._setup_failed(bus, "create", exc)

        investigation = Investigation(
            id=created["id"],
            subject=subject,
            owner_id=owner_id,
            kind=kind,
            created_at=now,
            updated_at=now,
        )

        # Shielded so a cancellation cannot leave a deduction we never saw.
        deduction = asyncio.ensure_future(self.credit_gate.reserve(owner_id, investigation.id, subject))
        try:
            reservation = await asyncio.shield(deduction)
        except InsufficientCreditsError:
            # Another request spent the balance between check and deduction.
            await self._mark_failed(investigation, "credit", refunded=False)
            return self._reject_insufficient(bus, owner_id, investigation.id)
        except asyncio.CancelledError:
            await asyncio.shield(self._abandon_deduction(deduction, investigation, bus))
            raise
        except Exception as exc:
            await self._mark_failed(investigation, "credit", refunded=False)
            return self._setup_failed(bus, "credit", exc, investigation.id)

        orchestrator = StageOrchestrator(self.agents, bus=bus, stage_timeout=self.stage_timeout)
        try:
            result = await orchestrator.run(investigation)
            quality = evaluate_quality(result.overall_score)
            refunded = False
            if quality.refund_required:
                refunded = await self.credit_gate.refund(reservation, REFUND_REASON_QUALITY)
            await self._persist_complete(investigation, result, refunded)
        except asyncio.CancelledError:
            await asyncio.shield(self._cancelled(orchestrator, investigation, reservation))
            raise
        except Exception as exc:
            return await self._failed(orchestrator, investigation, reservation, exc)

        orchestrator.complete(investigation, result, refunded)
        status = OutcomeStatus.QUALITY_REFUNDED if quality.refund_required else OutcomeStatus.COMPLETED
        pipeline_logger.info(
            "Brief generation complete",
            investigation_id=investigation.id,
            score=result.overall_score,
            tier=quality.tier.value,
            refunded=refunded,
        )
        return GenerationOutcome(
            status=status,
            investigation_id=investigation.id,
            score=result.overall_score,
            refunded=refunded,
            quality=quality,
            result=result,
        )

    def _reject_insufficient(
        self,
        bus: EventBus,
        owner_id: str,
        investigation_id: Optional[str] = None,
    ) -> GenerationOutcome:
        pipeline_logger.info("Generation rejected: insufficient credit", owner_id=owner_id)
        bus.publish(GenerationFailed(
            message=INSUFFICIENT_CREDIT_MESSAGE,
            investigation_id=investigation_id,
        ))
        bus.close()
        return GenerationOutcome(
            status=OutcomeStatus.INSUFFICIENT_CREDIT,
            investigation_id=investigation_id,
            error=INSUFFICIENT_CREDIT_MESSAGE,
        )

    def _setup_failed(
        self,
        bus: EventBus,
        stage: str,
        exc: Exception,
        investigation_id: Optional[str] = None,
    ) -> GenerationOutcome:
        """Report a failure that happened before the pipeline started; nothing was deducted."""
        message = public_message_for(exc)
        pipeline_logger.error(
            "Brief generation could not start",
            investigation_id=investigation_id,
            stage=stage,
            error_type=type(exc).__name__,
        )
        bus.publish(GenerationFailed(message=message, stage=stage, investigation_id=investigation_id))
        bus.close()
        return GenerationOutcome(
            status=OutcomeStatus.FAILED,
            investigation_id=investigation_id,
            error=message,
        )

    async def _abandon_deduction(
        self,
        deduction: "asyncio.Future[CreditReservation]",
        investigation: Investigation,
        bus: EventBus,
    ) -> None:
        bus.close()
        reservation = None
        try:
            reservation = await deduction
        except Exception as e:
            pipeline_logger.info(
                "Deduction did not complete before cancellation",
                investigation_id=investigation.id,
                error_type=type(e).__name__,
            )
        refunded = await self.credit_gate.refund(reservation, REFUND_REASON_CANCELLED)
        investigation.refunded = refunded
        investigation.transition_to(InvestigationStatus.FAILED)
        await self._mark_failed(investigation, "credit", refunded)

    async def _persist_complete(
        self,
        investigation: Investigation,
        result: BriefResult,
        refunded: bool,
    ) -> None:
        await self.store.save_sources(investigation.id, result.sources)
        await self.store.mark_complete(
            investigation.id,
            draft=result.draft,
            overall_score=result.overall_score,
            refunded=refunded,
            warning_reason=result.warning_reason,
            details={
                "consensus": result.consensus.to_dict(),
                "summaries": result.summaries,
                "refinement": result.refinement.to_dict() if result.refinement else None,
                "completed_steps": result.completed_steps,
                "word_count": result.draft.word_count(),
            },
        )

    async def _failed(
        self,
        orchestrator: StageOrchestrator,
        investigation: Investigation,
        reservation: CreditReservation,
        exc: Exception,
    ) -> GenerationOutcome:
        stage = exc.stage if isinstance(exc, PipelineError) else orchestrator.current_stage
        message = public_message_for(exc)
        pipeline_logger.error(
            "Brief generation failed",
            investigation_id=investigation.id,
            stage=stage,
            error_type=type(exc).__name__,
        )
        refunded = await self.credit_gate.refund(reservation, REFUND_REASON_FAILED)
        await self._mark_failed(investigation, stage, refunded)
        orchestrator.fail(investigation, message, refunded)
        return GenerationOutcome(
            status=OutcomeStatus.FAILED,
            investigation_id=investigation.id,
            refunded=refunded,
            error=message,
        )

    async def _cancelled(
        self,
        orchestrator: StageOrchestrator,
        investigation: Investigation,
        reservation: CreditReservation,
    ) -> None:
        orchestrator.cancel()
        refunded = await self.credit_gate.refund(reservation, REFUND_REASON_CANCELLED)
        investigation.refunded = refunded
        if not investigation.is_terminal:
            investigation.transition_to(InvestigationStatus.FAILED)
        await self._mark_failed(investigation, orchestrator.current_stage, refunded)

    async def _mark_failed(self, investigation: Investigation, stage: str, refunded: bool) -> None:
        # A persistence failure here must not replace the outcome being reported.
        try:
            await self.store.mark_failed(investigation.id, stage=stage, refunded=refunded)
        except Exception as e:
            pipeline_logger.error(
                "Failed to record investigation failure",
                investigation_id=investigation.id,
                error_type=type(e).__name__,
            )
