"""
Exception taxonomy for brief generation.

Two families matter to callers:

- ServiceUnavailableError: an external model (or search) call failed after
  the retry policy gave up. Its message is fixed and safe to show to users.
- ValidationError and subclasses: a defect in the data flowing between
  components (unknown persona, malformed model output, bad score). These
  are programmer-visible and abort the run.
"""

from typing import Optional


class BriefingError(Exception):
    """Base class for all brief engine errors."""
    pass


class ServiceUnavailableError(BriefingError):
    """Raised when an agent call fails after all permitted attempts."""

    PUBLIC_MESSAGE = "service temporarily unavailable"

    def __init__(
        self,
        agent_name: str = "agent",
        attempts: int = 0,
        retryable: bool = True
    ):
        super().__init__(self.PUBLIC_MESSAGE)
        self.agent_name = agent_name
        self.attempts = attempts
        self.retryable = retryable


class ValidationError(BriefingError):
    """Data passed between components violates its contract."""
    pass


class UnknownEvaluatorRoleError(ValidationError):
    """Raised when a persona is requested for a role outside the closed set."""

    def __init__(self, role):
        super().__init__(f"unknown evaluator role: {role}")
        self.role = role


class DimensionScoreError(ValidationError):
    """Raised for missing, unknown, or out-of-range dimension scores."""
    pass


class AgentOutputError(ValidationError):
    """Raised when a model response cannot be parsed into the expected shape."""

    def __init__(self, agent_name: str, reason: str):
        super().__init__(f"{agent_name} returned malformed output: {reason}")
        self.agent_name = agent_name
        self.reason = reason


class StageTimeoutError(BriefingError):
    """Raised when a pipeline stage exceeds its time budget."""

    def __init__(self, stage: str, timeout_seconds: float):
        super().__init__(f"stage '{stage}' timed out after {timeout_seconds:.0f}s")
        self.stage = stage
        self.timeout_seconds = timeout_seconds


class PipelineError(BriefingError):
    """Raised when a stage fails. Carries the stage name and a sanitized message."""

    def __init__(self, stage: str, public_message: str, cause: Optional[BaseException] = None):
        super().__init__(f"{stage}: {public_message}")
        self.stage = stage
        self.public_message = public_message
        self.cause = cause


def public_message_for(exc: BaseException) -> str:
    """Map any failure to a message that is safe to send to end users."""
    if isinstance(exc, PipelineError):
        return exc.public_message
    if isinstance(exc, ServiceUnavailableError):
        return ServiceUnavailableError.PUBLIC_MESSAGE
    if isinstance(exc, StageTimeoutError):
        return "generation timed out"
    return "brief generation failed"
