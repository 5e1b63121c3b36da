from __future__ import annotations

from .models.generation import AttemptOutcome


class StudioServiceError(Exception):
    """Base exception for all studio-service errors."""


class ValidationError(StudioServiceError):
    """Missing or malformed input, rejected before any backend call."""


class InsufficientCreditsError(StudioServiceError):
    """Admission or ledger refusal because the balance cannot cover the amount."""

    def __init__(self, available: int, requested: int) -> None:
        super().__init__(
            f"insufficient credits: available={available} requested={requested}"
        )
        self.available = available
        self.requested = requested


class UpstreamError(StudioServiceError):
    """Failures reported by the synthesis backend.

    Each subclass maps onto exactly one attempt outcome so the orchestrator can
    drive its state machine from the class alone.
    """

    outcome: AttemptOutcome = AttemptOutcome.OTHER_ERROR


class UpstreamRateLimited(UpstreamError):
    """Throttling or quota exhaustion (HTTP 429, RESOURCE_EXHAUSTED)."""

    outcome = AttemptOutcome.RATE_LIMITED


class UpstreamSafetyBlocked(UpstreamError):
    """The backend refused the prompt or the output on safety grounds."""

    outcome = AttemptOutcome.SAFETY_BLOCKED


class UpstreamTimeout(UpstreamError):
    """The call exceeded its per-call deadline."""

    outcome = AttemptOutcome.TIMEOUT


class UpstreamOtherError(UpstreamError):
    """Any other backend failure, including a response without an image."""

    outcome = AttemptOutcome.OTHER_ERROR


class PersistenceError(StudioServiceError):
    """ArtifactStore or ledger store failures."""


class ConcurrentUpdateError(PersistenceError):
    """The balance row kept changing underneath the compare-and-swap loop."""
