"""
Exception taxonomy for the adaptive exam engine.

Every engine error derives from CATError so the API layer can map the whole
family with one handler. Errors carry a human-readable message, optional
structured context for logs, and the underlying cause where one exists.
"""

from typing import Any, Dict, Optional


class CATError(Exception):
    """Base class for adaptive exam engine errors."""

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Initialize with message, optional cause, and structured context."""
        self.message = message
        self.original_error = original_error
        self.context = context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        msg = self.message
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            msg = f"{msg} (context: {ctx_str})"
        if self.original_error:
            msg = f"{msg} - caused by: {str(self.original_error)}"
        return msg


class InvalidSessionState(CATError):
    """Operation attempted on a session that is not in the required state."""


class SessionNotFound(CATError):
    """No session exists with the requested ID."""


class ItemMismatch(CATError):
    """A response was submitted for an item other than the one presented."""


class NoEligibleItems(CATError):
    """The candidate pool is empty after balancing and exclusion of used items."""


class NoEligibleCategory(CATError):
    """The test plan admits no category for the next item (infeasible plan)."""


class EstimatorNonConvergence(CATError):
    """Maximum likelihood estimation failed; recovered locally with EAP."""


class ConcurrentModification(CATError):
    """Optimistic-concurrency conflict on a session write. Retry the whole turn."""


class ItemBankUnavailable(CATError):
    """The item bank store failed. Retryable; no exam state was committed."""


class InvalidTestPlan(CATError, ValueError):
    """Test plan quotas are malformed or cannot be satisfied."""


class InvalidExamConfig(CATError, ValueError):
    """Exam configuration values are out of range or inconsistent."""
