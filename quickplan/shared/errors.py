"""
Error taxonomy for the Quick Plan orchestrator.

- ValidationError: malformed or missing user input, rejected before any
  state is mutated.
- EnrichmentFailure: a classified failure of one enrichment call. Never
  fatal; the coordinator converts it into a degraded confidence marker and
  an apologetic transcript message.
- SequencingInvariantViolation: the phase moved somewhere it should not
  have. Corrected by reverting, then logged as a defect signal.
- PersistenceFailure: the final snapshot write failed. Blocks completion
  and is retryable without losing gathered state.
"""

from typing import Any, Dict, Optional


class QuickPlanError(Exception):
    """Base exception for the orchestrator."""

    def __init__(
        self,
        message: str,
        code: str = "QP_000",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)


class ValidationError(QuickPlanError):
    """Rejected user input."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        code: str = "QP_400",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.field = field
        super().__init__(message, code, details)


class DuplicateSubmissionError(ValidationError):
    """A response arrived while the previous one was still being processed."""

    def __init__(self, message: str = "A response is already being processed"):
        super().__init__(message, code="QP_409")


# Failure kinds reported by the gateway
TIMEOUT = "timeout"
NETWORK = "network"
RATE_LIMITED = "rate_limited"
SERVER = "server"

FAILURE_KINDS = (TIMEOUT, NETWORK, RATE_LIMITED, SERVER)


class EnrichmentFailure(QuickPlanError):
    """A single enrichment call failed."""

    def __init__(
        self,
        kind: str,
        message: str,
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        if kind not in FAILURE_KINDS:
            raise ValueError(f"Unknown failure kind: {kind}")
        self.kind = kind
        self.endpoint = endpoint
        self.status_code = status_code
        super().__init__(
            message,
            code=f"QP_ENRICH_{kind.upper()}",
            details={"endpoint": endpoint, "status_code": status_code},
        )

    @property
    def is_transient(self) -> bool:
        """Rate limits and server errors are worth another attempt."""
        return self.kind in (RATE_LIMITED, SERVER)


class SequencingInvariantViolation(QuickPlanError):
    """The phase advanced or regressed outside a sanctioned transition."""

    def __init__(self, message: str, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(
            message,
            code="QP_SEQ",
            details={"expected": expected, "actual": actual},
        )


class PersistenceFailure(QuickPlanError):
    """Writing the completed plan snapshot failed."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="QP_503", details=details)

    @property
    def retryable(self) -> bool:
        return True
