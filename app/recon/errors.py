"""
Reconciliation error types.

Each error knows its HTTP status so the app-level exception handler can
render it without the routers translating every case.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    EXTRACTION_FAILED = "EXTRACTION_FAILED"
    CAPABILITY_DISABLED = "CAPABILITY_DISABLED"
    MAILBOX_UNAVAILABLE = "MAILBOX_UNAVAILABLE"


class ReconError(Exception):
    """Base exception with structured error info."""

    status_code = 400

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.code = code
        self.message = message
        self.context = context or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "error": self.code.value,
            "message": self.message,
        }
        if self.context:
            result["context"] = self.context
        return result


class NotFound(ReconError):
    status_code = 404

    def __init__(self, kind: str, ident: str):
        super().__init__(
            ErrorCode.NOT_FOUND,
            f"{kind} not found",
            context={"kind": kind, "id": ident},
        )


class ValidationFailure(ReconError):
    status_code = 422

    def __init__(self, message: str, **context):
        super().__init__(ErrorCode.VALIDATION_FAILED, message, context=context)


class InvalidTransition(ReconError):
    status_code = 409

    def __init__(self, message: str, **context):
        super().__init__(ErrorCode.INVALID_TRANSITION, message, context=context)


class ExtractionUnavailable(ReconError):
    status_code = 422

    def __init__(self, message: str = "Could not extract amount from evidence", **context):
        super().__init__(ErrorCode.EXTRACTION_FAILED, message, context=context)


class CapabilityDisabled(ReconError):
    status_code = 501

    def __init__(self, capability: str):
        super().__init__(
            ErrorCode.CAPABILITY_DISABLED,
            f"{capability} is not enabled on this deployment",
            context={"capability": capability},
        )


class SyncAborted(ReconError):
    """A mailbox pass stopped early; ``count`` evidence rows were already saved."""

    status_code = 502

    def __init__(self, count: int, cause: Exception):
        self.count = count
        self.cause = cause
        super().__init__(
            ErrorCode.MAILBOX_UNAVAILABLE,
            f"Mailbox unavailable: {cause}",
            context={"count": count},
        )
