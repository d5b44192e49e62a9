"""
Workflow error taxonomy and its HTTP rendering.

Every error carries a short machine-checkable ``code`` and a human-readable
message. Internal details (stack traces, SQL, driver messages) never reach the
response body; they are logged server-side instead.
"""

from __future__ import annotations

from typing import Any, Optional

import structlog
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

log = structlog.get_logger()


class WorkflowError(Exception):
    """Base class for errors surfaced to API callers."""

    code = "WORKFLOW_ERROR"
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: Optional[str] = None, details: Optional[dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationError(WorkflowError):
    code = "VALIDATION_ERROR"
    status_code = 400
    default_message = "Invalid request"


class NotFound(WorkflowError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Not found"


class Forbidden(WorkflowError):
    code = "FORBIDDEN"
    status_code = 403
    default_message = "Access denied"


class VerificationRequired(WorkflowError):
    code = "VERIFICATION_REQUIRED"
    status_code = 400
    default_message = "Customer email must be verified before creating task"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message, details={"requires_verification": True})


class ChallengeError(WorkflowError):
    code = "CHALLENGE_ERROR"
    status_code = 400


class NoChallengePending(ChallengeError):
    code = "NO_CHALLENGE_PENDING"
    default_message = "No verification pending for this email"


class ChallengeExpired(ChallengeError):
    code = "CHALLENGE_EXPIRED"
    default_message = "Verification code expired"


class CodeMismatch(ChallengeError):
    code = "CODE_MISMATCH"
    default_message = "Invalid verification code"


class ConflictError(WorkflowError):
    code = "CONCURRENT_UPDATE"
    status_code = 409
    default_message = "Task was modified concurrently, please retry"


class DependencyFailure(WorkflowError):
    code = "DEPENDENCY_FAILURE"
    status_code = 503
    default_message = "Service temporarily unavailable"


class AuthenticationRequired(WorkflowError):
    code = "AUTHENTICATION_REQUIRED"
    status_code = 401
    default_message = "Authentication required"


# ---------------------------------------------------------------------------
# HTTP rendering
# ---------------------------------------------------------------------------


def error_payload(
    code: str, message: str, status: int, details: Optional[dict[str, Any]] = None
) -> dict[str, Any]:
    body: dict[str, Any] = {"code": code, "message": message, "status": status}
    if details is not None:
        body["details"] = details
    return {"error": body}


async def workflow_error_handler(_: Request, exc: WorkflowError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload(exc.code, exc.message, exc.status_code, exc.details),
    )


async def request_validation_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [".".join(str(p) for p in err.get("loc", ())) for err in exc.errors()]
    return JSONResponse(
        status_code=ValidationError.status_code,
        content=error_payload(
            ValidationError.code,
            "Malformed request",
            ValidationError.status_code,
            {"fields": fields},
        ),
    )


async def storage_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log.error("storage.unavailable", path=request.url.path, error=repr(exc))
    failure = DependencyFailure()
    return JSONResponse(
        status_code=failure.status_code,
        content=error_payload(failure.code, failure.message, failure.status_code),
    )
