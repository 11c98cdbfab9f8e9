"""
errors.py
~~~~~~~~~
Error taxonomy for the admin console.

  • Validation errors are raised before any network call.
  • Backend errors carry the remote status code and message.
  • 503 backpressure carries the server-specified retry delay.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again."


class DocuTrainError(Exception):
    """Base class for every error this service raises on purpose."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DocuTrainError):
    """Bad input caught locally; no backend call was made."""
    status_code = 400


class RetrainValidationError(ValidationError):
    pass


class AuthenticationRequiredError(DocuTrainError):
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class JobNotRetryableError(DocuTrainError):
    status_code = 409


class BackendError(DocuTrainError):
    """The DocuTrain backend answered with a non-2xx status, or was unreachable."""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        # Transport failures have no upstream status; surface them as a bad gateway.
        self.status_code = status_code or 502
        self.payload = payload or {}


class BackendUnavailableError(BackendError):
    """503 backpressure from the processing endpoint."""

    def __init__(self, message: str, retry_after: float, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=503, payload=payload)
        self.retry_after = retry_after


def user_message(exc: BaseException, fallback: str = GENERIC_ERROR_MESSAGE) -> str:
    """Human-readable message for an alert, falling back to a generic one."""
    message = getattr(exc, "message", None) or str(exc)
    return message.strip() or fallback


# ─── FastAPI Handlers ────────────────────────────────────────────────────────

async def docutrain_error_handler(request: Request, exc: DocuTrainError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.message}")

    headers = {}
    if isinstance(exc, BackendUnavailableError):
        headers["Retry-After"] = str(int(exc.retry_after))

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": user_message(exc)},
        headers=headers,
    )
