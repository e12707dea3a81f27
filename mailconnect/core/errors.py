# mailconnect/core/errors.py

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class MailConnectError(Exception):
    """Base class for errors surfaced to API callers as {"detail": ...}."""

    status_code = 500
    default_detail = "Internal server error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


# === Caller errors
class ValidationError(MailConnectError):
    status_code = 400
    default_detail = "Invalid input"


class AuthenticationError(MailConnectError):
    status_code = 401
    default_detail = "Unauthorized"


class AuthorizationError(MailConnectError):
    status_code = 403
    default_detail = "Forbidden"


class NotFoundError(MailConnectError):
    status_code = 404
    default_detail = "Not found"


class ConflictError(MailConnectError):
    status_code = 409
    default_detail = "Conflict"


class EmailAlreadyClaimed(ConflictError):
    default_detail = "Email is already being sent or was sent"


# === Mail pipeline preconditions
class PipelineError(MailConnectError):
    status_code = 400
    default_detail = "Email pipeline failed"


class AccountNotLinked(PipelineError):
    default_detail = "Gmail account not connected"


class NoRecipients(PipelineError):
    default_detail = "No recipients specified"


class MissingCredential(PipelineError):
    default_detail = "Failed to get refresh token from Google"


class ProfileLookupFailed(PipelineError):
    status_code = 502
    default_detail = "Failed to get Gmail email address"


class RefreshFailed(PipelineError):
    status_code = 502
    default_detail = "Gmail token refresh failed"


# === Per-recipient send failure
class TransportError(MailConnectError):
    status_code = 502
    default_detail = "Gmail send failed"


# === Persistence
class StoreError(MailConnectError):
    status_code = 500
    default_detail = "Database error"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(MailConnectError)
    async def mailconnect_error_handler(request: Request, exc: MailConnectError):
        if exc.status_code >= 500:
            logger.error(f"❌ {request.method} {request.url.path}: {exc.detail}")
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"⚠️ Validation Error: {exc.errors()}")
        return JSONResponse(status_code=422, content={"detail": jsonable_encoder(exc.errors())})
