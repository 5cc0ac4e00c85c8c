from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarHTTP
import logging

logger = logging.getLogger("cobrina")


class DomainError(Exception):
    """Base for errors the engines raise on purpose; never retried."""

    code = "DOMAIN_ERROR"
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationFailed(DomainError):
    code = "VALIDATION_ERROR"
    status_code = 400


class EmptyOrOversized(ValidationFailed):
    code = "EMPTY_OR_OVERSIZED"


class NotFound(DomainError):
    code = "NOT_FOUND"
    status_code = 404


class ForbiddenClosed(DomainError):
    code = "FORBIDDEN_CLOSED"
    status_code = 409


class Conflict(DomainError):
    code = "CONFLICT"
    status_code = 409


class DuplicatePayment(Conflict):
    code = "DUPLICATE"


class Forbidden(DomainError):
    code = "FORBIDDEN"
    status_code = 403


class Unauthorized(DomainError):
    code = "UNAUTHORIZED"
    status_code = 401


class ClientAborted(Exception):
    """The caller went away; the request is simply over."""

    code = "CLIENT_ABORTED"
    status_code = 499


def install_error_handlers(app):
    @app.exception_handler(DomainError)
    async def domain_exc(_: Request, exc: DomainError):
        return JSONResponse({"error": exc.code, "detail": exc.detail}, status_code=exc.status_code)

    @app.exception_handler(ClientAborted)
    async def aborted(request: Request, exc: ClientAborted):
        logger.info(f"Client aborted: {request.method} {request.url.path}")
        return Response(status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def body_invalid(_: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(p) for p in first.get("loc", []) if p != "body")
        msg = first.get("msg", "Invalid request")
        detail = f"{field}: {msg}" if field else msg
        return JSONResponse({"error": "VALIDATION_ERROR", "detail": detail}, status_code=400)

    @app.exception_handler(StarHTTP)
    async def http_exc(_: Request, exc: StarHTTP):
        return JSONResponse({"error": f"HTTP_{exc.status_code}", "detail": exc.detail}, status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def unhandled(_: Request, exc: Exception):
        logger.exception(f"Unhandled exception: {exc}")
        return JSONResponse({"error": "INTERNAL_ERROR", "detail": "Unexpected error"}, status_code=500)
