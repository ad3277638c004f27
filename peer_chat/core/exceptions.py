"""Application exception classes and handlers."""

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, code: str, status_code: int = 400) -> None:
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(message)


# --- Validation (422) ---


class ValidationError(AppException):
    """Request rejected before any write, e.g. empty message content."""

    def __init__(self, message: str = "Invalid request") -> None:
        super().__init__(message=message, code="VALIDATION_ERROR", status_code=422)


# --- Authentication (401) ---


class AuthenticationError(AppException):
    """Base authentication error."""

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message=message, code="AUTHENTICATION_ERROR", status_code=401)


class TokenExpiredError(AppException):
    """Token has expired."""

    def __init__(self) -> None:
        super().__init__(
            message="Token has expired",
            code="TOKEN_EXPIRED",
            status_code=401,
        )


class TokenBlacklistedError(AppException):
    """Token has been revoked."""

    def __init__(self) -> None:
        super().__init__(
            message="Token has been revoked",
            code="TOKEN_BLACKLISTED",
            status_code=401,
        )


class InvalidTokenError(AppException):
    """Token is invalid."""

    def __init__(self) -> None:
        super().__init__(
            message="Invalid token",
            code="INVALID_TOKEN",
            status_code=401,
        )


class InvalidCredentialsError(AppException):
    """Invalid email or password."""

    def __init__(self) -> None:
        super().__init__(
            message="Invalid email or password",
            code="INVALID_CREDENTIALS",
            status_code=401,
        )


# --- Authorization (403) ---


class AuthorizationError(AppException):
    """Caller is not permitted to act on the target resource."""

    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(message=message, code="AUTHORIZATION_ERROR", status_code=403)


# --- Not Found (404) ---


class SessionNotFoundError(AppException):
    """Chat session not found."""

    def __init__(self) -> None:
        super().__init__(
            message="Chat session not found",
            code="SESSION_NOT_FOUND",
            status_code=404,
        )


class SpecialistNotFoundError(AppException):
    """Peer specialist profile not found."""

    def __init__(self) -> None:
        super().__init__(
            message="Peer specialist not found",
            code="SPECIALIST_NOT_FOUND",
            status_code=404,
        )


class ProposalNotFoundError(AppException):
    """Appointment proposal not found."""

    def __init__(self) -> None:
        super().__init__(
            message="Appointment proposal not found",
            code="PROPOSAL_NOT_FOUND",
            status_code=404,
        )


# --- Conflict (409) ---


class ConflictError(AppException):
    """Lost a claim race or attempted an invalid status transition."""

    def __init__(self, message: str = "Conflicting state change") -> None:
        super().__init__(message=message, code="CONFLICT", status_code=409)


class UserAlreadyExistsError(AppException):
    """User with this email already exists."""

    def __init__(self) -> None:
        super().__init__(
            message="User with this email already exists",
            code="USER_ALREADY_EXISTS",
            status_code=409,
        )


# --- Rate Limit (429) ---


class AccountLockedError(AppException):
    """Too many failed login attempts."""

    def __init__(self) -> None:
        super().__init__(
            message="Too many failed login attempts. Please try again later.",
            code="ACCOUNT_LOCKED",
            status_code=429,
        )


# --- Server side (5xx) ---


class SessionCreateError(AppException):
    """The store rejected a new chat session."""

    def __init__(self, message: str = "Failed to create chat session") -> None:
        super().__init__(
            message=message, code="SESSION_CREATE_FAILED", status_code=500
        )


class TransientNetworkError(AppException):
    """Store or realtime feed unreachable; safe to retry."""

    def __init__(self, message: str = "Service temporarily unavailable") -> None:
        super().__init__(
            message=message, code="TRANSIENT_NETWORK_ERROR", status_code=503
        )


# --- Exception Handlers ---


def error_body(status: int, message: str, code: str) -> dict:
    """Build the failure envelope shared by handlers and middleware."""
    return {"success": False, "status": status, "message": message, "code": code}


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Central exception handler for AppException."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, exc.message, exc.code),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render request body/query validation failures in the common envelope."""
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    detail = first.get("msg", "Invalid request")
    message = f"{location}: {detail}" if location else detail
    return JSONResponse(
        status_code=422,
        content=error_body(422, message, "VALIDATION_ERROR"),
    )
