"""Security middleware and error handling for the textprov server.

Provides:
- Request ID tracing
- Security headers
- Error taxonomy with consistent envelopes
"""

from __future__ import annotations

import secrets
import time
import traceback
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint


class ErrorCategory(str, Enum):
    """Error categories for classification."""

    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    ENCODING = "encoding"
    STRUCTURE = "structure"
    SIGNING = "signing"
    INTERNAL = "internal"


class ErrorSeverity(str, Enum):
    """Error severity levels."""

    ERROR = "error"
    WARNING = "warning"


@dataclass
class ErrorEnvelope:
    """Standard error response envelope."""

    success: bool = False
    error_id: str = ""
    request_id: str = ""
    timestamp: str = ""
    category: ErrorCategory = ErrorCategory.INTERNAL
    severity: ErrorSeverity = ErrorSeverity.ERROR
    message: str = ""
    code: str = ""
    details: list[dict[str, Any]] | None = None
    traceback: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "success": self.success,
            "error_id": self.error_id,
            "request_id": self.request_id,
            "timestamp": self.timestamp,
            "error": {
                "category": self.category.value,
                "severity": self.severity.value,
                "message": self.message,
                "code": self.code,
                "details": self.details or [],
            },
            "meta": {
                "traceback": self.traceback if self.traceback else None,
            },
        }


class SecurityMiddleware(BaseHTTPMiddleware):
    """Security headers middleware."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Process request and add security headers."""
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"

        return response


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Request ID middleware for tracing."""

    def __init__(self, app, header_name: str = "X-Request-ID"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Add request ID to response."""
        request_id = request.headers.get(self.header_name) or str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers[self.header_name] = request_id

        return response


class ValidationError(Exception):
    """Validation error with structured details."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.VALIDATION,
        details: list[str] | None = None,
    ):
        super().__init__(message)
        self.category = category
        self.details = details or []


class AuthenticationError(Exception):
    """Authentication failure."""

    pass


def create_error_response(
    error_id: str,
    request_id: str,
    error: Exception,
    category: ErrorCategory = ErrorCategory.INTERNAL,
    severity: ErrorSeverity = ErrorSeverity.ERROR,
    include_traceback: bool = False,
) -> dict[str, Any]:
    """Create a standardized error response.

    Args:
        error_id: Unique error identifier
        request_id: Request trace ID
        error: The exception that occurred
        category: Error category
        severity: Error severity
        include_traceback: Whether to include traceback

    Returns:
        Error envelope as dictionary
    """
    details = getattr(error, "details", None)
    envelope = ErrorEnvelope(
        error_id=error_id,
        request_id=request_id,
        timestamp=datetime.now(UTC).isoformat(),
        category=category,
        severity=severity,
        message=str(error),
        code=f"TEXTPROV_{category.value.upper()}_{severity.value.upper()}",
        details=[{"message": d} for d in details] if isinstance(details, list) else None,
    )

    if include_traceback:
        envelope.traceback = traceback.format_exc()

    return envelope.to_dict()


def generate_error_id() -> str:
    """Generate unique error ID."""
    timestamp = int(time.time() * 1000)
    random_part = secrets.token_hex(8)
    return f"err_{timestamp}_{random_part}"
