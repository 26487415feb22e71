"""textprov HTTP server with API endpoints."""

from __future__ import annotations

import logging
import secrets
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi import status as http_status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from textprov import __version__
from textprov.config import Settings
from textprov.determinism import stable_timestamp
from textprov.diff import compute_word_diff
from textprov.provenance.actions import created_action
from textprov.provenance.builder import ManifestBuilder, serialize_manifest
from textprov.provenance.embedded import (
    EmbeddedManifestError,
    InvalidEncodingError,
    InvalidStructureError,
    embed_manifest,
    extract_manifest,
)
from textprov.provenance.manifest import Action, ExternalManifest
from textprov.provenance.schema import ManifestStructureError
from textprov.provenance.signing import KeyPair, SigningError
from textprov.provenance.transparency import service_from_settings
from textprov.provenance.verifier import ManifestVerifier
from textprov.server_security import (
    AuthenticationError,
    ErrorCategory,
    ErrorSeverity,
    RequestIDMiddleware,
    SecurityMiddleware,
    ValidationError,
    create_error_response,
    generate_error_id,
)

logger = logging.getLogger(__name__)

SECURITY_BEARER = HTTPBearer(auto_error=False)
SECURITY_BEARER_DEPENDENCY = Depends(SECURITY_BEARER)


class SignRequest(BaseModel):
    """Request model for sign endpoint."""

    content: str
    actions: list[dict[str, Any]] | None = None
    title: str | None = None
    content_format: str | None = None
    anchor: bool = False
    embed: bool = False


class VerifyRequest(BaseModel):
    """Request model for verify endpoint."""

    content: str
    manifest: str | dict[str, Any]


class EmbeddedTextRequest(BaseModel):
    """Request model for endpoints taking a document with an embedded manifest."""

    text: str


class DiffRequest(BaseModel):
    """Request model for diff endpoint."""

    original: str
    proposed: str


class EmbedRequest(BaseModel):
    """Request model for embed endpoint."""

    content: str
    manifest: str | dict[str, Any]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    timestamp: str


class PublicKeyResponse(BaseModel):
    """Signing key published by this server."""

    key_id: str = Field(..., description="First 16 hex chars of the JWK digest")
    public_key: str = Field(..., description="Canonical JWK text")


def _parse_manifest(manifest: str | dict[str, Any]) -> ExternalManifest:
    if isinstance(manifest, str):
        return ExternalManifest.from_json(manifest)
    return ExternalManifest.from_dict(manifest)


def _error_response(
    request: Request,
    exc: Exception,
    status_code: int,
    category: ErrorCategory,
    severity: ErrorSeverity,
    debug: bool,
) -> JSONResponse:
    error_id = generate_error_id()
    request_id = getattr(request.state, "request_id", "unknown")
    logger.warning("Error %s (request: %s): %s", error_id, request_id, exc)
    content = create_error_response(
        error_id=error_id,
        request_id=request_id,
        error=exc,
        category=category,
        severity=severity,
        include_traceback=debug,
    )
    return JSONResponse(status_code=status_code, content=content)


def create_app(
    settings: Settings | None = None,
    key_pair: KeyPair | None = None,
    debug: bool = False,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Runtime settings; read from the environment when omitted
        key_pair: Signing key; loaded from the environment when omitted, or
            generated for this process only when none is configured
        debug: Enable debug mode (shows stack traces in errors)

    Returns:
        Configured FastAPI application
    """
    settings = settings or Settings.from_env()
    ephemeral_key = False
    if key_pair is None:
        key_pair = KeyPair.from_env()
    if key_pair is None:
        key_pair = KeyPair.generate()
        ephemeral_key = True

    builder = ManifestBuilder.from_settings(settings)
    transparency = service_from_settings(settings)
    verifier = ManifestVerifier(transparency=transparency)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage application lifespan."""
        logger.info("textprov server starting up (signing key %s)", key_pair.key_id)
        if ephemeral_key:
            logger.warning(
                "No signing key configured - using an ephemeral key. "
                "Manifests signed now cannot be attributed after restart."
            )
        if not settings.api_key:
            logger.warning(
                "TEXTPROV_API_KEY not set - API authentication is DISABLED. "
                "This is INSECURE for production deployments."
            )
        else:
            logger.info("API authentication enabled")
        if settings.simulated_transparency:
            logger.info("Transparency receipts are simulated (%s)", settings.scitt_service_url)
        yield
        logger.info("textprov server shutting down")

    app = FastAPI(
        title="textprov API",
        description="Tamper-evident provenance for edited text",
        version=__version__,
        lifespan=lifespan,
    )

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.cors_origins),
            allow_credentials=False,
            allow_methods=["GET", "POST"],
            allow_headers=["Authorization", "Content-Type"],
        )

    app.add_middleware(SecurityMiddleware)
    app.add_middleware(RequestIDMiddleware)

    def verify_api_key(
        credentials: HTTPAuthorizationCredentials | None = SECURITY_BEARER_DEPENDENCY,
    ) -> bool:
        """Verify bearer API key authentication.

        Raises:
            AuthenticationError: If a key is configured and not presented
        """
        if not settings.api_key:
            return True
        if credentials is None or not credentials.credentials:
            raise AuthenticationError("API key required. Provide via Authorization: Bearer <key> header")
        if not secrets.compare_digest(credentials.credentials.encode("utf-8"), settings.api_key.encode("utf-8")):
            raise AuthenticationError("Invalid API key")
        return True

    auth_dependency = Depends(verify_api_key)

    @app.exception_handler(AuthenticationError)
    async def authentication_exception_handler(request: Request, exc: AuthenticationError):
        return _error_response(
            request, exc, http_status.HTTP_401_UNAUTHORIZED,
            ErrorCategory.AUTHENTICATION, ErrorSeverity.WARNING, debug,
        )

    @app.exception_handler(ValidationError)
    async def validation_exception_handler(request: Request, exc: ValidationError):
        return _error_response(
            request, exc, http_status.HTTP_422_UNPROCESSABLE_ENTITY,
            exc.category, ErrorSeverity.WARNING, debug,
        )

    @app.exception_handler(SigningError)
    async def signing_exception_handler(request: Request, exc: SigningError):
        return _error_response(
            request, exc, http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            ErrorCategory.SIGNING, ErrorSeverity.ERROR, debug,
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Wrap HTTP exceptions in a standardized error envelope."""
        return _error_response(
            request, exc, exc.status_code,
            ErrorCategory.VALIDATION if exc.status_code < 500 else ErrorCategory.INTERNAL,
            ErrorSeverity.WARNING if exc.status_code < 500 else ErrorSeverity.ERROR,
            debug,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
        """Wrap request validation errors in a standardized envelope."""
        return _error_response(
            request, exc, http_status.HTTP_422_UNPROCESSABLE_ENTITY,
            ErrorCategory.VALIDATION, ErrorSeverity.WARNING, debug,
        )

    def load_manifest(manifest: str | dict[str, Any]) -> ExternalManifest:
        try:
            return _parse_manifest(manifest)
        except ManifestStructureError as e:
            raise ValidationError(str(e), category=ErrorCategory.STRUCTURE, details=e.errors) from e

    @app.get("/health", response_model=HealthResponse)
    async def health():
        """Health check endpoint."""
        return HealthResponse(
            status="healthy",
            version=__version__,
            timestamp=stable_timestamp(),
        )

    @app.get("/api/v1/public-key", response_model=PublicKeyResponse)
    async def public_key(_auth: bool = auth_dependency):
        """Publish the signing key so verifiers can pin it."""
        return PublicKeyResponse(key_id=key_pair.key_id, public_key=key_pair.export_public_key())

    @app.post("/api/v1/sign")
    def sign(request: SignRequest, _auth: bool = auth_dependency) -> dict[str, Any]:
        """Build and sign a manifest for content."""
        if request.actions:
            try:
                actions = [Action.from_dict(a) for a in request.actions]
            except ManifestStructureError as e:
                raise ValidationError(str(e), category=ErrorCategory.STRUCTURE, details=e.errors) from e
        else:
            actions = [created_action(request.content)]

        manifest = builder.create_manifest(
            request.content,
            actions,
            key_pair,
            content_format=request.content_format,
            title=request.title,
        )
        if request.anchor:
            manifest = transparency.anchor(manifest)

        result: dict[str, Any] = {
            "manifest": manifest.to_dict(),
            "manifest_json": serialize_manifest(manifest),
            "key_id": key_pair.key_id,
        }
        if request.embed:
            result["embedded"] = embed_manifest(request.content, manifest)
        return result

    @app.post("/api/v1/verify")
    async def verify(request: VerifyRequest, _auth: bool = auth_dependency) -> dict[str, Any]:
        """Verify content against a manifest. Integrity failures are 200 responses."""
        return verifier.verify(request.content, request.manifest).to_dict()

    @app.post("/api/v1/verify/embedded")
    async def verify_embedded(request: EmbeddedTextRequest, _auth: bool = auth_dependency) -> dict[str, Any]:
        """Verify a document that carries its own manifest."""
        return verifier.verify_embedded(request.text).to_dict()

    @app.post("/api/v1/diff")
    async def diff(request: DiffRequest, _auth: bool = auth_dependency) -> dict[str, Any]:
        """Word-level diff between two texts."""
        word_diff = compute_word_diff(request.original, request.proposed)
        result = word_diff.to_dict()
        result["summary"] = word_diff.summary()
        result["has_changes"] = word_diff.has_changes
        return result

    @app.post("/api/v1/embed")
    async def embed(request: EmbedRequest, _auth: bool = auth_dependency) -> dict[str, Any]:
        """Append a manifest footer to content."""
        manifest = load_manifest(request.manifest)
        return {"embedded": embed_manifest(request.content, manifest)}

    @app.post("/api/v1/extract")
    async def extract(request: EmbeddedTextRequest, _auth: bool = auth_dependency) -> dict[str, Any]:
        """Split a document into content and manifest."""
        try:
            extracted = extract_manifest(request.text)
        except InvalidEncodingError as e:
            raise ValidationError(str(e), category=ErrorCategory.ENCODING) from e
        except InvalidStructureError as e:
            raise ValidationError(str(e), category=ErrorCategory.STRUCTURE, details=e.errors) from e
        except EmbeddedManifestError as e:
            raise ValidationError(str(e)) from e
        return {
            "content": extracted.content,
            "manifest": extracted.manifest_data,
            "manifest_json": extracted.manifest_json,
        }

    return app
