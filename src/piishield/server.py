"""HTTP REST server for pii-shield."""

import logging
import time
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from piishield import __version__
from piishield.config import build_registry, build_router, default_options, load_config
from piishield.engine import Engine, restore
from piishield.exceptions import RedactionCapacityError
from piishield.models import RedactionStatus, RedactOptions
from piishield.registry import PatternRegistry, pattern_from_dict
from piishield.router import ModeRouter

logger = logging.getLogger(__name__)

# Prometheus metrics; labels carry types, modes and statuses only, never values
REQUEST_COUNT = Counter(
    "piishield_requests_total",
    "Total requests",
    ["endpoint", "status"],
)
REQUEST_DURATION = Histogram(
    "piishield_request_duration_seconds",
    "Request duration in seconds",
    ["endpoint"],
)
DETECTIONS = Counter(
    "piishield_detections_total",
    "Distinct values redacted, by PII type",
    ["pii_type"],
)
REDACTION_OUTCOMES = Counter(
    "piishield_redactions_total",
    "Redaction calls by mode and outcome",
    ["mode", "status"],
)


# Request/Response models
class CustomPattern(BaseModel):
    """A per-request pattern; ``validator`` names a built-in validator."""

    type: str = Field(pattern=r"^[A-Z][A-Z0-9_]*$")
    pattern: str
    priority: int
    validator: Optional[str] = None
    flags: list[str] = Field(default_factory=list)


class DetectRequest(BaseModel):
    """Request model for /detect endpoint."""

    text: str
    include_names: Optional[bool] = None
    include_addresses: Optional[bool] = None
    custom_patterns: list[CustomPattern] = Field(default_factory=list)


class RedactRequest(DetectRequest):
    """Request model for /redact endpoint."""

    scope_id: Optional[str] = None


class DetectionItem(BaseModel):
    type: str
    original: str
    placeholder: str
    start: int
    end: int


class DetectResponse(BaseModel):
    """Response model for /detect endpoint."""

    redacted_text: str
    detections: list[DetectionItem]
    detection_stats: dict[str, int]
    pii_count: int


class RedactResponse(BaseModel):
    """Response model for /redact endpoint."""

    redacted_content: str
    redaction_map: dict[str, str]
    pii_detected: bool
    detection_stats: dict[str, int]
    status: str
    mode: str
    error: Optional[str] = None


class RestoreRequest(BaseModel):
    """Request model for /restore endpoint."""

    redacted_content: str
    redaction_map: dict[str, str]


class RestoreResponse(BaseModel):
    """Response model for /restore endpoint."""

    content: str


class ValidateRequest(BaseModel):
    """Request model for /validate endpoint."""

    text: str
    type: str


class ValidateResponse(BaseModel):
    """Response model for /validate endpoint."""

    ok: bool
    type: str


class HealthResponse(BaseModel):
    """Response model for /health endpoint."""

    status: str
    version: str
    patterns_loaded: int
    remote_configured: bool


class ReloadResponse(BaseModel):
    """Response model for /reload endpoint."""

    status: str
    version: int
    patterns_loaded: int
    message: str


class PIIShieldServer:
    """Server wrapper for managing state."""

    def __init__(self, config: Optional[dict[str, Any]] = None) -> None:
        """Initialize server with configuration."""
        self.config = load_config(config)
        self.registry: Optional[PatternRegistry] = None
        self.engine: Optional[Engine] = None
        self.router: Optional[ModeRouter] = None
        self._load_patterns()

    def _load_patterns(self) -> None:
        """Load patterns and rebuild the router from configuration."""
        logger.info(f"Loading patterns from: {self.config['registry']['paths'] or 'built-in catalog'}")
        registry = build_registry(self.config)
        router = build_router(self.config, registry=registry)
        self.registry = registry
        self.router = router
        self.engine = router.local.engine
        logger.info(f"Loaded {len(self.registry)} patterns")

    def reload_patterns(self) -> dict[str, Any]:
        """Reload patterns from files."""
        try:
            old_version = self.registry.version if self.registry else 0
            self._load_patterns()
        except (OSError, ValueError) as e:
            logger.error(f"Failed to reload patterns: {e}")
            raise HTTPException(status_code=500, detail=f"Reload failed: {str(e)}")
        return {
            "status": "ok",
            "version": self.registry.version if self.registry else 0,
            "patterns_loaded": len(self.registry) if self.registry else 0,
            "message": f"Reloaded successfully (v{old_version} -> v{self.registry.version})",
        }


def _request_options(config: dict[str, Any], request: DetectRequest) -> RedactOptions:
    """Overlay request switches and custom patterns on the configured defaults."""
    options = default_options(config)
    if request.include_names is not None:
        options.include_names = request.include_names
    if request.include_addresses is not None:
        options.include_addresses = request.include_addresses
    try:
        options.custom_patterns = [
            pattern_from_dict(p.model_dump()) for p in request.custom_patterns
        ]
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return options


def create_app(config: Optional[dict[str, Any]] = None) -> FastAPI:
    """
    Create FastAPI application.

    Args:
        config: Server configuration dictionary

    Returns:
        FastAPI application instance
    """
    app = FastAPI(
        title="pii-shield",
        description="PII detection and reversible redaction service",
        version=__version__,
    )

    server = PIIShieldServer(config)
    app.state.server = server

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next: Any) -> Response:
        """Record metrics for each request."""
        start_time = time.time()
        endpoint = request.url.path

        response = await call_next(request)

        duration = time.time() - start_time
        REQUEST_COUNT.labels(endpoint=endpoint, status=response.status_code).inc()
        REQUEST_DURATION.labels(endpoint=endpoint).observe(duration)

        return response

    @app.post("/redact", response_model=RedactResponse)
    def redact(request: RedactRequest) -> Any:
        """Redact PII from text.

        A failed remote redaction answers 502 with status ``failed``; the
        content in that body is the unredacted input and must not be forwarded.
        """
        if server.router is None:
            raise HTTPException(status_code=500, detail="Router not initialized")

        options = _request_options(server.config, request)
        try:
            result = server.router.redact(request.text, options, scope_id=request.scope_id)
        except RedactionCapacityError as e:
            raise HTTPException(status_code=413, detail=str(e))

        REDACTION_OUTCOMES.labels(mode=result.mode.value, status=result.status.value).inc()
        for pii_type, count in result.detection_stats.items():
            DETECTIONS.labels(pii_type=pii_type).inc(count)

        if result.status == RedactionStatus.FAILED:
            return JSONResponse(status_code=502, content=result.to_dict())
        return RedactResponse(**result.to_dict())

    @app.post("/detect", response_model=DetectResponse)
    def detect(request: DetectRequest) -> DetectResponse:
        """Locate PII occurrences and preview their placeholders.

        Always runs the local engine; nothing is sent to the remote service.
        """
        if server.engine is None:
            raise HTTPException(status_code=500, detail="Engine not initialized")

        options = _request_options(server.config, request)
        result = server.engine.detect(request.text, options)
        return DetectResponse(**result.to_dict())

    @app.post("/restore", response_model=RestoreResponse)
    def restore_content(request: RestoreRequest) -> RestoreResponse:
        """Restore original values into redacted content."""
        return RestoreResponse(content=restore(request.redacted_content, request.redaction_map))

    @app.post("/validate", response_model=ValidateResponse)
    def validate(request: ValidateRequest) -> ValidateResponse:
        """Validate a value against a pattern type."""
        if server.engine is None:
            raise HTTPException(status_code=500, detail="Engine not initialized")

        try:
            result = server.engine.validate(request.text, request.type)
        except ValueError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return ValidateResponse(ok=result.is_valid, type=request.type)

    @app.get("/patterns")
    async def patterns() -> dict[str, Any]:
        """List loaded patterns in resolution order."""
        if server.registry is None:
            raise HTTPException(status_code=503, detail="Registry not initialized")

        return {
            "count": len(server.registry),
            "patterns": [
                {
                    "type": p.type,
                    "priority": p.priority,
                    "severity": p.severity.value,
                    "validator": p.validator_name,
                    "description": p.description,
                }
                for p in server.registry.get_patterns()
            ],
        }

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Health check endpoint."""
        if server.registry is None or server.router is None:
            raise HTTPException(status_code=503, detail="Registry not initialized")

        return HealthResponse(
            status="healthy",
            version=__version__,
            patterns_loaded=len(server.registry),
            remote_configured=server.router.remote is not None,
        )

    @app.post("/reload", response_model=ReloadResponse)
    async def reload() -> ReloadResponse:
        """Reload patterns from files."""
        result = server.reload_patterns()
        return ReloadResponse(**result)

    @app.get("/metrics")
    async def metrics() -> Response:
        """Prometheus metrics endpoint."""
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app
