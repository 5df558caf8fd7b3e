"""Client for the remote AI-assisted redaction service.

The service receives ``{text, enable_ai}`` and answers with detections that
carry character offsets. The redacted text and the redaction map are always
rebuilt locally from those offsets, so placeholders and map stay consistent.
"""

import logging
import re
from collections import Counter
from typing import Any, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError, model_validator

from piishield.engine import make_placeholder
from piishield.exceptions import RemoteServiceError
from piishield.models import RedactionMode, RedactionResult

logger = logging.getLogger(__name__)

DETECT_PATH = "/v1/ai-detect"

_TYPE_CHARS = re.compile(r"[^A-Z0-9_]+")


class Position(BaseModel):
    start: int
    end: int


class RemoteDetection(BaseModel):
    type: str
    value: Optional[str] = None
    position: Position


class RemoteResponse(BaseModel):
    """Response payload of the remote service."""

    redacted_text: Optional[str] = None
    detections: list[RemoteDetection] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _accept_entities(cls, data: Any) -> Any:
        # Some deployments answer with flat ``entities[].{start,end}``
        if isinstance(data, dict) and "detections" not in data and "entities" in data:
            entities = data.get("entities") or []
            data = {
                "redacted_text": data.get("redacted_text"),
                "detections": [
                    {
                        "type": e.get("type"),
                        "value": e.get("value"),
                        "position": {"start": e.get("start"), "end": e.get("end")},
                    }
                    for e in entities
                    if isinstance(e, dict)
                ],
            }
        return data


class RemoteRedactionClient:
    """Synchronous HTTP client for the remote redaction service."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        enable_ai: bool = True,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = base_url
        self.api_key = api_key
        self.timeout = timeout
        self.enable_ai = enable_ai
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    def _get_client(self) -> httpx.Client:
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["x-api-key"] = self.api_key
            self._client = httpx.Client(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def detect(self, text: str) -> RemoteResponse:
        """Send text to the service and parse its detections.

        Raises:
            RemoteServiceError: On transport failure, non-2xx status or malformed payload
        """
        client = self._get_client()
        try:
            resp = client.post(DETECT_PATH, json={"text": text, "enable_ai": self.enable_ai})
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            raise RemoteServiceError(
                f"Remote service returned HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise RemoteServiceError(f"Remote service unreachable: {type(e).__name__}") from e
        except ValueError as e:
            raise RemoteServiceError("Remote service returned invalid JSON") from e

        try:
            return RemoteResponse.model_validate(data)
        except ValidationError as e:
            raise RemoteServiceError(
                f"Remote service returned malformed payload ({e.error_count()} errors)"
            ) from e

    def close(self) -> None:
        if self._client and not self._client.is_closed:
            self._client.close()
            self._client = None


def _normalize_type(raw: str) -> str:
    normalized = _TYPE_CHARS.sub("_", raw.strip().upper()).strip("_")
    return normalized or "PII"


def result_from_remote(text: str, response: RemoteResponse) -> RedactionResult:
    """
    Build a RedactionResult from the original text and a remote response.

    Detections are applied by offset, substituting in descending-offset
    order. A detection overlapping an earlier one is dropped.

    Raises:
        RemoteServiceError: If offsets are out of range, a detection value
            disagrees with the text, or redacted text arrives without detections
    """
    if not response.detections:
        if response.redacted_text is not None and response.redacted_text != text:
            raise RemoteServiceError("Remote service redacted text without reporting detections")
        return RedactionResult.build(text, {}, {}, mode=RedactionMode.REMOTE)

    spans: list[tuple[int, int, str]] = []
    ordered = sorted(
        response.detections,
        key=lambda d: (d.position.start, -(d.position.end - d.position.start)),
    )
    last_end = 0
    for detection in ordered:
        start, end = detection.position.start, detection.position.end
        if not 0 <= start < end <= len(text):
            raise RemoteServiceError(f"Remote detection offsets out of range for {len(text)} chars")
        if detection.value is not None and detection.value != text[start:end]:
            raise RemoteServiceError("Remote detection value does not match its offsets")
        if start < last_end:
            logger.debug(f"Dropping overlapping remote detection of type {detection.type}")
            continue
        spans.append((start, end, _normalize_type(detection.type)))
        last_end = end

    redaction_map: dict[str, str] = {}
    stats: Counter = Counter()
    placeholders: list[str] = []
    for start, end, pii_type in spans:
        original = text[start:end]
        if original not in redaction_map:
            redaction_map[original] = make_placeholder(pii_type, len(redaction_map) + 1)
            stats[pii_type] += 1
        placeholders.append(redaction_map[original])

    redacted = text
    for (start, end, _), placeholder in reversed(list(zip(spans, placeholders))):
        redacted = redacted[:start] + placeholder + redacted[end:]

    return RedactionResult.build(redacted, redaction_map, dict(stats), mode=RedactionMode.REMOTE)
