"""Mode router: local regex/heuristic path or remote AI-assisted path.

A policy flag decides, per call, which redactor runs. Both redactors return
the same RedactionResult shape. If the remote path fails, the router fails
closed: the result carries the original content but is marked FAILED, so a
caller can tell "redaction skipped" apart from "no PII found".
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from piishield.engine import Engine
from piishield.exceptions import RemoteServiceError
from piishield.models import RedactionMode, RedactionResult, RedactOptions
from piishield.remote import RemoteRedactionClient, result_from_remote

logger = logging.getLogger(__name__)


class FlagStore(ABC):
    """Source of the remote-mode policy flag. Read once per call, never cached here."""

    @abstractmethod
    def is_remote_mode_enabled(self, scope_id: Optional[str] = None) -> bool:
        """Return True if the remote path should be used for this scope."""


class StaticFlagStore(FlagStore):
    """Same answer for every scope."""

    def __init__(self, enabled: bool = False) -> None:
        self.enabled = enabled

    def is_remote_mode_enabled(self, scope_id: Optional[str] = None) -> bool:
        return self.enabled


class ScopedFlagStore(FlagStore):
    """Per-scope overrides (e.g. per organization) on top of a default."""

    def __init__(self, default: bool = False, scopes: Optional[dict[str, bool]] = None) -> None:
        self.default = default
        self.scopes = dict(scopes or {})

    def is_remote_mode_enabled(self, scope_id: Optional[str] = None) -> bool:
        if scope_id is not None and scope_id in self.scopes:
            return self.scopes[scope_id]
        return self.default


class Redactor(ABC):
    """One redaction strategy."""

    mode: RedactionMode

    @abstractmethod
    def redact(self, text: str, options: Optional[RedactOptions] = None) -> RedactionResult:
        """Redact text."""


class LocalRedactor(Redactor):
    """Regex catalog plus heuristics, in process."""

    mode = RedactionMode.LOCAL

    def __init__(self, engine: Optional[Engine] = None) -> None:
        self.engine = engine or Engine()

    def redact(self, text: str, options: Optional[RedactOptions] = None) -> RedactionResult:
        return self.engine.redact(text, options)


class RemoteRedactor(Redactor):
    """Delegates detection to the remote AI-assisted service.

    Local options (heuristics, custom patterns) do not apply to this path.
    """

    mode = RedactionMode.REMOTE

    def __init__(self, client: RemoteRedactionClient) -> None:
        self.client = client

    def redact(self, text: str, options: Optional[RedactOptions] = None) -> RedactionResult:
        response = self.client.detect(text)
        return result_from_remote(text, response)


class ModeRouter:
    """Select a redactor per call from the policy flag and normalize failures."""

    def __init__(
        self,
        local: Optional[LocalRedactor] = None,
        remote: Optional[RemoteRedactor] = None,
        flags: Optional[FlagStore] = None,
    ) -> None:
        self.local = local or LocalRedactor()
        self.remote = remote
        self.flags = flags or StaticFlagStore(False)

    def select_mode(self, scope_id: Optional[str] = None) -> RedactionMode:
        """Read the policy flag; a failing flag store selects the local path."""
        try:
            enabled = self.flags.is_remote_mode_enabled(scope_id)
        except Exception as e:
            logger.warning(f"Policy flag lookup failed ({type(e).__name__}), using local redaction")
            return RedactionMode.LOCAL
        return RedactionMode.REMOTE if enabled else RedactionMode.LOCAL

    def redact(
        self,
        text: str,
        options: Optional[RedactOptions] = None,
        scope_id: Optional[str] = None,
    ) -> RedactionResult:
        """
        Redact text on the path chosen by the policy flag.

        Returns:
            RedactionResult; on remote failure a FAILED result whose
            ``safe_to_forward`` is False
        """
        mode = self.select_mode(scope_id)
        if mode == RedactionMode.LOCAL:
            return self.local.redact(text, options)

        try:
            if self.remote is None:
                raise RemoteServiceError("Remote redaction selected but no remote service is configured")
            result = self.remote.redact(text, options)
        except RemoteServiceError as e:
            logger.error(f"Remote redaction failed, not forwarding content: {e}")
            return RedactionResult.failed(text, RedactionMode.REMOTE, str(e))

        logger.debug(f"Remote redaction finished with status {result.status.value}")
        return result
