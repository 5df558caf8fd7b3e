"""Tests for the mode router."""

import httpx
import pytest

from piishield import (
    Engine,
    LocalRedactor,
    ModeRouter,
    RemoteRedactionClient,
    RemoteRedactor,
    ScopedFlagStore,
    StaticFlagStore,
    load_registry,
)
from piishield.models import RedactionMode, RedactionStatus
from piishield.router import FlagStore

TEXT = "Contact John Smith at john.smith@example.com"


@pytest.fixture(scope="module")
def local():
    """Create local redactor."""
    return LocalRedactor(Engine(load_registry()))


def remote_with(handler):
    """Create a remote redactor backed by a mock transport."""
    client = RemoteRedactionClient("https://redact.example.test", transport=httpx.MockTransport(handler))
    return RemoteRedactor(client)


def ok_handler(request):
    return httpx.Response(
        200,
        json={"detections": [{"type": "NAME", "value": "John Smith", "position": {"start": 8, "end": 18}}]},
    )


class BrokenFlags(FlagStore):
    def is_remote_mode_enabled(self, scope_id=None):
        raise ConnectionError("flag store down")


class TestModeSelection:
    """Tests for choosing between local and remote."""

    def test_default_is_local(self, local):
        """Test router without flags redacts locally."""
        result = ModeRouter(local).redact(TEXT)

        assert result.mode == RedactionMode.LOCAL
        assert result.status == RedactionStatus.REDACTED

    def test_flag_selects_remote(self, local):
        """Test enabled flag routes to the remote service."""
        router = ModeRouter(local, remote_with(ok_handler), StaticFlagStore(True))
        result = router.redact(TEXT)

        assert result.mode == RedactionMode.REMOTE
        assert result.redaction_map == {"John Smith": "[NAME_1]"}
        assert result.redacted_content == "Contact [NAME_1] at john.smith@example.com"

    def test_scoped_flags(self, local):
        """Test per-scope overrides."""
        flags = ScopedFlagStore(default=False, scopes={"org-remote": True})
        router = ModeRouter(local, remote_with(ok_handler), flags)

        assert router.redact(TEXT, scope_id="org-remote").mode == RedactionMode.REMOTE
        assert router.redact(TEXT, scope_id="org-other").mode == RedactionMode.LOCAL
        assert router.redact(TEXT).mode == RedactionMode.LOCAL

    def test_flag_read_every_call(self, local):
        """Test a flag change takes effect on the next call."""
        flags = StaticFlagStore(False)
        router = ModeRouter(local, remote_with(ok_handler), flags)

        assert router.redact(TEXT).mode == RedactionMode.LOCAL
        flags.enabled = True
        assert router.redact(TEXT).mode == RedactionMode.REMOTE

    def test_broken_flag_store_uses_local(self, local):
        """Test a failing flag lookup falls back to local redaction."""
        router = ModeRouter(local, remote_with(ok_handler), BrokenFlags())
        result = router.redact(TEXT)

        assert result.mode == RedactionMode.LOCAL
        assert result.safe_to_forward


class TestFailClosed:
    """Tests for remote failure handling."""

    def test_remote_http_error(self, local):
        """Test remote 5xx yields an explicit failed result."""
        router = ModeRouter(local, remote_with(lambda r: httpx.Response(503)), StaticFlagStore(True))
        result = router.redact(TEXT)

        assert result.status == RedactionStatus.FAILED
        assert result.mode == RedactionMode.REMOTE
        assert not result.safe_to_forward
        assert not result.pii_detected
        assert result.redacted_content == TEXT
        assert result.redaction_map == {}
        assert "503" in result.error

    def test_remote_unreachable(self, local):
        """Test transport error yields an explicit failed result."""

        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        router = ModeRouter(local, remote_with(handler), StaticFlagStore(True))
        result = router.redact(TEXT)

        assert result.status == RedactionStatus.FAILED
        assert not result.safe_to_forward

    def test_remote_not_configured(self, local):
        """Test remote selected without a remote redactor fails closed."""
        result = ModeRouter(local, None, StaticFlagStore(True)).redact(TEXT)

        assert result.status == RedactionStatus.FAILED
        assert "no remote service" in result.error

    def test_failed_result_serializes(self, local):
        """Test the failed result carries its status in to_dict."""
        router = ModeRouter(local, remote_with(lambda r: httpx.Response(500)), StaticFlagStore(True))
        data = router.redact(TEXT).to_dict()

        assert data["status"] == "failed"
        assert data["mode"] == "remote"
        assert data["error"]
