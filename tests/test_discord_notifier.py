"""Tests for the Discord webhook notifier."""
from __future__ import annotations

import json
import urllib.error
import urllib.request
from email.message import Message

import pytest

from valheimctl.providers.discord import DiscordNotifier, NotifyError, NullNotifier

WEBHOOK = "https://discord.example/api/webhooks/1/token"


class DummyResponse:
    """Context-manager stand-in for an HTTP response."""

    def __init__(self, status: int = 204) -> None:
        """Initialise the dummy response."""
        self.status = status

    def __enter__(self) -> DummyResponse:
        return self

    def __exit__(self, *exc: object) -> None:
        return None


def test_send_posts_json_payload(monkeypatch: pytest.MonkeyPatch) -> None:
    """Messages are posted as JSON with the configured username."""
    captured: dict[str, object] = {}

    def fake_urlopen(request: urllib.request.Request, timeout: float) -> DummyResponse:
        captured["request"] = request
        captured["timeout"] = timeout
        return DummyResponse()

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)

    DiscordNotifier(WEBHOOK, username="Valheim", timeout=3.0).send("✅ Linode created")

    request = captured["request"]
    assert isinstance(request, urllib.request.Request)
    assert request.full_url == WEBHOOK
    assert request.get_method() == "POST"
    assert request.get_header("Content-type") == "application/json"
    assert isinstance(request.data, bytes)
    assert json.loads(request.data) == {"content": "✅ Linode created", "username": "Valheim"}
    assert captured["timeout"] == 3.0


def test_send_omits_empty_username(monkeypatch: pytest.MonkeyPatch) -> None:
    """Without a username Discord uses the webhook default."""
    bodies: list[bytes] = []

    def fake_urlopen(request: urllib.request.Request, timeout: float) -> DummyResponse:
        assert isinstance(request.data, bytes)
        bodies.append(request.data)
        return DummyResponse()

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)

    DiscordNotifier(WEBHOOK).send("hello")

    assert json.loads(bodies[0]) == {"content": "hello"}


def test_http_error_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    """Rejected messages surface the HTTP code."""

    def fake_urlopen(request: urllib.request.Request, timeout: float) -> DummyResponse:
        raise urllib.error.HTTPError(WEBHOOK, 429, "Too Many Requests", Message(), None)

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)

    with pytest.raises(NotifyError, match="HTTP 429"):
        DiscordNotifier(WEBHOOK).send("hello")


def test_unreachable_webhook_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    """Network failures become notification errors."""

    def fake_urlopen(request: urllib.request.Request, timeout: float) -> DummyResponse:
        raise urllib.error.URLError("Name or service not known")

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)

    with pytest.raises(NotifyError, match="unreachable"):
        DiscordNotifier(WEBHOOK).send("hello")


def test_unexpected_status_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    """A 3xx response is not treated as delivered."""
    monkeypatch.setattr(urllib.request, "urlopen", lambda request, timeout: DummyResponse(302))

    with pytest.raises(NotifyError, match="HTTP 302"):
        DiscordNotifier(WEBHOOK).send("hello")


def test_null_notifier_discards() -> None:
    """The null notifier accepts everything."""
    assert NullNotifier().send("anything") is None
