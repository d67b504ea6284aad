"""Discord webhook notifier."""
from __future__ import annotations

import json
import urllib.error
import urllib.request
from dataclasses import dataclass

from .. import __version__


class NotifyError(RuntimeError):
    """Raised when a notification cannot be delivered."""


@dataclass(slots=True)
class DiscordNotifier:
    """Post plain-text messages to a Discord channel webhook."""

    webhook_url: str
    username: str = ""
    timeout: float = 10.0

    def send(self, message: str) -> None:
        """Deliver *message*; raise :class:`NotifyError` on any failure."""
        payload: dict[str, object] = {"content": message}
        if self.username:
            payload["username"] = self.username
        request = urllib.request.Request(  # noqa: S310 - URL comes from operator config
            self.webhook_url,
            data=json.dumps(payload).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "User-Agent": f"valheimctl/{__version__}",
            },
            method="POST",
        )
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:  # noqa: S310
                status = getattr(response, "status", 200)
        except urllib.error.HTTPError as exc:
            raise NotifyError(f"Discord webhook rejected message (HTTP {exc.code})") from exc
        except (urllib.error.URLError, TimeoutError, OSError) as exc:
            raise NotifyError(f"Discord webhook unreachable: {exc}") from exc
        if status >= 300:
            raise NotifyError(f"Discord webhook returned HTTP {status}")


class NullNotifier:
    """Notifier used when no webhook is configured."""

    def send(self, message: str) -> None:
        """Discard *message*."""
        return None


__all__ = ["DiscordNotifier", "NotifyError", "NullNotifier"]
