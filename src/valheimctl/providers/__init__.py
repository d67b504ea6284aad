"""Provider interfaces for valheimctl."""
from __future__ import annotations

from .base import CloudClient, DNSClient, Notifier, RemoteExecutor, RemoteResult
from .discord import DiscordNotifier, NotifyError, NullNotifier
from .linode import LinodeError, LinodeProvider
from .route53 import Route53Error, Route53Provider
from .ssh import RemoteExecError, SSHExecutor

__all__ = [
    "CloudClient",
    "DNSClient",
    "DiscordNotifier",
    "LinodeError",
    "LinodeProvider",
    "Notifier",
    "NotifyError",
    "NullNotifier",
    "RemoteExecError",
    "RemoteExecutor",
    "RemoteResult",
    "Route53Error",
    "Route53Provider",
    "SSHExecutor",
]
