"""Narrow interfaces the workflows depend upon.

Concrete implementations live beside this module; tests substitute in-memory
fakes that satisfy the same protocols.
"""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from ..models import InstanceRecord, VolumeRecord


class CloudClient(Protocol):
    """Control-plane operations for compute instances and block volumes."""

    def check_auth(self) -> None: ...

    def list_instances(self) -> list[InstanceRecord]: ...

    def get_instance(self, instance_id: int) -> InstanceRecord: ...

    def create_instance(
        self,
        *,
        region: str,
        instance_type: str,
        image: str,
        label: str,
        root_pass: str,
        user_data: str,
    ) -> InstanceRecord: ...

    def shutdown_instance(self, instance_id: int) -> None: ...

    def delete_instance(self, instance_id: int) -> None: ...

    def list_volumes(self) -> list[VolumeRecord]: ...

    def get_volume(self, volume_id: int) -> VolumeRecord: ...

    def create_volume(self, *, label: str, region: str, size: int) -> VolumeRecord: ...

    def attach_volume(self, volume_id: int, instance_id: int) -> None: ...

    def detach_volume(self, volume_id: int) -> None: ...


class DNSClient(Protocol):
    """Record upserts against a hosted zone."""

    def check_credentials(self) -> None: ...

    def upsert_a_record(self, zone_id: str, name: str, value: str, ttl: int) -> str: ...


@dataclass(frozen=True, slots=True)
class RemoteResult:
    """Exit status and captured output lines of a remote script."""

    returncode: int
    lines: tuple[str, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        """Return ``True`` when the remote script exited cleanly."""
        return self.returncode == 0


class RemoteExecutor(Protocol):
    """Run short shell scripts on a freshly created host."""

    def available(self) -> bool: ...

    def run_script(
        self,
        host: str,
        password: str,
        script: str,
        *,
        on_line: Callable[[str], None] | None = None,
    ) -> RemoteResult: ...


class Notifier(Protocol):
    """Deliver a short status message to an external channel."""

    def send(self, message: str) -> None: ...


__all__ = [
    "CloudClient",
    "DNSClient",
    "Notifier",
    "RemoteExecutor",
    "RemoteResult",
]
