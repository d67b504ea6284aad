"""Records describing the cloud resources valheimctl manages."""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

STATUS_RUNNING = "running"
STATUS_OFFLINE = "offline"


@dataclass(frozen=True, slots=True)
class VolumeRecord:
    """A block storage volume. Volumes outlive instances and are never deleted."""

    id: int
    label: str
    region: str
    size: int
    linode_id: int | None = None

    @property
    def attached(self) -> bool:
        """Return ``True`` when the volume is attached to an instance."""
        return self.linode_id is not None

    @classmethod
    def from_api(cls, payload: Mapping[str, object]) -> VolumeRecord:
        """Build a record from a Linode API volume object."""
        return cls(
            id=_as_int(payload.get("id")),
            label=str(payload.get("label") or ""),
            region=str(payload.get("region") or ""),
            size=_as_int(payload.get("size")),
            linode_id=_as_optional_int(payload.get("linode_id")),
        )


@dataclass(frozen=True, slots=True)
class InstanceRecord:
    """A compute instance. ``label`` is the durable lookup key."""

    id: int
    label: str
    status: str
    ipv4: tuple[str, ...] = ()
    region: str = ""

    @property
    def ip(self) -> str | None:
        """Return the primary public IPv4 address, if any."""
        return self.ipv4[0] if self.ipv4 else None

    @property
    def running(self) -> bool:
        """Return ``True`` when the provider reports the instance as running."""
        return self.status == STATUS_RUNNING

    @classmethod
    def from_api(cls, payload: Mapping[str, object]) -> InstanceRecord:
        """Build a record from a Linode API instance object."""
        raw_ipv4 = payload.get("ipv4")
        if isinstance(raw_ipv4, (list, tuple)):
            ipv4 = tuple(str(item) for item in raw_ipv4 if item)
        elif isinstance(raw_ipv4, str) and raw_ipv4:
            ipv4 = (raw_ipv4,)
        else:
            ipv4 = ()
        return cls(
            id=_as_int(payload.get("id")),
            label=str(payload.get("label") or ""),
            status=str(payload.get("status") or "unknown"),
            ipv4=ipv4,
            region=str(payload.get("region") or ""),
        )


def _as_int(value: object) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Expected an integer identifier, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValueError(f"Expected an integer identifier, got {value!r}")


def _as_optional_int(value: object) -> int | None:
    if value is None or value == "" or value == "null":
        return None
    return _as_int(value)


__all__ = ["InstanceRecord", "STATUS_OFFLINE", "STATUS_RUNNING", "VolumeRecord"]
