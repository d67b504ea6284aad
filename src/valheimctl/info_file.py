"""Connection-info file written after provisioning and read when decommissioning.

The file is a flat, human readable text document organised as headed blocks
(``Linode:``, ``Volume:``, ``DNS:``, ``Valheim:``) with indented ``Key: Value``
lines below each header. Optional blocks may be missing and parsing never
fails on partial or stale content; absent values simply come back as ``None``.

After a successful decommission the live file is renamed with a
``_YYYYMMDD_HHMMSS`` suffix so that exactly one live record exists and all
previous ones remain as an audit trail.
"""
from __future__ import annotations

import os
import re
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

ARCHIVE_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

_HEADER_RE = re.compile(r"^([A-Za-z][\w ]*):\s*$")
_ENTRY_RE = re.compile(r"^(\s*)([^:]+):\s*(.*)$")
_VERBATIM_KEYS = frozenset({"Root Password", "Password"})


class InfoFileError(RuntimeError):
    """Raised when the info file cannot be read, written or archived."""


@dataclass(frozen=True, slots=True)
class ConnectionInfo:
    """Snapshot of a provisioned server."""

    instance_label: str | None = None
    instance_id: int | None = None
    ip: str | None = None
    root_pass: str | None = None
    region: str | None = None
    volume_id: int | None = None
    volume_label: str | None = None
    volume_size: int | None = None
    mount_point: str | None = None
    dns_record: str | None = None
    dns_zone: str | None = None
    server_name: str | None = None
    world_name: str | None = None
    server_password: str | None = None
    port: int | None = None
    container_name: str = "valheim-server"
    created: str | None = None

    @property
    def connect_targets(self) -> list[str]:
        """Return ``host:port`` strings players can connect to."""
        if self.port is None:
            return []
        targets: list[str] = []
        if self.dns_record:
            targets.append(f"{self.dns_record}:{self.port}")
        if self.ip:
            targets.append(f"{self.ip}:{self.port}")
        return targets


def render(info: ConnectionInfo) -> str:
    """Serialise *info* into the info file format."""
    created = info.created or datetime.now().astimezone().strftime("%a %b %d %H:%M:%S %Z %Y")
    lines = [
        "Valheim Server Information",
        "==========================",
        f"Created: {created}",
        "",
        "Linode:",
        f"  ID: {_text(info.instance_id)}",
        f"  Label: {_text(info.instance_label)}",
        f"  IP: {_text(info.ip)}",
        f"  Root Password: {_text(info.root_pass)}",
        f"  Region: {_text(info.region)}",
        "",
        "Volume:",
        f"  ID: {_text(info.volume_id)}",
        f"  Label: {_text(info.volume_label)}",
        f"  Size: {_text(info.volume_size)}GB",
        f"  Mount: {_text(info.mount_point)}",
    ]
    if info.dns_record:
        lines.extend(
            [
                "",
                "DNS:",
                f"  Record: {info.dns_record}",
                f"  Points To: {_text(info.ip)}",
                f"  Hosted Zone: {_text(info.dns_zone)}",
            ]
        )
    lines.extend(
        [
            "",
            "Valheim:",
            f"  Server Name: {_text(info.server_name)}",
            f"  World Name: {_text(info.world_name)}",
            f"  Password: {_text(info.server_password)}",
            f"  Port: {_text(info.port)}",
        ]
    )
    targets = info.connect_targets
    if targets:
        lines.append(f"  Connect To: {targets[0]}")
        if len(targets) > 1:
            lines.append(f"  (or via IP): {targets[1]}")
    lines.extend(
        [
            "",
            f"SSH Access: ssh root@{_text(info.ip)}",
            f"Docker Logs: docker logs -f {info.container_name}",
            "",
        ]
    )
    return "\n".join(lines)


def parse_blocks(text: str) -> dict[str, dict[str, str]]:
    """Split *text* into ``{block: {key: value}}``; top-level keys live under ``""``."""
    blocks: dict[str, dict[str, str]] = {"": {}}
    current: str | None = None
    for raw in text.splitlines():
        line = raw.rstrip()
        if not line.strip():
            continue
        header = _HEADER_RE.match(line)
        if header:
            current = header.group(1).strip()
            blocks.setdefault(current, {})
            continue
        entry = _ENTRY_RE.match(line)
        if entry is None:
            continue
        indent, key, value = entry.groups()
        key = key.strip()
        if key in _VERBATIM_KEYS:
            # Passwords may start or end with whitespace; drop only the separator.
            value = raw.split(":", 1)[1].removeprefix(" ")
        else:
            value = value.strip()
        if indent and current is not None:
            blocks[current].setdefault(key, value)
        else:
            current = None
            blocks[""].setdefault(key, value)
    return blocks


def parse(text: str) -> ConnectionInfo:
    """Parse info file *text*, tolerating missing blocks and values."""
    blocks = parse_blocks(text)
    linode = blocks.get("Linode", {})
    volume = blocks.get("Volume", {})
    dns = blocks.get("DNS", {})
    valheim = blocks.get("Valheim", {})
    top = blocks.get("", {})

    docker_logs = _value(top, "Docker Logs")
    container_name = "valheim-server"
    if docker_logs:
        container_name = docker_logs.split()[-1]

    return ConnectionInfo(
        instance_label=_value(linode, "Label"),
        instance_id=_int_value(linode, "ID"),
        ip=_value(linode, "IP"),
        root_pass=_secret_value(linode, "Root Password"),
        region=_value(linode, "Region"),
        volume_id=_int_value(volume, "ID"),
        volume_label=_value(volume, "Label"),
        volume_size=_int_value(volume, "Size", suffix="GB"),
        mount_point=_value(volume, "Mount"),
        dns_record=_value(dns, "Record"),
        dns_zone=_value(dns, "Hosted Zone"),
        server_name=_value(valheim, "Server Name"),
        world_name=_value(valheim, "World Name"),
        server_password=_secret_value(valheim, "Password"),
        port=_int_value(valheim, "Port") or _port_from_target(_value(valheim, "Connect To")),
        container_name=container_name,
        created=_value(top, "Created"),
    )


def load(path: Path) -> ConnectionInfo:
    """Read and parse the info file at *path*."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise InfoFileError(f"Server info file not found: {path}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise InfoFileError(f"Unable to read server info file {path}: {exc}") from exc
    return parse(text)


def write(path: Path, info: ConnectionInfo) -> Path:
    """Atomically write *info* to *path*, replacing any unarchived file."""
    path = path.expanduser()
    directory = path.parent
    try:
        directory.mkdir(parents=True, exist_ok=True)
        tmp_fd, tmp_name = tempfile.mkstemp(dir=str(directory), prefix=f".{path.name}.")
    except OSError as exc:
        raise InfoFileError(f"Unable to write server info file {path}: {exc}") from exc
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
            handle.write(render(info))
        os.chmod(tmp_path, 0o600)
        os.replace(tmp_path, path)
    except OSError as exc:
        raise InfoFileError(f"Unable to write server info file {path}: {exc}") from exc
    finally:
        tmp_path.unlink(missing_ok=True)
    return path


def archive_path_for(path: Path, when: datetime) -> Path:
    """Return the first unused archive name for *path* at *when*."""
    stamp = when.strftime(ARCHIVE_TIMESTAMP_FORMAT)
    candidate = path.with_name(f"{path.stem}_{stamp}{path.suffix}")
    counter = 1
    while candidate.exists():
        candidate = path.with_name(f"{path.stem}_{stamp}-{counter}{path.suffix}")
        counter += 1
    return candidate


def archive(path: Path, *, when: datetime | None = None) -> Path:
    """Rename *path* to a timestamped archive name and return the new path."""
    if not path.exists():
        raise InfoFileError(f"Server info file not found: {path}")
    target = archive_path_for(path, when or datetime.now())
    try:
        path.rename(target)
    except OSError as exc:
        raise InfoFileError(f"Unable to archive server info file {path}: {exc}") from exc
    return target


def _text(value: object) -> str:
    return "" if value is None else str(value)


def _value(block: Mapping[str, str], key: str) -> str | None:
    value = block.get(key)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _secret_value(block: Mapping[str, str], key: str) -> str | None:
    value = block.get(key)
    if value is None or not value.strip():
        return None
    return value


def _int_value(block: Mapping[str, str], key: str, *, suffix: str = "") -> int | None:
    value = _value(block, key)
    if value is None:
        return None
    if suffix and value.upper().endswith(suffix):
        value = value[: -len(suffix)].strip()
    try:
        return int(value)
    except ValueError:
        return None


def _port_from_target(target: str | None) -> int | None:
    if not target or ":" not in target:
        return None
    try:
        return int(target.rsplit(":", 1)[1])
    except ValueError:
        return None


__all__ = [
    "ARCHIVE_TIMESTAMP_FORMAT",
    "ConnectionInfo",
    "InfoFileError",
    "archive",
    "archive_path_for",
    "load",
    "parse",
    "parse_blocks",
    "render",
    "write",
]
