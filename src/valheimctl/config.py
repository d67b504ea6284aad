"""Configuration loader for valheimctl.

This module centralises the logic for reading configuration values from
multiple sources, lowest precedence first:

1. Built-in defaults.
2. ``./valheimctl.yml`` (or an override path).
3. The flat variables understood by the original shell launcher
   (``LINODE_REGION``, ``VALHEIM_SERVER_PASS``, ``AWS_ROUTE53_RECORD_NAME``...).
4. Environment variables prefixed with ``VALHEIMCTL_``.
5. Explicit overrides supplied programmatically.

Prefixed environment keys use double underscores to express nesting, e.g.::

    export VALHEIMCTL_LINODE__REGION=eu-central
    export VALHEIMCTL_TIMING__READINESS_WAIT=120

Non-string values are coerced via PyYAML's ``safe_load`` so that booleans and
numbers are parsed naturally. Passwords and credentials are kept verbatim;
other string settings are stripped of surrounding whitespace. The resulting
configuration is exposed as immutable ``dataclasses`` which are built once at
process start and handed to each workflow.
"""
from __future__ import annotations

import os
import re
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from pathlib import Path
from typing import cast

try:  # PyYAML is a runtime dependency (declared in pyproject.toml).
    import yaml
except Exception as exc:  # pragma: no cover - import failure covered in tests
    raise RuntimeError(
        "PyYAML is required to load valheimctl configuration. Install with "
        "`pip install valheimctl` or ensure PyYAML>=6.0 is available."
    ) from exc


ENV_PREFIX = "VALHEIMCTL_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}

LEGACY_ENV_KEYS: dict[str, tuple[str, str]] = {
    "LINODE_REGION": ("linode", "region"),
    "LINODE_TYPE": ("linode", "type"),
    "LINODE_IMAGE": ("linode", "image"),
    "LINODE_LABEL": ("linode", "label"),
    "LINODE_ROOT_PASS": ("linode", "root_pass"),
    "LINODE_VOLUME_LABEL": ("volume", "label"),
    "LINODE_VOLUME_SIZE": ("volume", "size"),
    "VALHEIM_SERVER_NAME": ("server", "name"),
    "VALHEIM_WORLD_NAME": ("server", "world"),
    "VALHEIM_SERVER_PASS": ("server", "password"),
    "VALHEIM_ADMIN_IDS": ("server", "admin_ids"),
    "VALHEIM_SERVER_PORT": ("server", "port"),
    "AWS_ROUTE53_HOSTED_ZONE_ID": ("dns", "hosted_zone_id"),
    "AWS_ROUTE53_RECORD_NAME": ("dns", "record_name"),
    "AWS_ROUTE53_TTL": ("dns", "ttl"),
    "AWS_ACCESS_KEY_ID": ("dns", "aws_access_key_id"),
    "AWS_SECRET_ACCESS_KEY": ("dns", "aws_secret_access_key"),
    "DISCORD_WEBHOOK_URL": ("notify", "discord_webhook_url"),
    "DISCORD_USERNAME": ("notify", "discord_username"),
}

MIN_SERVER_PASSWORD_LENGTH = 5
ALLOWED_READINESS_MODES = {"sleep", "probe"}


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class LinodeConfig:
    """Compute instance settings."""

    region: str = "us-ord"
    type: str = "g8-dedicated-64-32"
    image: str = "linode/ubuntu24.04"
    label: str = "valheim-server"
    root_pass: str | None = None
    cli_bin: str = "linode-cli"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation (credentials redacted)."""
        return {
            "region": self.region,
            "type": self.type,
            "image": self.image,
            "label": self.label,
            "root_pass": "***" if self.root_pass else None,
            "cli_bin": self.cli_bin,
        }


@dataclass(frozen=True)
class VolumeConfig:
    """Block storage volume settings."""

    label: str = "valheim"
    size: int = 100
    mount_point: str = "/data/valheim-server"
    device: str = "/dev/sdc"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "label": self.label,
            "size": self.size,
            "mount_point": self.mount_point,
            "device": self.device,
        }


@dataclass(frozen=True)
class ServerConfig:
    """Game server settings rendered into the bootstrap payload."""

    name: str = "My Valheim Server"
    world: str = "Dedicated"
    password: str = "changeme123"
    admin_ids: tuple[str, ...] = ()
    port: int = 2456
    container_name: str = "valheim-server"
    image: str = "ghcr.io/community-valheim-tools/valheim-server:sha-9220bdc"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation (password redacted)."""
        return {
            "name": self.name,
            "world": self.world,
            "password": "***",
            "admin_ids": list(self.admin_ids),
            "port": self.port,
            "container_name": self.container_name,
            "image": self.image,
        }


@dataclass(frozen=True)
class DNSConfig:
    """Route 53 record settings. Leave zone and record empty to skip DNS."""

    hosted_zone_id: str = ""
    record_name: str = ""
    ttl: int = 300
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    aws_bin: str = "aws"

    @property
    def requested(self) -> bool:
        """Return ``True`` when either DNS field is set."""
        return bool(self.hosted_zone_id or self.record_name)

    @property
    def enabled(self) -> bool:
        """Return ``True`` when both the zone and the record name are set."""
        return bool(self.hosted_zone_id and self.record_name)

    @property
    def explicit_credentials(self) -> bool:
        """Return ``True`` when both access key fields are supplied."""
        return bool(self.aws_access_key_id and self.aws_secret_access_key)

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation (credentials redacted)."""
        return {
            "hosted_zone_id": self.hosted_zone_id,
            "record_name": self.record_name,
            "ttl": self.ttl,
            "aws_access_key_id": "***" if self.aws_access_key_id else "",
            "aws_secret_access_key": "***" if self.aws_secret_access_key else "",
            "aws_bin": self.aws_bin,
        }


@dataclass(frozen=True)
class NotifyConfig:
    """Discord webhook settings."""

    discord_webhook_url: str = ""
    discord_username: str = ""
    timeout: float = 10.0

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "discord_webhook_url": "***" if self.discord_webhook_url else "",
            "discord_username": self.discord_username,
            "timeout": self.timeout,
        }


@dataclass(frozen=True)
class RemoteConfig:
    """Remote shell settings used for cleanup and readiness probes."""

    ssh_bin: str = "ssh"
    sshpass_bin: str = "sshpass"
    user: str = "root"
    connect_timeout: int = 10

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "ssh_bin": self.ssh_bin,
            "sshpass_bin": self.sshpass_bin,
            "user": self.user,
            "connect_timeout": self.connect_timeout,
        }


@dataclass(frozen=True)
class TimingConfig:
    """Polling intervals, attempt ceilings and grace periods (seconds)."""

    running_poll_interval: float = 10.0
    running_max_attempts: int = 60
    running_backoff: float = 1.0
    readiness_mode: str = "sleep"
    readiness_wait: float = 300.0
    readiness_poll_interval: float = 15.0
    readiness_max_attempts: int = 40
    detach_grace: float = 60.0
    shutdown_poll_interval: float = 2.0
    shutdown_max_attempts: int = 30

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "running_poll_interval": self.running_poll_interval,
            "running_max_attempts": self.running_max_attempts,
            "running_backoff": self.running_backoff,
            "readiness_mode": self.readiness_mode,
            "readiness_wait": self.readiness_wait,
            "readiness_poll_interval": self.readiness_poll_interval,
            "readiness_max_attempts": self.readiness_max_attempts,
            "detach_grace": self.detach_grace,
            "shutdown_poll_interval": self.shutdown_poll_interval,
            "shutdown_max_attempts": self.shutdown_max_attempts,
        }


@dataclass(frozen=True)
class PathsConfig:
    """Local filesystem locations."""

    info_file: Path = Path("valheim-server-info.txt")
    logs_dir: Path = Path("~/.local/state/valheimctl/logs").expanduser()
    templates_dir: Path | None = None

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "info_file": str(self.info_file),
            "logs_dir": str(self.logs_dir),
            "templates_dir": str(self.templates_dir) if self.templates_dir else None,
        }


@dataclass(frozen=True)
class ProvisionConfig:
    """Provisioner policy switches."""

    cleanup_on_failure: bool = True

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"cleanup_on_failure": self.cleanup_on_failure}


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for valheimctl."""

    config_file: Path
    linode: LinodeConfig
    volume: VolumeConfig
    server: ServerConfig
    dns: DNSConfig
    notify: NotifyConfig
    remote: RemoteConfig
    timing: TimingConfig
    paths: PathsConfig
    provision: ProvisionConfig

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "linode": self.linode.to_dict(),
            "volume": self.volume.to_dict(),
            "server": self.server.to_dict(),
            "dns": self.dns.to_dict(),
            "notify": self.notify.to_dict(),
            "remote": self.remote.to_dict(),
            "timing": self.timing.to_dict(),
            "paths": self.paths.to_dict(),
            "provision": self.provision.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "valheimctl.yml",
    "linode": {
        "region": "us-ord",
        "type": "g8-dedicated-64-32",
        "image": "linode/ubuntu24.04",
        "label": "valheim-server",
        "root_pass": "",
        "cli_bin": "linode-cli",
    },
    "volume": {
        "label": "valheim",
        "size": 100,
        "mount_point": "/data/valheim-server",
        "device": "/dev/sdc",
    },
    "server": {
        "name": "My Valheim Server",
        "world": "Dedicated",
        "password": "changeme123",
        "admin_ids": [],
        "port": 2456,
        "container_name": "valheim-server",
        "image": "ghcr.io/community-valheim-tools/valheim-server:sha-9220bdc",
    },
    "dns": {
        "hosted_zone_id": "",
        "record_name": "",
        "ttl": 300,
        "aws_access_key_id": "",
        "aws_secret_access_key": "",
        "aws_bin": "aws",
    },
    "notify": {
        "discord_webhook_url": "",
        "discord_username": "",
        "timeout": 10.0,
    },
    "remote": {
        "ssh_bin": "ssh",
        "sshpass_bin": "sshpass",
        "user": "root",
        "connect_timeout": 10,
    },
    "timing": {
        "running_poll_interval": 10.0,
        "running_max_attempts": 60,
        "running_backoff": 1.0,
        "readiness_mode": "sleep",
        "readiness_wait": 300.0,
        "readiness_poll_interval": 15.0,
        "readiness_max_attempts": 40,
        "detach_grace": 60.0,
        "shutdown_poll_interval": 2.0,
        "shutdown_max_attempts": 30,
    },
    "paths": {
        "info_file": "valheim-server-info.txt",
        "logs_dir": "~/.local/state/valheimctl/logs",
        "templates_dir": None,
    },
    "provision": {
        "cleanup_on_failure": True,
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    legacy_values = _build_legacy_env_overrides(resolved_env)
    if legacy_values:
        _deep_merge(merged, legacy_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override)
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR])
    return Path(default_path)


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    for section, defaults in DEFAULTS.items():
        if not isinstance(defaults, Mapping):
            continue
        section_map = _as_dict(raw.get(section), section)
        unknown = set(section_map.keys()) - set(defaults.keys())
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown {section} configuration keys: {joined}.")

    timing_map = _as_dict(raw.get("timing"), "timing")
    mode = timing_map.get("readiness_mode")
    if mode is not None and str(mode) not in ALLOWED_READINESS_MODES:
        allowed = ", ".join(sorted(ALLOWED_READINESS_MODES))
        raise ConfigError(f"Unsupported readiness mode '{mode}'. Allowed: {allowed}.")


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    linode_map = _as_dict(raw.get("linode"), "linode")
    root_pass = _expect_secret(linode_map.get("root_pass"), "linode.root_pass")
    linode = LinodeConfig(
        region=_expect_text(linode_map.get("region"), "linode.region"),
        type=_expect_text(linode_map.get("type"), "linode.type"),
        image=_expect_text(linode_map.get("image"), "linode.image"),
        label=_expect_text(linode_map.get("label"), "linode.label"),
        root_pass=root_pass or None,
        cli_bin=_expect_text(linode_map.get("cli_bin"), "linode.cli_bin"),
    )
    if not linode.label:
        raise ConfigError("linode.label must be a non-empty string.")

    volume_map = _as_dict(raw.get("volume"), "volume")
    volume = VolumeConfig(
        label=_expect_text(volume_map.get("label"), "volume.label"),
        size=_expect_int(volume_map.get("size"), "volume.size", default=100),
        mount_point=_expect_text(volume_map.get("mount_point"), "volume.mount_point"),
        device=_expect_text(volume_map.get("device"), "volume.device"),
    )
    if not volume.label:
        raise ConfigError("volume.label must be a non-empty string.")
    if volume.size <= 0:
        raise ConfigError(f"volume.size must be greater than zero. Got {volume.size}.")

    server_map = _as_dict(raw.get("server"), "server")
    server = ServerConfig(
        name=_expect_text(server_map.get("name"), "server.name"),
        world=_expect_text(server_map.get("world"), "server.world"),
        password=_expect_secret(server_map.get("password"), "server.password"),
        admin_ids=_parse_admin_ids(server_map.get("admin_ids")),
        port=_expect_int(server_map.get("port"), "server.port", default=2456),
        container_name=_expect_text(server_map.get("container_name"), "server.container_name"),
        image=_expect_text(server_map.get("image"), "server.image"),
    )
    # The server listens on port..port+2.
    if not 1 <= server.port <= 65533:
        raise ConfigError(f"server.port must be between 1 and 65533. Got {server.port}.")

    dns_map = _as_dict(raw.get("dns"), "dns")
    dns = DNSConfig(
        hosted_zone_id=_expect_text(dns_map.get("hosted_zone_id"), "dns.hosted_zone_id"),
        record_name=_expect_text(dns_map.get("record_name"), "dns.record_name"),
        ttl=_expect_int(dns_map.get("ttl"), "dns.ttl", default=300),
        aws_access_key_id=_expect_secret(
            dns_map.get("aws_access_key_id"), "dns.aws_access_key_id"
        ),
        aws_secret_access_key=_expect_secret(
            dns_map.get("aws_secret_access_key"), "dns.aws_secret_access_key"
        ),
        aws_bin=_expect_text(dns_map.get("aws_bin"), "dns.aws_bin"),
    )
    if dns.ttl <= 0:
        raise ConfigError(f"dns.ttl must be greater than zero. Got {dns.ttl}.")

    notify_map = _as_dict(raw.get("notify"), "notify")
    notify = NotifyConfig(
        discord_webhook_url=_expect_text(
            notify_map.get("discord_webhook_url"), "notify.discord_webhook_url"
        ),
        discord_username=_expect_text(
            notify_map.get("discord_username"), "notify.discord_username"
        ),
        timeout=_expect_positive_float(
            notify_map.get("timeout"), "notify.timeout", default=10.0
        ),
    )

    remote_map = _as_dict(raw.get("remote"), "remote")
    remote = RemoteConfig(
        ssh_bin=_expect_text(remote_map.get("ssh_bin"), "remote.ssh_bin"),
        sshpass_bin=_expect_text(remote_map.get("sshpass_bin"), "remote.sshpass_bin"),
        user=_expect_text(remote_map.get("user"), "remote.user"),
        connect_timeout=_expect_int(
            remote_map.get("connect_timeout"), "remote.connect_timeout", default=10
        ),
    )

    timing_map = _as_dict(raw.get("timing"), "timing")
    timing = TimingConfig(
        running_poll_interval=_expect_positive_float(
            timing_map.get("running_poll_interval"), "timing.running_poll_interval", default=10.0
        ),
        running_max_attempts=_expect_attempts(
            timing_map.get("running_max_attempts"), "timing.running_max_attempts", default=60
        ),
        running_backoff=_expect_positive_float(
            timing_map.get("running_backoff"), "timing.running_backoff", default=1.0
        ),
        readiness_mode=str(timing_map.get("readiness_mode", "sleep")),
        readiness_wait=_expect_non_negative_float(
            timing_map.get("readiness_wait"), "timing.readiness_wait", default=300.0
        ),
        readiness_poll_interval=_expect_positive_float(
            timing_map.get("readiness_poll_interval"),
            "timing.readiness_poll_interval",
            default=15.0,
        ),
        readiness_max_attempts=_expect_attempts(
            timing_map.get("readiness_max_attempts"), "timing.readiness_max_attempts", default=40
        ),
        detach_grace=_expect_non_negative_float(
            timing_map.get("detach_grace"), "timing.detach_grace", default=60.0
        ),
        shutdown_poll_interval=_expect_positive_float(
            timing_map.get("shutdown_poll_interval"), "timing.shutdown_poll_interval", default=2.0
        ),
        shutdown_max_attempts=_expect_attempts(
            timing_map.get("shutdown_max_attempts"), "timing.shutdown_max_attempts", default=30
        ),
    )
    if timing.running_backoff < 1.0:
        raise ConfigError("timing.running_backoff must be at least 1.0.")

    paths_map = _as_dict(raw.get("paths"), "paths")
    templates_value = paths_map.get("templates_dir")
    paths = PathsConfig(
        info_file=_to_path(paths_map.get("info_file")),
        logs_dir=_to_path(paths_map.get("logs_dir")),
        templates_dir=_to_path(templates_value) if templates_value else None,
    )

    provision_map = _as_dict(raw.get("provision"), "provision")
    provision = ProvisionConfig(
        cleanup_on_failure=_expect_bool(
            provision_map.get("cleanup_on_failure"),
            "provision.cleanup_on_failure",
            default=True,
        ),
    )

    return AppConfig(
        config_file=_to_path(raw.get("config_file")),
        linode=linode,
        volume=volume,
        server=server,
        dns=dns,
        notify=notify,
        remote=remote,
        timing=timing,
        paths=paths,
        provision=provision,
    )


def _build_legacy_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, (section, field) in LEGACY_ENV_KEYS.items():
        value = env.get(key)
        if value is None or value == "":
            continue
        _assign_nested(overrides, [section, field], value)
    return overrides


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        default = _lookup_default(path_segments)
        _assign_nested(overrides, path_segments, _coerce_value(value, default))
    return overrides


def _lookup_default(path: list[str]) -> object:
    current: object = DEFAULTS
    for segment in path:
        if not isinstance(current, Mapping):
            return None
        current = current.get(segment)
    return current


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and value is None:
            continue
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result


def _coerce_value(raw: str, default: object) -> object:
    if isinstance(default, str):
        return raw
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _parse_admin_ids(value: object) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, bool):
        raise ConfigError("server.admin_ids must be a list or a comma separated string.")
    if isinstance(value, int):
        return (str(value),)
    if isinstance(value, str):
        return tuple(part for part in re.split(r"[,\s]+", value) if part)
    if isinstance(value, (list, tuple)):
        return tuple(str(item).strip() for item in value if str(item).strip())
    raise ConfigError("server.admin_ids must be a list or a comma separated string.")


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_text(value: object | None, label: str) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a string. Got boolean {value!r}.")
    if isinstance(value, (str, int, float)):
        return str(value).strip()
    raise ConfigError(f"Expected {label} to be a string. Got {type(value).__name__}.")


def _expect_secret(value: object | None, label: str) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a string. Got boolean {value!r}.")
    if isinstance(value, (str, int, float)):
        return str(value)
    raise ConfigError(f"Expected {label} to be a string. Got {type(value).__name__}.")


def _expect_int(value: object | None, label: str, *, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be an integer. Got boolean {value!r}.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip(), 10)
        except ValueError as exc:
            raise ConfigError(f"Invalid integer for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be an integer. Got {type(value).__name__}.")


def _expect_attempts(value: object | None, label: str, *, default: int) -> int:
    attempts = _expect_int(value, label, default=default)
    if attempts < 1:
        raise ConfigError(f"{label} must be at least 1. Got {attempts}.")
    return attempts


def _expect_bool(value: object | None, label: str, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    raise ConfigError(f"Expected {label} to be a boolean. Got {value!r}.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_number(value: object, label: str) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be numeric. Got {type(value).__name__}.")


def _expect_positive_float(
    value: object | None,
    label: str,
    *,
    default: float,
) -> float:
    if value is None:
        return float(default)
    numeric = _expect_number(value, label)
    if numeric <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {numeric}.")
    return numeric


def _expect_non_negative_float(
    value: object | None,
    label: str,
    *,
    default: float,
) -> float:
    if value is None:
        return float(default)
    numeric = _expect_number(value, label)
    if numeric < 0:
        raise ConfigError(f"{label} must not be negative. Got {numeric}.")
    return numeric


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "ConfigError",
    "DNSConfig",
    "LinodeConfig",
    "MIN_SERVER_PASSWORD_LENGTH",
    "NotifyConfig",
    "PathsConfig",
    "ProvisionConfig",
    "RemoteConfig",
    "ServerConfig",
    "TimingConfig",
    "VolumeConfig",
    "load_config",
]
