"""Linode provider backed by ``linode-cli --json``."""
from __future__ import annotations

import base64
import json
import subprocess
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import TypeVar

from ..models import InstanceRecord, VolumeRecord

RecordT = TypeVar("RecordT", InstanceRecord, VolumeRecord)


class LinodeError(RuntimeError):
    """Raised when a linode-cli invocation fails."""


@dataclass(slots=True)
class LinodeProvider:
    """Manage Linode instances and volumes through the official CLI."""

    cli_bin: str = "linode-cli"

    def check_auth(self) -> None:
        """Ensure the CLI is configured with a working token."""
        self._run_command(["regions", "list", "--json"], error_prefix="regions list")

    # Instances ---------------------------------------------------------
    def list_instances(self) -> list[InstanceRecord]:
        """Return every instance on the account."""
        payload = self._run_json(["linodes", "list"], error_prefix="linodes list")
        return [_decode(InstanceRecord.from_api, item, "linodes list") for item in payload]

    def get_instance(self, instance_id: int) -> InstanceRecord:
        """Return the current view of *instance_id*."""
        payload = self._run_json(
            ["linodes", "view", str(instance_id)],
            error_prefix=f"linodes view {instance_id}",
        )
        context = f"linodes view {instance_id}"
        return _decode(InstanceRecord.from_api, _first(payload, context), context)

    def create_instance(
        self,
        *,
        region: str,
        instance_type: str,
        image: str,
        label: str,
        root_pass: str,
        user_data: str,
    ) -> InstanceRecord:
        """Create an instance with *user_data* passed as cloud-init metadata."""
        encoded = base64.b64encode(user_data.encode("utf-8")).decode("ascii")
        payload = self._run_json(
            [
                "linodes",
                "create",
                "--region",
                region,
                "--type",
                instance_type,
                "--image",
                image,
                "--label",
                label,
                "--root_pass",
                root_pass,
                "--metadata.user_data",
                encoded,
            ],
            error_prefix="linodes create",
        )
        context = "linodes create"
        return _decode(InstanceRecord.from_api, _first(payload, context), context)

    def shutdown_instance(self, instance_id: int) -> None:
        """Request a graceful power-off."""
        self._run_command(
            ["linodes", "shutdown", str(instance_id)],
            error_prefix=f"linodes shutdown {instance_id}",
        )

    def delete_instance(self, instance_id: int) -> None:
        """Delete *instance_id*."""
        self._run_command(
            ["linodes", "delete", str(instance_id)],
            error_prefix=f"linodes delete {instance_id}",
        )

    # Volumes -----------------------------------------------------------
    def list_volumes(self) -> list[VolumeRecord]:
        """Return every volume on the account."""
        payload = self._run_json(["volumes", "list"], error_prefix="volumes list")
        return [_decode(VolumeRecord.from_api, item, "volumes list") for item in payload]

    def get_volume(self, volume_id: int) -> VolumeRecord:
        """Return the current view of *volume_id*."""
        payload = self._run_json(
            ["volumes", "view", str(volume_id)],
            error_prefix=f"volumes view {volume_id}",
        )
        context = f"volumes view {volume_id}"
        return _decode(VolumeRecord.from_api, _first(payload, context), context)

    def create_volume(self, *, label: str, region: str, size: int) -> VolumeRecord:
        """Create an unattached volume."""
        payload = self._run_json(
            [
                "volumes",
                "create",
                "--label",
                label,
                "--region",
                region,
                "--size",
                str(size),
            ],
            error_prefix="volumes create",
        )
        context = "volumes create"
        return _decode(VolumeRecord.from_api, _first(payload, context), context)

    def attach_volume(self, volume_id: int, instance_id: int) -> None:
        """Attach *volume_id* to *instance_id*."""
        self._run_command(
            ["volumes", "attach", str(volume_id), "--linode_id", str(instance_id)],
            error_prefix=f"volumes attach {volume_id}",
        )

    def detach_volume(self, volume_id: int) -> None:
        """Detach *volume_id* from whatever instance holds it."""
        self._run_command(
            ["volumes", "detach", str(volume_id)],
            error_prefix=f"volumes detach {volume_id}",
        )

    # ------------------------------------------------------------------
    def _run_json(self, args: Sequence[str], *, error_prefix: str) -> list[Mapping[str, object]]:
        result = self._run_command([*args, "--json"], error_prefix=error_prefix)
        try:
            payload = json.loads(result.stdout or "[]")
        except json.JSONDecodeError as exc:
            raise LinodeError(f"{self.cli_bin} {error_prefix} returned invalid JSON: {exc}") from exc
        if isinstance(payload, Mapping):
            payload = [payload]
        if not isinstance(payload, list):
            raise LinodeError(
                f"{self.cli_bin} {error_prefix} returned unexpected payload type "
                f"{type(payload).__name__}"
            )
        return [item for item in payload if isinstance(item, Mapping)]

    def _run_command(
        self,
        args: Sequence[str],
        *,
        error_prefix: str,
    ) -> subprocess.CompletedProcess[str]:
        command = [self.cli_bin, *args]
        try:
            result = subprocess.run(  # noqa: S603 - controlled command execution
                command,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise LinodeError(f"{self.cli_bin} not found: {exc}") from exc
        if result.returncode != 0:
            stdout = result.stdout or ""
            stderr = result.stderr or ""
            message = stderr.strip() or stdout.strip() or "no output"
            raise LinodeError(
                f"{self.cli_bin} {error_prefix} failed (exit {result.returncode}): {message}"
            )
        return result


def _first(payload: Sequence[Mapping[str, object]], context: str) -> Mapping[str, object]:
    if not payload:
        raise LinodeError(f"linode-cli {context} returned no objects")
    return payload[0]


def _decode(
    factory: Callable[[Mapping[str, object]], RecordT],
    item: Mapping[str, object],
    context: str,
) -> RecordT:
    try:
        return factory(item)
    except ValueError as exc:
        raise LinodeError(f"linode-cli {context} returned malformed data: {exc}") from exc


__all__ = ["LinodeError", "LinodeProvider"]
