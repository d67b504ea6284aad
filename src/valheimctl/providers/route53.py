"""Route 53 provider backed by the ``aws`` CLI."""
from __future__ import annotations

import json
import os
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass


class Route53Error(RuntimeError):
    """Raised when an aws CLI invocation fails."""


@dataclass(slots=True)
class Route53Provider:
    """Upsert A records, using explicit keys when given or the default profile."""

    aws_bin: str = "aws"
    access_key_id: str = ""
    secret_access_key: str = ""

    @property
    def uses_explicit_credentials(self) -> bool:
        """Return ``True`` when both access key fields are supplied."""
        return bool(self.access_key_id and self.secret_access_key)

    def check_credentials(self) -> None:
        """Validate credentials with ``sts get-caller-identity``."""
        self._run_command(
            ["sts", "get-caller-identity", "--output", "json"],
            error_prefix="sts get-caller-identity",
        )

    def upsert_a_record(self, zone_id: str, name: str, value: str, ttl: int) -> str:
        """Point *name* at *value* and return the Route 53 change id."""
        change_batch = {
            "Changes": [
                {
                    "Action": "UPSERT",
                    "ResourceRecordSet": {
                        "Name": name,
                        "Type": "A",
                        "TTL": ttl,
                        "ResourceRecords": [{"Value": value}],
                    },
                }
            ]
        }
        result = self._run_command(
            [
                "route53",
                "change-resource-record-sets",
                "--hosted-zone-id",
                zone_id,
                "--change-batch",
                json.dumps(change_batch),
                "--output",
                "json",
            ],
            error_prefix="route53 change-resource-record-sets",
        )
        try:
            payload = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as exc:
            raise Route53Error(f"route53 returned invalid JSON: {exc}") from exc
        change_info = payload.get("ChangeInfo") if isinstance(payload, dict) else None
        if not isinstance(change_info, dict) or not change_info.get("Id"):
            raise Route53Error("route53 response did not include ChangeInfo.Id")
        return str(change_info["Id"])

    # ------------------------------------------------------------------
    def _environment(self) -> dict[str, str]:
        env = os.environ.copy()
        if self.uses_explicit_credentials:
            env["AWS_ACCESS_KEY_ID"] = self.access_key_id
            env["AWS_SECRET_ACCESS_KEY"] = self.secret_access_key
        return env

    def _run_command(
        self,
        args: Sequence[str],
        *,
        error_prefix: str,
    ) -> subprocess.CompletedProcess[str]:
        command = [self.aws_bin, *args]
        try:
            result = subprocess.run(  # noqa: S603 - controlled command execution
                command,
                capture_output=True,
                text=True,
                check=False,
                env=self._environment(),
            )
        except FileNotFoundError as exc:
            raise Route53Error(f"{self.aws_bin} not found: {exc}") from exc
        if result.returncode != 0:
            stdout = result.stdout or ""
            stderr = result.stderr or ""
            message = stderr.strip() or stdout.strip() or "no output"
            raise Route53Error(
                f"{self.aws_bin} {error_prefix} failed (exit {result.returncode}): {message}"
            )
        return result


__all__ = ["Route53Error", "Route53Provider"]
