"""Dependency and credential checks that run before any cloud mutation."""
from __future__ import annotations

import shutil
from collections.abc import Callable
from dataclasses import dataclass

from .config import AppConfig
from .logging import OperationScope, StepStatus
from .providers import CloudClient, DNSClient, LinodeError, RemoteExecutor, Route53Error


class PreflightError(RuntimeError):
    """Raised when a required tool or credential is missing."""


@dataclass(slots=True)
class Preflight:
    """Verify the local toolchain and remote credentials for a workflow."""

    config: AppConfig
    cloud: CloudClient
    dns: DNSClient | None = None
    remote: RemoteExecutor | None = None
    which: Callable[[str], str | None] = shutil.which

    def check_cloud(self, op: OperationScope) -> None:
        """Ensure the Linode CLI is installed and authorised."""
        cli_bin = self.config.linode.cli_bin
        if self.which(cli_bin) is None:
            raise PreflightError(
                f"{cli_bin} is not installed. Install it with: pip install linode-cli"
            )
        try:
            self.cloud.check_auth()
        except LinodeError as exc:
            raise PreflightError(
                f"{cli_bin} is not configured. Run: {cli_bin} configure ({exc})"
            ) from exc
        op.add_step("preflight.linode", detail=cli_bin)

    def check_dns(self, op: OperationScope) -> None:
        """Validate Route 53 settings when DNS updates were requested."""
        dns = self.config.dns
        if not dns.requested:
            op.add_step("preflight.dns", status=StepStatus.SKIPPED, detail="Route 53 not configured")
            return
        if self.which(dns.aws_bin) is None:
            raise PreflightError(
                f"{dns.aws_bin} CLI is not installed but Route 53 integration is configured. "
                "Install it with: pip install awscli"
            )
        if not dns.enabled:
            raise PreflightError(
                "Both AWS_ROUTE53_HOSTED_ZONE_ID and AWS_ROUTE53_RECORD_NAME must be set "
                "for Route 53 integration"
            )
        if bool(dns.aws_access_key_id) != bool(dns.aws_secret_access_key):
            raise PreflightError(
                "Both AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY must be set together"
            )
        if self.dns is None:
            raise PreflightError("Route 53 integration is configured but no DNS client is available")
        source = "environment credentials" if dns.explicit_credentials else "default AWS profile"
        op.note(f"Checking AWS credentials ({source})...")
        try:
            self.dns.check_credentials()
        except Route53Error as exc:
            if dns.explicit_credentials:
                message = "AWS credentials are invalid. Please check AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY"
            else:
                message = (
                    f"{dns.aws_bin} CLI is not configured. Either set AWS_ACCESS_KEY_ID and "
                    f"AWS_SECRET_ACCESS_KEY, or run: {dns.aws_bin} configure"
                )
            raise PreflightError(f"{message} ({exc})") from exc
        op.add_step("preflight.dns", detail=source)

    def check_remote(self, op: OperationScope) -> bool:
        """Return whether remote commands can run; a missing helper is a warning."""
        if self.remote is not None and self.remote.available():
            op.add_step("preflight.remote")
            return True
        op.add_step(
            "preflight.remote",
            status=StepStatus.WARNING,
            detail=(
                f"{self.config.remote.sshpass_bin} is not installed; "
                "remote server cleanup will be skipped"
            ),
        )
        return False

    def check_provision(self, op: OperationScope) -> None:
        """Run every check the provisioner needs."""
        self.check_cloud(op)
        self.check_dns(op)

    def check_decommission(self, op: OperationScope) -> bool:
        """Run the decommissioner checks and report remote availability."""
        self.check_cloud(op)
        return self.check_remote(op)


__all__ = ["Preflight", "PreflightError"]
