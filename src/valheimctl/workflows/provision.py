"""Provision a Linode instance and persistent volume for a Valheim server.

The workflow is a fixed sequence of steps. Each one records its outcome on
the operation scope. Everything before the first mutating call (config
validation, dependency checks, the duplicate-label guard) is free of side
effects. Once an instance exists, a fatal error or interruption triggers a
scoped cleanup that detaches the volume and deletes that instance. The
volume itself is never deleted.
"""
from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .. import info_file
from ..config import MIN_SERVER_PASSWORD_LENGTH, AppConfig
from ..info_file import ConnectionInfo, InfoFileError
from ..logging import OperationScope, StepStatus
from ..models import InstanceRecord, VolumeRecord
from ..preflight import Preflight, PreflightError
from ..providers import (
    CloudClient,
    DNSClient,
    LinodeError,
    Notifier,
    RemoteExecError,
    RemoteExecutor,
    Route53Error,
)
from ..retry import wait_for
from ..templates import SETUP_COMPLETE_MARKER, TemplateEngine, TemplateRenderError, render_bootstrap
from .common import WorkflowError, generate_root_password, notify


@dataclass(frozen=True, slots=True)
class ProvisionResult:
    """Resources produced by a successful provisioning run."""

    info: ConnectionInfo
    info_path: Path
    instance: InstanceRecord
    volume: VolumeRecord
    volume_created: bool
    dns_change_id: str | None = None


class Provisioner:
    """Create the instance, attach the volume and record how to reach it."""

    def __init__(
        self,
        config: AppConfig,
        *,
        cloud: CloudClient,
        dns: DNSClient | None,
        remote: RemoteExecutor | None,
        notifier: Notifier,
        templates: TemplateEngine,
        preflight: Preflight,
        sleep: Callable[[float], None] = time.sleep,
        password_factory: Callable[[], str] = generate_root_password,
    ) -> None:
        self.config = config
        self.cloud = cloud
        self.dns = dns
        self.remote = remote
        self.notifier = notifier
        self.templates = templates
        self.preflight = preflight
        self.sleep = sleep
        self.password_factory = password_factory

    def run(self, op: OperationScope) -> ProvisionResult:
        """Execute the full provisioning sequence."""
        self.validate(op)
        try:
            self.preflight.check_provision(op)
        except PreflightError as exc:
            raise WorkflowError(str(exc)) from exc
        self._log_configuration(op)

        notify(
            op,
            self.notifier,
            f"🚀 Starting deployment of Valheim server in Linode region '{self.config.linode.region}'...",
        )
        self.guard_duplicate_label(op)
        volume, volume_created = self.locate_or_create_volume(op)

        instance: InstanceRecord | None = None
        attached = False
        try:
            instance, root_pass = self.create_instance(op)
            notify(
                op,
                self.notifier,
                f"✅ Linode instance created (ID: {instance.id}, IP: {instance.ip or 'pending'}). "
                "Attaching volume and finalizing setup...",
            )
            instance = self.wait_for_running(op, instance)
            self.attach_volume(op, volume, instance)
            attached = True
            notify(
                op,
                self.notifier,
                "🔧 Volume attached. Valheim server is being set up. This may take a few minutes...",
            )
            ip = instance.ip
            if ip is None:
                raise WorkflowError(f"Linode {instance.id} has no public IPv4 address", changed=True)
            change_id = self.update_dns(op, ip)
            notify(
                op,
                self.notifier,
                "🎉 Valheim server deployment initiated! Waiting for world to become ready...",
            )
            self.wait_for_ready(op, ip, root_pass)
            info = self._connection_info(instance, volume, root_pass)
            info_path = self.persist(op, info)
            notify(op, self.notifier, self._ready_message(info))
            return ProvisionResult(
                info=info,
                info_path=info_path,
                instance=instance,
                volume=volume,
                volume_created=volume_created,
                dns_change_id=change_id,
            )
        except (Exception, KeyboardInterrupt):
            if instance is not None:
                self._cleanup_after_failure(op, instance, volume, attached=attached)
            raise

    # Steps -------------------------------------------------------------
    def validate(self, op: OperationScope) -> None:
        """Reject configurations the game server would refuse."""
        if len(self.config.server.password) < MIN_SERVER_PASSWORD_LENGTH:
            raise WorkflowError(
                f"Server password must be at least {MIN_SERVER_PASSWORD_LENGTH} characters"
            )
        op.add_step("validate")

    def guard_duplicate_label(self, op: OperationScope) -> None:
        """Refuse to create a second instance with the configured label."""
        label = self.config.linode.label
        try:
            instances = self.cloud.list_instances()
        except LinodeError as exc:
            raise WorkflowError(f"Unable to list Linodes: {exc}") from exc
        existing = [item for item in instances if item.label == label]
        if existing:
            ids = ", ".join(str(item.id) for item in existing)
            raise WorkflowError(
                f"A Linode labelled '{label}' already exists (ID: {ids}). "
                "Decommission it first or choose another label."
            )
        op.add_step("instance.guard", detail=label)

    def locate_or_create_volume(self, op: OperationScope) -> tuple[VolumeRecord, bool]:
        """Reuse the labelled volume in the region, creating it when absent."""
        volume_config = self.config.volume
        region = self.config.linode.region
        op.note(f"Checking for existing volume '{volume_config.label}'...")
        try:
            volumes = self.cloud.list_volumes()
        except LinodeError as exc:
            raise WorkflowError(f"Unable to list volumes: {exc}") from exc

        for volume in volumes:
            if volume.label != volume_config.label or volume.region != region:
                continue
            if volume.attached:
                raise WorkflowError(
                    f"Volume '{volume.label}' is already attached to Linode ID: "
                    f"{volume.linode_id}. Please detach it first."
                )
            op.add_step(
                "volume.locate",
                detail=f"Found existing volume '{volume.label}' (ID: {volume.id}, Size: {volume.size}GB)",
            )
            return volume, False

        op.note(
            f"Creating new volume '{volume_config.label}' ({volume_config.size}GB) in region {region}..."
        )
        try:
            volume = self.cloud.create_volume(
                label=volume_config.label,
                region=region,
                size=volume_config.size,
            )
        except LinodeError as exc:
            raise WorkflowError(f"Failed to create volume: {exc}") from exc
        op.add_step("volume.create", detail=f"Volume created with ID: {volume.id}")
        return volume, True

    def create_instance(self, op: OperationScope) -> tuple[InstanceRecord, str]:
        """Create the instance with the rendered bootstrap payload."""
        linode = self.config.linode
        root_pass = linode.root_pass
        if not root_pass:
            root_pass = self.password_factory()
            op.note("Generated a random root password")
        try:
            user_data = render_bootstrap(self.templates, self.config)
        except TemplateRenderError as exc:
            raise WorkflowError(str(exc), changed=True) from exc

        op.note("Creating Linode instance...")
        try:
            instance = self.cloud.create_instance(
                region=linode.region,
                instance_type=linode.type,
                image=linode.image,
                label=linode.label,
                root_pass=root_pass,
                user_data=user_data,
            )
        except LinodeError as exc:
            raise WorkflowError(f"Failed to create Linode: {exc}", changed=True) from exc
        op.add_step(
            "instance.create",
            detail=f"Linode created with ID: {instance.id} (IP: {instance.ip or 'pending'})",
        )
        return instance, root_pass

    def wait_for_running(self, op: OperationScope, instance: InstanceRecord) -> InstanceRecord:
        """Poll until the provider reports the instance as running."""
        timing = self.config.timing
        op.note("Waiting for Linode to be running...")
        try:
            result = wait_for(
                lambda: self.cloud.get_instance(instance.id),
                lambda current: current.running,
                interval=timing.running_poll_interval,
                max_attempts=timing.running_max_attempts,
                backoff=timing.running_backoff,
                sleep=self.sleep,
                on_attempt=lambda _attempt, current: op.note(
                    f"Current status: {current.status} - waiting..."
                ),
            )
        except LinodeError as exc:
            raise WorkflowError(f"Unable to query Linode {instance.id}: {exc}", changed=True) from exc
        if not result.ok or result.value is None:
            last = result.value.status if result.value is not None else "unknown"
            raise WorkflowError(
                f"Linode {instance.id} did not reach 'running' after {result.attempts} attempts "
                f"(last status: {last})",
                changed=True,
            )
        current = result.value
        if current.ip is None and instance.ip is not None:
            current = InstanceRecord(
                id=current.id,
                label=current.label,
                status=current.status,
                ipv4=instance.ipv4,
                region=current.region,
            )
        op.add_step("instance.running", detail=f"running after {result.attempts} checks")
        return current

    def attach_volume(self, op: OperationScope, volume: VolumeRecord, instance: InstanceRecord) -> None:
        """Attach *volume* to *instance*."""
        op.note(f"Attaching volume '{volume.label}' to Linode...")
        try:
            self.cloud.attach_volume(volume.id, instance.id)
        except LinodeError as exc:
            raise WorkflowError(f"Failed to attach volume: {exc}", changed=True) from exc
        op.add_step("volume.attach", detail=f"volume {volume.id} -> linode {instance.id}")

    def update_dns(self, op: OperationScope, ip: str) -> str | None:
        """Point the configured record at *ip*; failures are only warnings."""
        dns = self.config.dns
        if not dns.enabled or self.dns is None:
            op.add_step("dns.update", status=StepStatus.SKIPPED, detail="Route 53 not configured")
            return None
        op.note(f"Updating Route 53 record '{dns.record_name}' to point to {ip}...")
        try:
            change_id = self.dns.upsert_a_record(dns.hosted_zone_id, dns.record_name, ip, dns.ttl)
        except Route53Error as exc:
            op.add_step(
                "dns.update",
                status=StepStatus.WARNING,
                detail=f"Failed to update Route 53 record ({exc}). You may need to update DNS manually.",
            )
            return None
        op.add_step(
            "dns.update",
            detail=f"{dns.record_name} -> {ip} (Change ID: {change_id})",
        )
        return change_id

    def wait_for_ready(self, op: OperationScope, ip: str, root_pass: str) -> None:
        """Give cloud-init time to finish, or probe for its completion marker."""
        timing = self.config.timing
        if timing.readiness_mode == "probe":
            if self.remote is not None and self.remote.available():
                self._probe_ready(op, ip, root_pass)
                return
            op.note(
                "Remote shell unavailable; falling back to a fixed readiness wait",
                level="warning",
            )
        op.note(f"Waiting {timing.readiness_wait:g}s for the server setup to complete...")
        self.sleep(timing.readiness_wait)
        op.add_step("readiness", detail=f"waited {timing.readiness_wait:g}s")

    def persist(self, op: OperationScope, info: ConnectionInfo) -> Path:
        """Write the connection-info file."""
        try:
            path = info_file.write(self.config.paths.info_file, info)
        except InfoFileError as exc:
            raise WorkflowError(str(exc), changed=True) from exc
        op.add_step("info.write", detail=str(path))
        return path

    # Internals ---------------------------------------------------------
    def _probe_ready(self, op: OperationScope, ip: str, root_pass: str) -> None:
        assert self.remote is not None
        remote = self.remote
        timing = self.config.timing
        script = f"test -f {SETUP_COMPLETE_MARKER}\n"

        def probe() -> bool:
            try:
                return remote.run_script(ip, root_pass, script).ok
            except RemoteExecError as exc:
                op.note(f"Readiness probe failed: {exc}")
                return False

        op.note("Waiting for the server setup to complete...")
        result = wait_for(
            probe,
            bool,
            interval=timing.readiness_poll_interval,
            max_attempts=timing.readiness_max_attempts,
            sleep=self.sleep,
        )
        if result.ok:
            op.add_step("readiness", detail=f"setup marker found after {result.attempts} checks")
        else:
            op.add_step(
                "readiness",
                status=StepStatus.WARNING,
                detail=(
                    f"setup marker not found after {result.attempts} checks; "
                    "the server may still be starting"
                ),
            )

    def _connection_info(
        self,
        instance: InstanceRecord,
        volume: VolumeRecord,
        root_pass: str,
    ) -> ConnectionInfo:
        config = self.config
        dns_record = config.dns.record_name if config.dns.enabled else None
        return ConnectionInfo(
            instance_label=config.linode.label,
            instance_id=instance.id,
            ip=instance.ip,
            root_pass=root_pass,
            region=config.linode.region,
            volume_id=volume.id,
            volume_label=volume.label,
            volume_size=volume.size,
            mount_point=config.volume.mount_point,
            dns_record=dns_record,
            dns_zone=config.dns.hosted_zone_id if dns_record else None,
            server_name=config.server.name,
            world_name=config.server.world,
            server_password=config.server.password,
            port=config.server.port,
            container_name=config.server.container_name,
            created=datetime.now().astimezone().strftime("%a %b %d %H:%M:%S %Z %Y"),
        )

    def _ready_message(self, info: ConnectionInfo) -> str:
        targets = " or ".join(info.connect_targets)
        return f"🗺️ {info.world_name} is ready! Connect to {targets}."

    def _log_configuration(self, op: OperationScope) -> None:
        config = self.config
        op.note("Configuration:")
        op.note(f"  Region: {config.linode.region}")
        op.note(f"  Instance Type: {config.linode.type}")
        op.note(f"  Volume: {config.volume.label} ({config.volume.size}GB)")
        if config.dns.enabled:
            op.note(f"  DNS: {config.dns.record_name} (Route 53)")
        op.note(f"  Server Name: {config.server.name}")
        op.note(f"  World Name: {config.server.world}")
        op.note(f"  Port: {config.server.port}")

    def _cleanup_after_failure(
        self,
        op: OperationScope,
        instance: InstanceRecord,
        volume: VolumeRecord,
        *,
        attached: bool,
    ) -> None:
        if not self.config.provision.cleanup_on_failure:
            op.add_step(
                "cleanup",
                status=StepStatus.WARNING,
                detail=(
                    f"Left Linode {instance.id} ('{instance.label}') and volume {volume.id} "
                    f"('{volume.label}') in place; remove them manually"
                ),
            )
            return
        op.note(f"Cleaning up Linode {instance.id} after failure...", level="warning")
        if attached:
            try:
                self.cloud.detach_volume(volume.id)
            except LinodeError as exc:
                op.add_step(
                    "cleanup.detach",
                    status=StepStatus.WARNING,
                    detail=f"Unable to detach volume {volume.id}: {exc}",
                )
            else:
                op.add_step("cleanup.detach", detail=f"volume {volume.id}")
        try:
            self.cloud.delete_instance(instance.id)
        except LinodeError as exc:
            op.add_step(
                "cleanup.delete",
                status=StepStatus.WARNING,
                detail=f"Unable to delete Linode {instance.id} ('{instance.label}'): {exc}",
            )
            return
        op.add_step(
            "cleanup.delete",
            detail=f"Linode {instance.id} deleted; volume {volume.id} ('{volume.label}') preserved",
        )


__all__ = ["ProvisionResult", "Provisioner"]
