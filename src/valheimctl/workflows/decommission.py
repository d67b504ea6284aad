"""Tear down the Valheim server instance while preserving its volume.

The connection-info file written by the provisioner is only a hint: the live
instance is always looked up again by label, because ids and addresses change
between runs. Remote cleanup, volume detach and the graceful shutdown are
best-effort; only failing to find or delete the instance is fatal.
"""
from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .. import info_file
from ..config import AppConfig
from ..info_file import ConnectionInfo, InfoFileError
from ..logging import OperationScope, StepStatus
from ..models import STATUS_OFFLINE, InstanceRecord, VolumeRecord
from ..preflight import Preflight, PreflightError
from ..providers import CloudClient, LinodeError, Notifier, RemoteExecError, RemoteExecutor
from ..retry import wait_for
from .common import WorkflowError, notify

CLEANUP_SCRIPT = """\
set -e

echo "Stopping Docker container..."
if docker ps -q --filter "name={container}" | grep -q .; then
    docker stop {container} || echo "Warning: Failed to stop container gracefully"
    sleep 2
fi

echo "Unmounting volume..."
if mountpoint -q {mount_point}; then
    umount {mount_point} || echo "Warning: Failed to unmount volume"
else
    echo "Volume not mounted"
fi

echo "Cleanup complete"
"""


def render_cleanup_script(container: str, mount_point: str) -> str:
    """Return the shell script that quiesces the server before teardown."""
    return CLEANUP_SCRIPT.format(container=container, mount_point=mount_point)


@dataclass(frozen=True, slots=True)
class DecommissionResult:
    """What a successful decommission removed and kept."""

    instance: InstanceRecord
    volume: VolumeRecord | None
    archive_path: Path


class Decommissioner:
    """Stop, detach and delete the instance recorded in the info file."""

    def __init__(
        self,
        config: AppConfig,
        *,
        cloud: CloudClient,
        remote: RemoteExecutor | None,
        notifier: Notifier,
        preflight: Preflight,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.config = config
        self.cloud = cloud
        self.remote = remote
        self.notifier = notifier
        self.preflight = preflight
        self.sleep = sleep
        self.clock = clock

    def run(self, op: OperationScope) -> DecommissionResult:
        """Execute the full decommissioning sequence."""
        try:
            remote_available = self.preflight.check_decommission(op)
        except PreflightError as exc:
            raise WorkflowError(str(exc)) from exc

        record = self.load_record(op)
        label = record.instance_label or self.config.linode.label
        instance = self.resolve_instance(op, label)
        ip = instance.ip or record.ip
        if record.ip and instance.ip and record.ip != instance.ip:
            op.note(f"Recorded IP {record.ip} is stale; using {instance.ip}")

        notify(
            op,
            self.notifier,
            f"⚠️ Initiating shutdown of Valheim server Linode instance (ID: {instance.id})...",
        )
        volume_label = record.volume_label or self.config.volume.label
        op.note(f"The volume '{volume_label}' will be PRESERVED with all game data.")

        self.remote_cleanup(op, instance, ip, record, remote_available=remote_available)
        volume = self.detach_volume(op, instance, record)
        notify(
            op,
            self.notifier,
            "🔧 Volume detached. Proceeding to shut down and delete Linode instance "
            f"(ID: {instance.id})...",
        )
        self.shutdown(op, instance)
        self.delete(op, instance)
        preserved = volume.label if volume is not None else volume_label
        notify(
            op,
            self.notifier,
            f"✅ Valheim server Linode instance (ID: {instance.id}) has been shut down and deleted. "
            f"Volume '{preserved}' preserved.",
        )
        archive_path = self.archive_record(op)
        return DecommissionResult(instance=instance, volume=volume, archive_path=archive_path)

    # Steps -------------------------------------------------------------
    def load_record(self, op: OperationScope) -> ConnectionInfo:
        """Read the connection-info file; a missing file is fatal."""
        path = self.config.paths.info_file
        op.note(f"Reading server information from {path}...")
        try:
            record = info_file.load(path)
        except InfoFileError as exc:
            raise WorkflowError(
                f"{exc}. Make sure you're running this from the same directory as provision."
            ) from exc
        if record.instance_label:
            op.add_step("info.load", detail=f"Found Linode label: {record.instance_label}")
        else:
            op.add_step(
                "info.load",
                status=StepStatus.WARNING,
                detail=(
                    "Linode label not found in info file, using default: "
                    f"{self.config.linode.label}"
                ),
            )
        return record

    def resolve_instance(self, op: OperationScope, label: str) -> InstanceRecord:
        """Find the live instance carrying *label*."""
        op.note(f"Searching for Linode with label '{label}'...")
        try:
            instances = self.cloud.list_instances()
        except LinodeError as exc:
            raise WorkflowError(f"Unable to list Linodes: {exc}") from exc
        matches = [item for item in instances if item.label == label]
        if not matches:
            raise WorkflowError(
                f"No Linode found with label '{label}'. It may have already been deleted."
            )
        if len(matches) > 1:
            ids = ", ".join(str(item.id) for item in matches)
            raise WorkflowError(
                f"Multiple Linodes found with label '{label}' (IDs: {ids}); remove the extras manually."
            )
        instance = matches[0]
        op.add_step(
            "instance.resolve",
            detail=f"Found Linode '{label}' (ID: {instance.id}, Status: {instance.status})",
        )
        return instance

    def remote_cleanup(
        self,
        op: OperationScope,
        instance: InstanceRecord,
        ip: str | None,
        record: ConnectionInfo,
        *,
        remote_available: bool,
    ) -> None:
        """Stop the container and unmount the volume over SSH when possible."""
        if not instance.running:
            op.add_step(
                "remote.cleanup",
                status=StepStatus.SKIPPED,
                detail="Linode is not running, skipping server cleanup",
            )
            return
        if not ip or not record.root_pass:
            op.add_step(
                "remote.cleanup",
                status=StepStatus.WARNING,
                detail="Missing IP or root password, skipping server cleanup",
            )
            return
        if not remote_available or self.remote is None:
            op.add_step(
                "remote.cleanup",
                status=StepStatus.WARNING,
                detail=f"{self.config.remote.sshpass_bin} not installed, skipping server cleanup",
            )
            return

        op.note("Connecting to server to cleanly stop services...")
        script = render_cleanup_script(
            record.container_name or self.config.server.container_name,
            record.mount_point or self.config.volume.mount_point,
        )
        try:
            result = self.remote.run_script(
                ip,
                record.root_pass,
                script,
                on_line=lambda line: op.note(f"  [remote] {line}"),
            )
        except RemoteExecError as exc:
            op.add_step("remote.cleanup", status=StepStatus.WARNING, detail=str(exc))
            return
        if result.ok:
            op.add_step("remote.cleanup", detail="Server cleanup completed successfully")
        else:
            op.add_step(
                "remote.cleanup",
                status=StepStatus.WARNING,
                detail=(
                    f"Server cleanup encountered issues (exit {result.returncode}), "
                    "continuing anyway"
                ),
            )

    def detach_volume(
        self,
        op: OperationScope,
        instance: InstanceRecord,
        record: ConnectionInfo,
    ) -> VolumeRecord | None:
        """Detach the game-data volume from *instance*."""
        volume = self._find_volume(op, record)
        if volume is None:
            return None
        if not volume.attached:
            op.add_step("volume.detach", status=StepStatus.SKIPPED, detail="Volume is already detached")
            return volume
        if volume.linode_id != instance.id:
            op.add_step(
                "volume.detach",
                status=StepStatus.WARNING,
                detail=(
                    f"Volume '{volume.label}' is attached to Linode {volume.linode_id}, "
                    f"not {instance.id}; leaving it alone"
                ),
            )
            return volume

        op.note(f"Detaching volume '{volume.label}' from Linode...")
        try:
            self.cloud.detach_volume(volume.id)
        except LinodeError as exc:
            raise WorkflowError(f"Failed to detach volume {volume.id}: {exc}") from exc
        grace = self.config.timing.detach_grace
        if grace > 0:
            op.note(f"Waiting {grace:g}s for the detach to complete...")
            self.sleep(grace)
        op.add_step("volume.detach", detail=f"Volume {volume.id} detached")
        return volume

    def shutdown(self, op: OperationScope, instance: InstanceRecord) -> None:
        """Power the instance off, waiting a bounded time for ``offline``."""
        if not instance.running:
            op.add_step(
                "instance.shutdown",
                status=StepStatus.SKIPPED,
                detail=f"Linode status is '{instance.status}'",
            )
            return
        timing = self.config.timing
        op.note(f"Shutting down Linode {instance.id}...")
        try:
            self.cloud.shutdown_instance(instance.id)
            result = wait_for(
                lambda: self.cloud.get_instance(instance.id),
                lambda current: current.status == STATUS_OFFLINE,
                interval=timing.shutdown_poll_interval,
                max_attempts=timing.shutdown_max_attempts,
                sleep=self.sleep,
            )
        except LinodeError as exc:
            op.add_step("instance.shutdown", status=StepStatus.WARNING, detail=str(exc))
            return
        if result.ok:
            op.add_step("instance.shutdown", detail="Linode powered off")
        else:
            op.add_step(
                "instance.shutdown",
                status=StepStatus.WARNING,
                detail=(
                    f"Linode still not offline after {result.attempts} checks; "
                    "deleting anyway"
                ),
            )

    def delete(self, op: OperationScope, instance: InstanceRecord) -> None:
        """Delete the instance; failure is fatal."""
        op.note(f"Deleting Linode {instance.id}...")
        try:
            self.cloud.delete_instance(instance.id)
        except LinodeError as exc:
            raise WorkflowError(f"Failed to delete Linode: {exc}", changed=True) from exc
        op.add_step("instance.delete", detail=f"Linode {instance.id} deleted")

    def archive_record(self, op: OperationScope) -> Path:
        """Rename the info file out of the way with a timestamp suffix."""
        try:
            target = info_file.archive(self.config.paths.info_file, when=self.clock())
        except InfoFileError as exc:
            raise WorkflowError(str(exc), changed=True) from exc
        op.add_step("info.archive", detail=f"Server info archived to: {target}")
        return target

    # Internals ---------------------------------------------------------
    def _find_volume(self, op: OperationScope, record: ConnectionInfo) -> VolumeRecord | None:
        if record.volume_id is not None:
            try:
                return self.cloud.get_volume(record.volume_id)
            except LinodeError:
                op.add_step(
                    "volume.detach",
                    status=StepStatus.WARNING,
                    detail=f"Could not find volume {record.volume_id}",
                )
                return None

        label = record.volume_label or self.config.volume.label
        region = record.region or self.config.linode.region
        try:
            volumes = self.cloud.list_volumes()
        except LinodeError as exc:
            op.add_step("volume.detach", status=StepStatus.WARNING, detail=str(exc))
            return None
        for volume in volumes:
            if volume.label == label and volume.region == region:
                return volume
        op.add_step(
            "volume.detach",
            status=StepStatus.WARNING,
            detail="No volume information found, skipping detach",
        )
        return None


__all__ = ["CLEANUP_SCRIPT", "DecommissionResult", "Decommissioner", "render_cleanup_script"]
