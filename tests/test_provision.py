"""Provisioning workflow tests driven by in-memory providers."""
from __future__ import annotations

from pathlib import Path

import pytest
from fakes import (
    FakeCloud,
    FakeDNS,
    FakeNotifier,
    FakeRemote,
    SleepRecorder,
    always_found,
    make_config,
)

from valheimctl import info_file
from valheimctl.config import AppConfig
from valheimctl.logging import StepStatus, StructuredLogger
from valheimctl.models import InstanceRecord, VolumeRecord
from valheimctl.preflight import Preflight
from valheimctl.providers import LinodeError, RemoteResult, Route53Error
from valheimctl.templates import SETUP_COMPLETE_MARKER, TemplateEngine
from valheimctl.workflows import Provisioner, WorkflowError

ROOT_PASS = "R00tPassw0rdR00tPassw0rdR00tPass"


def _config(tmp_path: Path, **sections: dict[str, object]) -> AppConfig:
    base: dict[str, dict[str, object]] = {
        "linode": {"label": "test1", "region": "us-ord"},
        "volume": {"label": "vol1", "size": 10},
        "server": {"port": 2456, "password": "secret1", "world": "Midgard"},
    }
    for section, values in sections.items():
        base[section] = {**base.get(section, {}), **values}
    return make_config(tmp_path, **base)


def _provisioner(
    config: AppConfig,
    cloud: FakeCloud,
    *,
    dns: FakeDNS | None = None,
    remote: FakeRemote | None = None,
    notifier: FakeNotifier | None = None,
    sleep: SleepRecorder | None = None,
    which=always_found,
) -> Provisioner:
    preflight = Preflight(config, cloud, dns=dns, remote=remote, which=which)
    return Provisioner(
        config,
        cloud=cloud,
        dns=dns,
        remote=remote,
        notifier=notifier or FakeNotifier(),
        templates=TemplateEngine.with_overrides(None),
        preflight=preflight,
        sleep=sleep or SleepRecorder(),
        password_factory=lambda: ROOT_PASS,
    )


@pytest.fixture
def logger(tmp_path: Path) -> StructuredLogger:
    """Return a logger writing into the temporary directory."""
    return StructuredLogger(tmp_path / "logs")


def test_provision_creates_volume_instance_and_info_file(
    tmp_path: Path, logger: StructuredLogger
) -> None:
    """A clean account ends with one instance, an attached volume and a record."""
    config = _config(tmp_path)
    cloud = FakeCloud()
    notifier = FakeNotifier()

    with logger.operation("provision") as op:
        result = _provisioner(config, cloud, notifier=notifier).run(op)

    assert result.volume_created is True
    assert [item.label for item in cloud.instances.values()] == ["test1"]
    volume = cloud.volumes[result.volume.id]
    assert volume.label == "vol1"
    assert volume.size == 10
    assert volume.linode_id == result.instance.id

    record = info_file.load(config.paths.info_file)
    assert record.instance_label == "test1"
    assert record.instance_id == result.instance.id
    assert record.ip == "203.0.113.10"
    assert record.root_pass == ROOT_PASS
    assert record.volume_label == "vol1"
    assert record.volume_size == 10
    assert record.port == 2456

    assert op.step_status("dns.update") is StepStatus.SKIPPED
    assert op.step_status("info.write") is StepStatus.SUCCESS
    assert len(notifier.messages) == 5
    assert notifier.messages[0].startswith("🚀 Starting deployment")
    assert "Midgard is ready!" in notifier.messages[-1]
    assert "203.0.113.10:2456" in notifier.messages[-1]


def test_provision_renders_bootstrap_payload(tmp_path: Path, logger: StructuredLogger) -> None:
    """The rendered cloud-init payload carries the server settings."""
    config = _config(tmp_path, server={"admin_ids": "111,222"})
    cloud = FakeCloud()

    with logger.operation("provision") as op:
        _provisioner(config, cloud).run(op)

    (user_data,) = cloud.user_data
    assert user_data.startswith("#cloud-config")
    assert "SERVER_PASS=secret1" in user_data
    assert "ADMINLIST_IDS=111,222" in user_data
    assert "2456:2456/udp" in user_data
    assert SETUP_COMPLETE_MARKER in user_data


def test_provision_reuses_unattached_volume(tmp_path: Path, logger: StructuredLogger) -> None:
    """An existing detached volume with the same label and region is reused."""
    config = _config(tmp_path)
    existing = VolumeRecord(id=7, label="vol1", region="us-ord", size=10)
    cloud = FakeCloud(volumes=[existing])

    with logger.operation("provision") as op:
        result = _provisioner(config, cloud).run(op)

    assert result.volume_created is False
    assert not [call for call in cloud.calls if call[0] == "create_volume"]
    assert cloud.volumes[7].linode_id == result.instance.id
    assert op.step_status("volume.locate") is StepStatus.SUCCESS


def test_provision_ignores_volume_in_other_region(
    tmp_path: Path, logger: StructuredLogger
) -> None:
    """A same-label volume elsewhere does not count; a new one is created."""
    config = _config(tmp_path)
    cloud = FakeCloud(volumes=[VolumeRecord(id=7, label="vol1", region="eu-central", size=10)])

    with logger.operation("provision") as op:
        result = _provisioner(config, cloud).run(op)

    assert result.volume_created is True
    assert result.volume.id != 7
    assert result.volume.region == "us-ord"


def test_provision_rejects_volume_attached_elsewhere(
    tmp_path: Path, logger: StructuredLogger
) -> None:
    """A volume held by another instance aborts before any instance is created."""
    config = _config(tmp_path, linode={"label": "test2"})
    other = InstanceRecord(id=42, label="other", status="running", ipv4=("198.51.100.5",))
    volume = VolumeRecord(id=7, label="vol1", region="us-ord", size=10, linode_id=42)
    cloud = FakeCloud(instances=[other], volumes=[volume])

    with pytest.raises(WorkflowError, match="already attached to Linode ID: 42"):
        with logger.operation("provision") as op:
            _provisioner(config, cloud).run(op)

    assert cloud.mutations == []
    assert not config.paths.info_file.exists()
    assert op.result is not None and op.result["status"] == "error"


def test_provision_rejects_duplicate_instance_label(
    tmp_path: Path, logger: StructuredLogger
) -> None:
    """An existing instance with the configured label blocks the run."""
    config = _config(tmp_path)
    cloud = FakeCloud(instances=[InstanceRecord(id=9, label="test1", status="running")])

    with pytest.raises(WorkflowError, match="already exists"):
        with logger.operation("provision") as op:
            _provisioner(config, cloud).run(op)

    assert cloud.mutations == []
    assert not [call for call in cloud.calls if call[0] == "list_volumes"]


def test_short_server_password_fails_before_any_cloud_call(
    tmp_path: Path, logger: StructuredLogger
) -> None:
    """Password validation happens before the dependency checks."""
    config = _config(tmp_path, server={"password": "abcd"})
    cloud = FakeCloud()

    with pytest.raises(WorkflowError, match="at least 5 characters"):
        with logger.operation("provision") as op:
            _provisioner(config, cloud).run(op)

    assert cloud.calls == []


def test_missing_linode_cli_is_fatal(tmp_path: Path, logger: StructuredLogger) -> None:
    """Without the CLI on PATH nothing is attempted."""
    config = _config(tmp_path)
    cloud = FakeCloud()

    with pytest.raises(WorkflowError, match="linode-cli is not installed"):
        with logger.operation("provision") as op:
            _provisioner(config, cloud, which=lambda name: None).run(op)

    assert cloud.calls == []


def test_dns_failure_is_a_warning(tmp_path: Path, logger: StructuredLogger) -> None:
    """A failed record upsert leaves a fully provisioned server behind."""
    config = _config(
        tmp_path,
        dns={"hosted_zone_id": "Z123", "record_name": "valheim.example.com"},
    )
    cloud = FakeCloud()
    dns = FakeDNS()
    dns.failure = Route53Error("aws route53 change-resource-record-sets failed (exit 254): denied")

    with logger.operation("provision") as op:
        result = _provisioner(config, cloud, dns=dns).run(op)

    assert op.step_status("dns.update") is StepStatus.WARNING
    assert result.dns_change_id is None
    assert cloud.volumes[result.volume.id].linode_id == result.instance.id
    assert config.paths.info_file.exists()


def test_dns_upsert_points_record_at_instance(tmp_path: Path, logger: StructuredLogger) -> None:
    """A configured record is upserted with the instance address and TTL."""
    config = _config(
        tmp_path,
        dns={"hosted_zone_id": "Z123", "record_name": "valheim.example.com", "ttl": 60},
    )
    cloud = FakeCloud()
    dns = FakeDNS()

    with logger.operation("provision") as op:
        result = _provisioner(config, cloud, dns=dns).run(op)

    assert dns.records == {"valheim.example.com": ("203.0.113.10", 60)}
    assert result.dns_change_id == "/change/C0001"
    record = info_file.load(config.paths.info_file)
    assert record.dns_record == "valheim.example.com"
    assert record.dns_zone == "Z123"


def test_partial_dns_settings_are_fatal(tmp_path: Path, logger: StructuredLogger) -> None:
    """Setting only the hosted zone is rejected before any mutation."""
    config = _config(tmp_path, dns={"hosted_zone_id": "Z123"})
    cloud = FakeCloud()

    with pytest.raises(WorkflowError, match="must be set for Route 53 integration"):
        with logger.operation("provision") as op:
            _provisioner(config, cloud, dns=FakeDNS()).run(op)

    assert cloud.mutations == []


def test_running_timeout_cleans_up_instance_but_keeps_volume(
    tmp_path: Path, logger: StructuredLogger
) -> None:
    """Exhausting the running poll deletes the new instance only."""
    config = _config(tmp_path, timing={"running_max_attempts": 3})
    cloud = FakeCloud(boot_polls=10)
    sleep = SleepRecorder()

    with pytest.raises(WorkflowError, match="did not reach 'running' after 3 attempts"):
        with logger.operation("provision") as op:
            _provisioner(config, cloud, sleep=sleep).run(op)

    assert cloud.instances == {}
    (volume,) = cloud.volumes.values()
    assert volume.label == "vol1"
    assert volume.linode_id is None
    assert sleep.calls == [1.0, 1.0]
    assert op.step_status("cleanup.delete") is StepStatus.SUCCESS
    assert not [call for call in cloud.calls if call[0] == "detach_volume"]


def test_attach_failure_cleans_up_instance(tmp_path: Path, logger: StructuredLogger) -> None:
    """A failed attach deletes the instance without touching the volume."""
    config = _config(tmp_path)
    cloud = FakeCloud()
    cloud.failures["attach_volume"] = LinodeError("linode-cli volumes attach failed (exit 1)")

    with pytest.raises(WorkflowError, match="Failed to attach volume"):
        with logger.operation("provision") as op:
            _provisioner(config, cloud).run(op)

    assert cloud.instances == {}
    assert len(cloud.volumes) == 1
    assert op.step_status("cleanup.delete") is StepStatus.SUCCESS


def test_cleanup_can_be_disabled(tmp_path: Path, logger: StructuredLogger) -> None:
    """With cleanup disabled the instance is left for manual reconciliation."""
    config = _config(
        tmp_path,
        timing={"running_max_attempts": 1},
        provision={"cleanup_on_failure": False},
    )
    cloud = FakeCloud(boot_polls=5)

    with pytest.raises(WorkflowError):
        with logger.operation("provision") as op:
            _provisioner(config, cloud).run(op)

    assert len(cloud.instances) == 1
    assert op.step_status("cleanup") is StepStatus.WARNING


def test_interrupt_during_readiness_detaches_and_deletes(
    tmp_path: Path, logger: StructuredLogger
) -> None:
    """Ctrl-C after the attach still removes the instance and frees the volume."""
    config = _config(tmp_path)
    cloud = FakeCloud()

    def interrupt(seconds: float) -> None:
        raise KeyboardInterrupt

    provisioner = _provisioner(config, cloud)
    provisioner.sleep = interrupt

    with pytest.raises(KeyboardInterrupt):
        with logger.operation("provision") as op:
            provisioner.run(op)

    assert cloud.instances == {}
    (volume,) = cloud.volumes.values()
    assert volume.linode_id is None
    assert op.step_status("cleanup.detach") is StepStatus.SUCCESS
    assert not config.paths.info_file.exists()


def test_probe_readiness_polls_setup_marker(tmp_path: Path, logger: StructuredLogger) -> None:
    """Probe mode checks the setup marker until it appears."""
    config = _config(tmp_path, timing={"readiness_mode": "probe"})
    cloud = FakeCloud()
    remote = FakeRemote(results=[RemoteResult(returncode=1), RemoteResult(returncode=0)])

    with logger.operation("provision") as op:
        _provisioner(config, cloud, remote=remote).run(op)

    assert op.step_status("readiness") is StepStatus.SUCCESS
    assert len(remote.scripts) == 2
    host, password, script = remote.scripts[0]
    assert host == "203.0.113.10"
    assert password == ROOT_PASS
    assert SETUP_COMPLETE_MARKER in script


def test_probe_readiness_timeout_is_a_warning(tmp_path: Path, logger: StructuredLogger) -> None:
    """A marker that never appears does not fail the deployment."""
    config = _config(
        tmp_path,
        timing={"readiness_mode": "probe", "readiness_max_attempts": 2},
    )
    cloud = FakeCloud()
    remote = FakeRemote(results=[RemoteResult(returncode=1), RemoteResult(returncode=1)])

    with logger.operation("provision") as op:
        _provisioner(config, cloud, remote=remote).run(op)

    assert op.step_status("readiness") is StepStatus.WARNING
    assert config.paths.info_file.exists()


def test_notification_failures_do_not_abort(tmp_path: Path, logger: StructuredLogger) -> None:
    """Webhook errors are recorded as warnings only."""
    config = _config(tmp_path)
    cloud = FakeCloud()
    notifier = FakeNotifier(fail=True)

    with logger.operation("provision") as op:
        _provisioner(config, cloud, notifier=notifier).run(op)

    assert len(notifier.messages) == 5
    assert op.step_status("notify") is StepStatus.WARNING
    assert config.paths.info_file.exists()


def test_configured_root_password_is_used(tmp_path: Path, logger: StructuredLogger) -> None:
    """An explicit root password is not replaced by a generated one."""
    config = _config(tmp_path, linode={"root_pass": "Configured-Root-1"})
    cloud = FakeCloud()

    with logger.operation("provision") as op:
        result = _provisioner(config, cloud).run(op)

    assert result.info.root_pass == "Configured-Root-1"


def test_password_length_counts_surrounding_whitespace(
    tmp_path: Path, logger: StructuredLogger
) -> None:
    """Whitespace is part of the password and of its length."""
    config = _config(
        tmp_path,
        server={"password": "abcd "},
        linode={"root_pass": " Configured-Root-1 "},
    )
    cloud = FakeCloud()

    with logger.operation("provision") as op:
        result = _provisioner(config, cloud).run(op)

    assert op.step_status("validate") is StepStatus.SUCCESS
    assert result.info.root_pass == " Configured-Root-1 "
    assert "SERVER_PASS=abcd " in cloud.user_data[0]


def test_info_file_failure_withholds_ready_message(
    tmp_path: Path, logger: StructuredLogger
) -> None:
    """Operators only hear the world is ready once its record is on disk."""
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    config = _config(tmp_path, paths={"info_file": str(blocker / "valheim-server-info.txt")})
    cloud = FakeCloud()
    notifier = FakeNotifier()

    with pytest.raises(WorkflowError, match="Unable to write server info file"):
        with logger.operation("provision") as op:
            _provisioner(config, cloud, notifier=notifier).run(op)

    assert not [message for message in notifier.messages if "is ready!" in message]
    assert op.step_status("cleanup.delete") is StepStatus.SUCCESS
    assert cloud.instances == {}
