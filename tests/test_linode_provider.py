"""Tests for the linode-cli backed provider."""
from __future__ import annotations

import base64
import json
import subprocess
from collections.abc import Sequence

import pytest

from valheimctl.providers.linode import LinodeError, LinodeProvider


class DummyResult:
    """Simple stand-in for ``subprocess.CompletedProcess``."""

    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        """Initialise the dummy result."""
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


def _capture(
    monkeypatch: pytest.MonkeyPatch,
    *results: DummyResult,
) -> list[list[str]]:
    calls: list[list[str]] = []
    queue = list(results)

    def fake_run(command: Sequence[str], **kwargs: object) -> DummyResult:
        calls.append(list(command))
        assert kwargs["capture_output"] is True
        assert kwargs["check"] is False
        return queue.pop(0) if queue else DummyResult()

    monkeypatch.setattr(subprocess, "run", fake_run)
    return calls


def test_create_instance_encodes_user_data(monkeypatch: pytest.MonkeyPatch) -> None:
    """The bootstrap payload travels base64 encoded as cloud-init metadata."""
    payload = [
        {
            "id": 5001,
            "label": "test1",
            "status": "provisioning",
            "ipv4": ["203.0.113.10"],
            "region": "us-ord",
        }
    ]
    calls = _capture(monkeypatch, DummyResult(stdout=json.dumps(payload)))

    instance = LinodeProvider().create_instance(
        region="us-ord",
        instance_type="g8-dedicated-64-32",
        image="linode/ubuntu24.04",
        label="test1",
        root_pass="rootpw",
        user_data="#cloud-config\n",
    )

    assert instance.id == 5001
    assert instance.ip == "203.0.113.10"
    assert instance.running is False
    (command,) = calls
    assert command[:3] == ["linode-cli", "linodes", "create"]
    assert command[-1] == "--json"
    encoded = command[command.index("--metadata.user_data") + 1]
    assert base64.b64decode(encoded).decode("utf-8") == "#cloud-config\n"
    assert command[command.index("--label") + 1] == "test1"


def test_list_volumes_parses_attachment(monkeypatch: pytest.MonkeyPatch) -> None:
    """``linode_id`` of ``null`` means the volume is unattached."""
    payload = [
        {"id": 7, "label": "vol1", "region": "us-ord", "size": 10, "linode_id": None},
        {"id": 8, "label": "vol2", "region": "us-ord", "size": 20, "linode_id": 42},
    ]
    calls = _capture(monkeypatch, DummyResult(stdout=json.dumps(payload)))

    volumes = LinodeProvider(cli_bin="/opt/bin/linode-cli").list_volumes()

    assert calls == [["/opt/bin/linode-cli", "volumes", "list", "--json"]]
    assert [volume.attached for volume in volumes] == [False, True]
    assert volumes[1].linode_id == 42


def test_attach_and_detach_commands(monkeypatch: pytest.MonkeyPatch) -> None:
    """Volume operations pass ids through unchanged."""
    calls = _capture(monkeypatch)
    provider = LinodeProvider()

    provider.attach_volume(7, 5001)
    provider.detach_volume(7)
    provider.shutdown_instance(5001)
    provider.delete_instance(5001)

    assert calls == [
        ["linode-cli", "volumes", "attach", "7", "--linode_id", "5001"],
        ["linode-cli", "volumes", "detach", "7"],
        ["linode-cli", "linodes", "shutdown", "5001"],
        ["linode-cli", "linodes", "delete", "5001"],
    ]


def test_non_zero_exit_raises_with_stderr(monkeypatch: pytest.MonkeyPatch) -> None:
    """CLI failures surface the command, exit code and message."""
    _capture(monkeypatch, DummyResult(returncode=1, stderr="Request failed: 401 Unauthorized\n"))

    with pytest.raises(LinodeError, match=r"linodes list failed \(exit 1\): Request failed: 401"):
        LinodeProvider().list_instances()


def test_missing_binary_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    """A missing executable becomes a provider error."""

    def fake_run(command: Sequence[str], **kwargs: object) -> DummyResult:
        raise FileNotFoundError(2, "No such file or directory")

    monkeypatch.setattr(subprocess, "run", fake_run)

    with pytest.raises(LinodeError, match="linode-cli not found"):
        LinodeProvider().check_auth()


def test_invalid_json_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    """Unparseable output is reported rather than ignored."""
    _capture(monkeypatch, DummyResult(stdout="<html>oops</html>"))

    with pytest.raises(LinodeError, match="invalid JSON"):
        LinodeProvider().list_instances()


def test_view_with_empty_payload_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    """A view that returns nothing is an error."""
    _capture(monkeypatch, DummyResult(stdout="[]"))

    with pytest.raises(LinodeError, match="returned no objects"):
        LinodeProvider().get_instance(5001)


@pytest.mark.parametrize(
    ("payload", "call"),
    [
        ([{"id": "abc", "label": "test1", "status": "running"}], "list_instances"),
        ([{"id": 7, "label": "vol1", "linode_id": True}], "list_volumes"),
    ],
)
def test_malformed_ids_raise_provider_error(
    monkeypatch: pytest.MonkeyPatch,
    payload: list[dict[str, object]],
    call: str,
) -> None:
    """Records with unusable identifiers surface as LinodeError."""
    _capture(monkeypatch, DummyResult(stdout=json.dumps(payload)))

    with pytest.raises(LinodeError, match="returned malformed data"):
        getattr(LinodeProvider(), call)()
