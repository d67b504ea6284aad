"""Tests for helpers shared by the workflows."""
from __future__ import annotations

import string
from pathlib import Path

from fakes import FakeNotifier

from valheimctl.logging import StepStatus, StructuredLogger
from valheimctl.workflows.common import (
    ROOT_PASSWORD_LENGTH,
    WorkflowError,
    generate_root_password,
    notify,
)


def test_generated_password_is_alphanumeric() -> None:
    """Root passwords are 32 letters and digits and differ between calls."""
    first = generate_root_password()
    second = generate_root_password()

    assert len(first) == ROOT_PASSWORD_LENGTH == 32
    assert set(first) <= set(string.ascii_letters + string.digits)
    assert first != second


def test_notify_forwards_message(tmp_path: Path) -> None:
    """Delivered messages leave no warning behind."""
    notifier = FakeNotifier()

    with StructuredLogger(tmp_path / "logs").operation("demo") as op:
        notify(op, notifier, "🚀 Starting")

    assert notifier.messages == ["🚀 Starting"]
    assert op.warnings == ()


def test_notify_failure_is_a_warning(tmp_path: Path) -> None:
    """A failed webhook is recorded but does not raise."""
    notifier = FakeNotifier(fail=True)

    with StructuredLogger(tmp_path / "logs").operation("demo") as op:
        notify(op, notifier, "🚀 Starting")

    assert op.step_status("notify") is StepStatus.WARNING


def test_workflow_error_tracks_changes() -> None:
    """``changed`` defaults to False."""
    assert WorkflowError("boom").changed is False
    assert WorkflowError("boom", changed=True).changed is True
