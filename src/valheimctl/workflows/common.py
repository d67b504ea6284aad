"""Helpers shared by the provisioning and decommissioning workflows."""
from __future__ import annotations

import secrets
import string

from ..logging import OperationScope, StepStatus
from ..providers import Notifier, NotifyError

ROOT_PASSWORD_LENGTH = 32
_PASSWORD_ALPHABET = string.ascii_letters + string.digits


class WorkflowError(RuntimeError):
    """Fatal workflow failure.

    ``changed`` records whether any cloud resource was created or modified
    before the failure, so callers can tell operators to reconcile manually.
    """

    def __init__(self, message: str, *, changed: bool = False) -> None:
        super().__init__(message)
        self.changed = changed


def generate_root_password(length: int = ROOT_PASSWORD_LENGTH) -> str:
    """Return a random alphanumeric password."""
    return "".join(secrets.choice(_PASSWORD_ALPHABET) for _ in range(length))


def notify(op: OperationScope, notifier: Notifier, message: str) -> None:
    """Log *message* and forward it to *notifier*; delivery failures only warn."""
    op.note(message)
    try:
        notifier.send(message)
    except NotifyError as exc:
        op.add_step("notify", status=StepStatus.WARNING, detail=str(exc))


__all__ = ["ROOT_PASSWORD_LENGTH", "WorkflowError", "generate_root_password", "notify"]
