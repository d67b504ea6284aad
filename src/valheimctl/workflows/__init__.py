"""Provisioning and decommissioning workflows."""
from __future__ import annotations

from .common import WorkflowError, generate_root_password, notify
from .decommission import DecommissionResult, Decommissioner
from .provision import ProvisionResult, Provisioner

__all__ = [
    "DecommissionResult",
    "Decommissioner",
    "ProvisionResult",
    "Provisioner",
    "WorkflowError",
    "generate_root_password",
    "notify",
]
