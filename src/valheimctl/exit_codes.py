"""Process exit codes for valheimctl commands."""
from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """Every fatal condition maps to ``ERROR``; warnings still exit ``OK``."""

    OK = 0
    ERROR = 1
