"""Structured operation logging for valheimctl.

Every CLI command runs inside an :class:`OperationScope`. The scope collects
one typed outcome per workflow step (``success``, ``skipped``, ``warning``,
``error``) plus free-form progress notes, echoes human readable lines to the
console, and writes a single JSON record per operation to
``<logs_dir>/operations.jsonl`` once the scope closes.

The logger never raises on I/O problems: if the log directory cannot be
created or written it disables itself and the workflow carries on.
"""
from __future__ import annotations

import json
import uuid
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

from rich.console import Console


class StepStatus(str, Enum):
    """Outcome recorded for a single workflow step."""

    SUCCESS = "success"
    SKIPPED = "skipped"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class StepRecord:
    """A recorded step outcome."""

    name: str
    status: StepStatus
    detail: str | None = None
    timestamp: str = ""

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        payload: dict[str, object] = {
            "name": self.name,
            "status": self.status.value,
            "timestamp": self.timestamp,
        }
        if self.detail is not None:
            payload["detail"] = self.detail
        return payload


def _sanitize(value: object) -> object:
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Mapping):
        return {str(key): _sanitize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitize(item) for item in value]
    return str(value)


def _now() -> datetime:
    return datetime.now(UTC)


class OperationScope:
    """Collect steps and the final result for one operation."""

    def __init__(
        self,
        logger: StructuredLogger,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> None:
        """Initialise the scope for *command*."""
        self._logger = logger
        self.command = command
        self.args = dict(args or {})
        self.target = dict(target or {})
        self.op_id = uuid.uuid4().hex[:12]
        self.started_at = _now()
        self._steps: list[StepRecord] = []
        self._notes: list[dict[str, object]] = []
        self.result: dict[str, object] | None = None

    # ------------------------------------------------------------------
    @property
    def steps(self) -> tuple[StepRecord, ...]:
        """Return the steps recorded so far."""
        return tuple(self._steps)

    @property
    def warnings(self) -> tuple[StepRecord, ...]:
        """Return the steps that finished with a warning."""
        return tuple(step for step in self._steps if step.status is StepStatus.WARNING)

    def step_status(self, name: str) -> StepStatus | None:
        """Return the most recent status recorded for step *name*."""
        for step in reversed(self._steps):
            if step.name == name:
                return step.status
        return None

    def add_step(
        self,
        name: str,
        *,
        status: StepStatus | str = StepStatus.SUCCESS,
        detail: str | None = None,
    ) -> StepRecord:
        """Record the outcome of step *name*."""
        record = StepRecord(
            name=name,
            status=StepStatus(status),
            detail=detail,
            timestamp=_now().isoformat(),
        )
        self._steps.append(record)
        if record.status is StepStatus.WARNING:
            self._logger.echo(f"Warning: {name}: {detail or 'see log'}", style="yellow")
        return record

    def note(self, message: str, *, level: str = "info") -> None:
        """Record and echo a progress message."""
        self._notes.append({"timestamp": _now().isoformat(), "level": level, "message": message})
        style = "yellow" if level == "warning" else None
        self._logger.echo(message, style=style)

    # ------------------------------------------------------------------
    def success(
        self,
        message: str,
        *,
        changed: int = 0,
        warnings: Sequence[str] = (),
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as successful."""
        self._set_result("success", message, changed=changed, warnings=warnings, context=context)

    def warning(
        self,
        message: str,
        *,
        warnings: Sequence[str] = (),
        errors: Sequence[str] = (),
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as completed with warnings."""
        self._set_result(
            "warning",
            message,
            changed=changed,
            warnings=warnings,
            errors=errors,
            context=context,
        )

    def error(
        self,
        message: str,
        *,
        errors: Sequence[str] | None = None,
        rc: int = 1,
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as failed."""
        self._set_result(
            "error",
            message,
            changed=changed,
            errors=list(errors) if errors else [message],
            context=context,
            rc=rc,
        )

    def _set_result(
        self,
        status: str,
        message: str,
        *,
        changed: int,
        warnings: Sequence[str] = (),
        errors: Sequence[str] = (),
        context: Mapping[str, object] | None = None,
        rc: int = 0,
    ) -> None:
        self.result = {
            "status": status,
            "message": message,
            "changed": changed,
            "warnings": list(warnings),
            "errors": list(errors),
            "context": _sanitize(dict(context or {})),
            "rc": rc,
        }

    def to_record(self) -> dict[str, object]:
        """Return the JSON record written for this operation."""
        finished = _now()
        duration_ms = int((finished - self.started_at).total_seconds() * 1000)
        return {
            "op_id": self.op_id,
            "command": self.command,
            "started_at": self.started_at.isoformat(),
            "finished_at": finished.isoformat(),
            "duration_ms": duration_ms,
            "args": _sanitize(self.args),
            "target": _sanitize(self.target),
            "steps": [step.to_dict() for step in self._steps],
            "notes": list(self._notes),
            "result": self.result,
        }


class StructuredLogger:
    """Append JSON operation records and echo progress to a console."""

    def __init__(self, log_dir: Path, *, console: Console | None = None) -> None:
        """Prepare *log_dir*; disable file logging if it is unusable."""
        self.log_dir = log_dir.expanduser()
        self._operations_log_path = self.log_dir / "operations.jsonl"
        self._console = console
        self._enabled = True
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
        except OSError:
            self._enabled = False

    @property
    def operations_log_path(self) -> Path:
        """Return the path of the JSON-lines operations log."""
        return self._operations_log_path

    def echo(self, message: str, *, style: str | None = None) -> None:
        """Print a timestamped progress line when a console is attached."""
        if self._console is None:
            return
        stamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        self._console.print(f"[{stamp}] {message}", style=style, markup=False, highlight=False)

    @contextmanager
    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Yield an :class:`OperationScope` and persist it on exit."""
        scope = OperationScope(self, command, args=args, target=target)
        try:
            yield scope
        except BaseException as exc:
            if scope.result is None:
                scope.error(f"Unhandled {type(exc).__name__}: {exc}")
            raise
        finally:
            if scope.result is None:
                scope.success("completed")
            self._write(scope.to_record())

    def _write(self, record: Mapping[str, object]) -> None:
        if not self._enabled:
            return
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, sort_keys=True) + "\n")
        except OSError:
            self._enabled = False


__all__ = ["OperationScope", "StepRecord", "StepStatus", "StructuredLogger"]
