"""Password-authenticated remote shell via ``sshpass`` and ``ssh``.

Freshly created hosts have never been seen before, so host-key verification
is disabled and nothing is written to ``known_hosts``. The password is handed
to ``sshpass`` through the ``SSHPASS`` environment variable rather than argv.
"""
from __future__ import annotations

import os
import shutil
import subprocess
import threading
from collections.abc import Callable
from dataclasses import dataclass

from .base import RemoteResult


class RemoteExecError(RuntimeError):
    """Raised when the remote shell cannot be started or times out."""


@dataclass(slots=True)
class SSHExecutor:
    """Run scripts on a host as ``user`` with password authentication."""

    ssh_bin: str = "ssh"
    sshpass_bin: str = "sshpass"
    user: str = "root"
    connect_timeout: int = 10
    run_timeout: float = 300.0

    def available(self) -> bool:
        """Return ``True`` when both ``ssh`` and ``sshpass`` are on PATH."""
        return shutil.which(self.sshpass_bin) is not None and shutil.which(self.ssh_bin) is not None

    def command(self, host: str) -> list[str]:
        """Return the argv used to reach *host*."""
        return [
            self.sshpass_bin,
            "-e",
            self.ssh_bin,
            "-o",
            "StrictHostKeyChecking=no",
            "-o",
            "UserKnownHostsFile=/dev/null",
            "-o",
            "LogLevel=ERROR",
            "-o",
            f"ConnectTimeout={self.connect_timeout}",
            f"{self.user}@{host}",
            "bash -s",
        ]

    def run_script(
        self,
        host: str,
        password: str,
        script: str,
        *,
        on_line: Callable[[str], None] | None = None,
    ) -> RemoteResult:
        """Feed *script* to ``bash -s`` on *host*, streaming output lines."""
        env = os.environ.copy()
        env["SSHPASS"] = password
        try:
            process = subprocess.Popen(  # noqa: S603 - controlled command execution
                self.command(host),
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                env=env,
            )
        except FileNotFoundError as exc:
            raise RemoteExecError(f"{self.sshpass_bin} not found: {exc}") from exc

        assert process.stdin is not None and process.stdout is not None
        expired = threading.Event()

        def expire() -> None:
            expired.set()
            process.kill()

        # The deadline covers the blocking stdout read as well as wait().
        timer = threading.Timer(self.run_timeout, expire)
        timer.daemon = True
        lines: list[str] = []
        timer.start()
        try:
            try:
                process.stdin.write(script)
                process.stdin.close()
            except BrokenPipeError:
                pass
            for raw in process.stdout:
                line = raw.rstrip("\n")
                lines.append(line)
                if on_line is not None:
                    on_line(line)
            returncode = process.wait()
        except BaseException:
            process.kill()
            process.wait()
            raise
        finally:
            timer.cancel()
            process.stdout.close()
        if expired.is_set():
            raise RemoteExecError(
                f"remote command on {host} timed out after {self.run_timeout:g}s"
            )
        return RemoteResult(returncode=returncode, lines=tuple(lines))


__all__ = ["RemoteExecError", "SSHExecutor"]
