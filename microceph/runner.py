"""Launching external commands through a replaceable runner."""

from __future__ import annotations

import subprocess
from typing import Any, Sequence


class CommandError(RuntimeError):
    """An external command could not be run or exited unsuccessfully."""

    def __init__(
        self,
        message: str,
        command: Sequence[str] = (),
        exit_code: int | None = None,
        stdout: str = "",
        stderr: str = "",
        timed_out: bool = False,
    ) -> None:
        super().__init__(message)
        self.command = tuple(command)
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        self.timed_out = timed_out


class Runner:
    """Runs processes and returns their standard output."""

    def run_command(self, name: str, *args: str) -> str:
        """Run a command to completion and return its standard output."""
        return self._run(None, name, args)

    def run_command_context(self, timeout: float | None, name: str, *args: str) -> str:
        """Run a command, giving up after timeout seconds."""
        return self._run(timeout, name, args)

    @staticmethod
    def _run(timeout: float | None, name: str, args: Sequence[str]) -> str:
        command = (name, *args)
        shown = " ".join(command)
        try:
            result = subprocess.run(
                command, capture_output=True, text=True, timeout=timeout, check=False
            )
        except subprocess.TimeoutExpired as exc:
            raise CommandError(
                f"Failed to run: {shown}: timed out after {timeout}s",
                command=command,
                timed_out=True,
            ) from exc
        except OSError as exc:
            raise CommandError(f"Failed to run: {shown}: {exc}", command=command) from exc

        if result.returncode != 0:
            raise CommandError(
                f"Failed to run: {shown}: exit status {result.returncode} ({result.stderr.strip()})",
                command=command,
                exit_code=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result.stdout


_runner: Any = Runner()


def get_runner() -> Any:
    """Return the runner currently used to launch commands."""
    return _runner


def set_runner(runner: Any) -> Any:
    """Install a runner and return the one it replaces."""
    global _runner
    previous, _runner = _runner, runner
    return previous


def ceph_run(*args: str) -> str:
    """Run the ceph command line tool with the given arguments."""
    return get_runner().run_command("ceph", *args)