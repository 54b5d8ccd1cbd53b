"""
Process Executor - runs external commands (helm) for the diff pipeline.

Commands are never retried: invocations are not assumed to be idempotent.
There is no timeout; a hung process hangs the run.
"""

import logging
import subprocess
from typing import Any, Iterable, List

from .exceptions import ProcessError

logger = logging.getLogger(__name__)


def flatten_args(args: Iterable[Any]) -> List[str]:
    """
    Flatten nested argument lists into a flat list of strings.

    Extra-argument lists from configuration are passed through as lists,
    so ``("template", ["--debug"], [])`` becomes ``["template", "--debug"]``.
    """
    flat: List[str] = []
    for arg in args:
        if arg is None:
            continue
        if isinstance(arg, (list, tuple)):
            flat.extend(flatten_args(arg))
        else:
            flat.append(str(arg))
    return flat


class ProcessExecutor:
    """Runs external commands, optionally echoing each invocation."""

    def __init__(self, debug: bool = False):
        self.debug = debug

    def echo(self, command: str, args: List[str]) -> None:
        """Print an invocation before it runs (debug mode only)."""
        if self.debug:
            print(">>> " + " ".join([command, *args]), flush=True)

    def _run(self, command: str, args: Iterable[Any]) -> subprocess.CompletedProcess:
        flat = flatten_args(args)
        self.echo(command, flat)
        logger.debug(f"Running: {command} {' '.join(flat)}")

        try:
            proc = subprocess.run(
                [command, *flat],
                text=True,
                capture_output=True,
                check=False,
            )
        except OSError as e:
            raise ProcessError(command, flat, cause=e) from e

        if proc.returncode != 0:
            raise ProcessError(command, flat, returncode=proc.returncode, stderr=(proc.stderr or "").strip())
        return proc

    def run_process(self, command: str, *args: Any) -> None:
        """Run a command, discarding its output."""
        self._run(command, args)

    def run_process_and_capture_stdout(self, command: str, *args: Any) -> str:
        """Run a command and return its stdout, trimmed."""
        proc = self._run(command, args)
        return (proc.stdout or "").strip()
