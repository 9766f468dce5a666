"""
Bounded command execution.

Every external command runs once with a hard timeout. A command that is not
installed, cannot be started, or does not finish in time yields None; there
are no retries and no background workers.
"""
from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence

from speccheck.toolkit.registry import find_binary

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolResult:
    argv: tuple
    stdout: str
    stderr: str
    returncode: int

    @property
    def ok(self) -> bool:
        return self.returncode == 0


# Signature shared by the real runner and test doubles
ToolRunner = Callable[[Sequence[str]], Optional[ToolResult]]


def run_tool(
    argv: Sequence[str],
    timeout: float = 10.0,
    extra_paths: Iterable[str] = (),
) -> Optional[ToolResult]:
    if not argv:
        raise ValueError("argv must not be empty")

    binary = find_binary(argv[0], extra_paths)
    if binary is None:
        return None

    command = [binary, *argv[1:]]
    try:
        proc = subprocess.Popen(
            command,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
        )
    except OSError as e:
        logger.debug("Failed to start %s: %s", argv[0], e)
        return None

    try:
        stdout, stderr = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.communicate()
        logger.warning("%s did not finish within %.1fs, treating it as unavailable", argv[0], timeout)
        return None

    return ToolResult(argv=tuple(argv), stdout=stdout, stderr=stderr, returncode=proc.returncode)


def make_runner(timeout: float, extra_paths: Iterable[str] = ()) -> ToolRunner:
    """Bind timeout and search paths so sources only pass argv."""
    paths = tuple(extra_paths)

    def _run(argv: Sequence[str]) -> Optional[ToolResult]:
        return run_tool(argv, timeout=timeout, extra_paths=paths)

    return _run
