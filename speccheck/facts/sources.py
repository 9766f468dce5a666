# ============================================================================
# speccheck/facts/sources.py
# Fact Sources
# ============================================================================
#
# One accessor per external source. Each returns a Fact and never raises for
# a missing file, an unreadable file or a missing tool: those become
# UNAVAILABLE. Paths come from PathsConfig and commands go through an
# injected runner, so tests substitute any source individually.
#
# ============================================================================

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Optional, Tuple

from speccheck.base.config import PathsConfig
from speccheck.facts.modules import LsmodModinfoInspector, ModuleSafetyInspector
from speccheck.facts.parsing import debugfs_in_mounts, parse_debug_value, parse_virt_what
from speccheck.facts.types import Fact
from speccheck.toolkit.registry import get_tool_command
from speccheck.toolkit.runner import ToolRunner

logger = logging.getLogger(__name__)

VULNERABILITY_FILES = ("spectre_v1", "spectre_v2", "meltdown")
X86_DEBUG_FILES = ("pti_enabled", "ibpb_enabled", "ibrs_enabled", "retp_enabled")


def read_text(path: Path) -> Fact[str]:
    """Read a pseudo-file; trailing newlines are dropped like shell $(<file)."""
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as fh:
            return Fact.present(fh.read().rstrip("\n"))
    except OSError as e:
        logger.debug("Source %s unavailable: %s", path, e)
        return Fact.unavailable(e.strerror or type(e).__name__)


class FactSources:
    def __init__(
        self,
        paths: Optional[PathsConfig] = None,
        runner: Optional[ToolRunner] = None,
        inspector: Optional[ModuleSafetyInspector] = None,
        uname: Callable[[], os.uname_result] = os.uname,
    ):
        self.paths = paths or PathsConfig()
        self._run: ToolRunner = runner or (lambda argv: None)
        self._inspector = inspector or LsmodModinfoInspector(self._run)
        self._uname = uname

    # --------- /sys/devices/system/cpu/vulnerabilities ---------

    def vulnerability_status(self, name: str) -> Fact[str]:
        if name not in VULNERABILITY_FILES:
            raise ValueError(f"Unknown vulnerability file: {name}")
        return read_text(self.paths.vulnerabilities_dir / name)

    # --------- /proc/cmdline ---------

    def cmdline(self) -> Fact[str]:
        return read_text(self.paths.cmdline_path)

    # --------- debugfs ---------

    def debugfs_mounted(self) -> Fact[bool]:
        mounts = read_text(self.paths.mounts_path)
        if not mounts.is_present:
            return Fact.unavailable(mounts.reason)
        return Fact.present(debugfs_in_mounts(mounts.value))

    def _debug_value(self, path: Path) -> Fact[int]:
        raw = read_text(path)
        if not raw.is_present:
            return Fact.unavailable(raw.reason)
        value = parse_debug_value(raw.value)
        if value is None:
            # Readable but not a number: the kernel has the file, the feature counts as off
            logger.debug("Unexpected content in %s: %r", path, raw.value)
            return Fact.present(0)
        return Fact.present(value)

    def debug_x86(self, name: str) -> Fact[int]:
        if name not in X86_DEBUG_FILES:
            raise ValueError(f"Unknown debugfs file: {name}")
        return self._debug_value(self.paths.debug_x86_dir / name)

    def debug_rfi_flush(self) -> Fact[int]:
        return self._debug_value(self.paths.debug_powerpc_dir / "rfi_flush")

    # --------- kernel log ---------

    def kernel_log(self) -> Tuple[Fact[str], bool, bool]:
        """
        Kernel log text and where it came from.

        Returns (text, from_file, from_buffer). The persisted boot log is
        preferred; the live ring buffer is the fallback and may have wrapped.
        """
        persisted = read_text(self.paths.dmesg_log_path)
        if persisted.is_present:
            return persisted, True, False

        result = self._run(get_tool_command("dmesg"))
        if result is None or not result.ok:
            return Fact.unavailable("dmesg not available"), False, False
        return Fact.present(result.stdout), False, True

    # --------- modules ---------

    def unsafe_modules(self) -> Fact[Tuple[str, ...]]:
        return self._inspector.unsafe_modules()

    # --------- CPU / platform ---------

    def cpuinfo(self) -> Fact[str]:
        return read_text(self.paths.cpuinfo_path)

    def kernel_release(self) -> str:
        return self._uname().release

    def architecture(self) -> Fact[str]:
        machine = self._uname().machine
        return Fact.present(machine) if machine else Fact.absent()

    def virtualization(self) -> Fact[str]:
        result = self._run(get_tool_command("virt-what"))
        if result is None:
            return Fact.unavailable("virt-what not available")
        return parse_virt_what(result.stdout + result.stderr)
