"""Module safety inspection: which loaded kernel modules lack retpoline."""
from __future__ import annotations

import logging
from typing import List, Optional, Protocol, Tuple

from speccheck.facts.parsing import modinfo_has_retpoline, parse_lsmod, unique
from speccheck.facts.types import Fact
from speccheck.toolkit.registry import get_tool_command
from speccheck.toolkit.runner import ToolRunner

logger = logging.getLogger(__name__)


class ModuleSafetyInspector(Protocol):
    def unsafe_modules(self) -> Fact[Tuple[str, ...]]:
        ...


class LsmodModinfoInspector:
    """
    Cross-references ``lsmod`` against ``modinfo``.

    A module is unsafe when its modinfo output lacks ``retpoline: Y``; that
    includes modules modinfo cannot describe at all (non-zero exit). When
    either tool is unavailable the whole set is UNAVAILABLE rather than
    reporting every module as unsafe.
    """

    def __init__(self, runner: ToolRunner):
        self._run = runner

    def loaded_modules(self) -> Optional[Tuple[str, ...]]:
        result = self._run(get_tool_command("lsmod"))
        if result is None or not result.ok:
            return None
        return parse_lsmod(result.stdout)

    def unsafe_modules(self) -> Fact[Tuple[str, ...]]:
        loaded = self.loaded_modules()
        if loaded is None:
            return Fact.unavailable("lsmod not available")

        unsafe: List[str] = []
        for name in loaded:
            result = self._run(get_tool_command("modinfo", name))
            if result is None:
                return Fact.unavailable("modinfo not available")
            if not result.ok or not modinfo_has_retpoline(result.stdout):
                unsafe.append(name)

        if unsafe:
            logger.debug("Modules without retpoline: %s", ", ".join(unsafe))
        return Fact.present(unique(unsafe))
