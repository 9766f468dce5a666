from __future__ import annotations

import dataclasses
from enum import Enum
from typing import Any, Iterable, List, Tuple

from colorama import Fore, Style
from tabulate import tabulate

from speccheck.engine.models import (
    Annotations,
    Caveat,
    Outcome,
    Resolution,
    Verdict,
    VerdictSet,
)
from speccheck.facts.snapshot import FactSnapshot
from speccheck.facts.types import Fact


class Palette:
    def __init__(self, enabled: bool = True):
        self.red = Style.BRIGHT + Fore.RED if enabled else ""
        self.yellow = Style.BRIGHT + Fore.YELLOW if enabled else ""
        self.green = Style.BRIGHT + Fore.GREEN if enabled else ""
        self.bold = Style.BRIGHT if enabled else ""
        self.reset = Style.RESET_ALL if enabled else ""


def virtualization_label(virt: Fact[str]) -> str:
    if virt.is_present:
        return virt.value
    if virt.is_absent:
        return "None"
    return "virt-what not available"


def vendor_label(snapshot: FactSnapshot) -> str:
    return snapshot.cpu.vendor.value if snapshot.cpu.vendor else "Unknown"


class TextRenderer:
    """Human-readable report. Every method returns text; printing is the caller's job."""

    def __init__(self, color: bool = True):
        self.p = Palette(color)

    def disclaimer(self, version: str, subject: str = "Spectre / Meltdown") -> str:
        p = self.p
        return "\n".join([
            "",
            f"{p.bold}This script (v{version}) is primarily designed to detect {subject}",
            "on supported Red Hat Enterprise Linux systems and kernel packages.",
            f"Result may be inaccurate for other RPM based systems.{p.reset}",
            "",
        ])

    def header(self, snapshot: FactSnapshot) -> str:
        p = self.p
        lines = [
            f"Detected CPU vendor: {p.bold}{vendor_label(snapshot)}{p.reset}",
            f"CPU: {p.bold}{snapshot.cpu.model_name.get('')}{p.reset}",
        ]
        if snapshot.cpu.model_number.is_present:
            number = snapshot.cpu.model_number.value
            lines.append(f"CPU model: {p.bold}{number}{p.reset} (0x{number:x})")
        lines.extend([
            f"Running kernel: {p.bold}{snapshot.env.kernel_release}{p.reset}",
            f"Architecture: {p.bold}{snapshot.env.architecture.get('')}{p.reset}",
            f"Virtualization: {p.bold}{virtualization_label(snapshot.env.virtualization)}{p.reset}",
            "",
        ])
        return "\n".join(lines)

    def _caveat_lines(self, caveat: Caveat) -> List[str]:
        p = self.p
        first, *rest = caveat.message.split("\n")
        lines = [f"{p.yellow}* {first}{p.reset}"]
        lines.extend(f"{p.yellow}{line}{p.reset}" for line in rest)
        lines.extend(f"  - {item}" for item in caveat.details)
        lines.extend(f"  {hint}" for hint in caveat.hint)
        return lines

    def verdict(self, verdict: Verdict, caveats: Iterable[Caveat] = ()) -> str:
        p = self.p
        color = p.red if verdict.outcome is Outcome.VULNERABLE else p.green
        lines = [
            f"{verdict.label}: {color}{verdict.status_text}{p.reset}",
            f"{verdict.cve} - {verdict.description}",
        ]
        for caveat in caveats:
            lines.extend(self._caveat_lines(caveat))
        lines.append("")
        return "\n".join(lines)

    def recommendations(self, annotations: Annotations) -> str:
        if not annotations.recommendations:
            return ""
        lines = [
            "Some of the detailed system information is not available.",
            "To improve mitigation detection:",
        ]
        for caveat in annotations.recommendations:
            lines.extend(self._caveat_lines(caveat))
        lines.append("")
        return "\n".join(lines)

    def warnings(self, annotations: Annotations) -> str:
        p = self.p
        lines = []
        for caveat in annotations.warnings:
            lines.extend(f"{p.yellow}{line}{p.reset}" for line in caveat.message.split("\n"))
            lines.append("")
        return "\n".join(lines)

    def references(self, annotations: Annotations) -> str:
        lines = []
        for ref in annotations.references:
            lines.extend(ref.description.split("\n"))
            lines.append(f"* {ref.url}")
            lines.append("")
        return "\n".join(lines)

    def report(self, snapshot: FactSnapshot, verdicts: VerdictSet, annotations: Annotations) -> str:
        parts = [
            self.verdict(v, annotations.for_vulnerability(v.vulnerability))
            for v in verdicts.verdicts
        ]
        parts.append("")
        for section in (self.recommendations(annotations), self.warnings(annotations)):
            if section:
                parts.append(section)
        parts.append(self.references(annotations))
        return "\n".join(parts)

    # --------- Debug dump ---------

    def debug_table(self, snapshot: FactSnapshot, verdicts: VerdictSet) -> str:
        rows = list(_snapshot_rows(snapshot))
        rows.extend(_signal_rows(verdicts))
        return tabulate(rows, headers=["name", "value"], tablefmt="simple")


def _format(value: Any) -> str:
    if isinstance(value, Fact):
        if value.is_present and isinstance(value.value, str) and "\n" in value.value:
            return f"<{len(value.value.splitlines())} lines>"
        return value.describe()
    if isinstance(value, Resolution):
        return f"{value.value} ({value.source.value})"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (bool, int)) or value is None:
        return str(value)
    return repr(value)


def _snapshot_rows(obj: Any, prefix: str = "") -> Iterable[Tuple[str, str]]:
    for f in dataclasses.fields(obj):
        value = getattr(obj, f.name)
        name = f"{prefix}{f.name}"
        if dataclasses.is_dataclass(value) and not isinstance(value, Fact):
            yield from _snapshot_rows(value, prefix=f"{name}.")
        else:
            yield name, _format(value)


def _signal_rows(verdicts: VerdictSet) -> Iterable[Tuple[str, str]]:
    for name in type(verdicts.signals).model_fields:
        yield f"signals.{name}", _format(getattr(verdicts.signals, name))
    for verdict in verdicts.verdicts:
        key = verdict.vulnerability.value
        yield f"verdict.{key}", verdict.outcome.value
        yield f"verdict.{key}.resolution", _format(verdict.resolution)
        if verdict.edge_case is not None:
            yield f"verdict.{key}.edge_case", verdict.edge_case.value
    yield "result", str(verdicts.result_code)
