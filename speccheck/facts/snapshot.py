# speccheck/facts/snapshot.py
# Immutable aggregate of every fact collected in one run

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from speccheck.facts.types import Fact

VULNERABLE_MARKER = "Vulnerable"


class Vendor(str, Enum):
    INTEL = "Intel"
    AMD = "AMD"
    POWER = "POWER"


class FeatureAnnouncement(str, Enum):
    """What the kernel log said about a CPU feature during boot."""

    PRESENT = "present"
    NOT_PRESENT = "not_present"
    MISSING = "missing"

    @property
    def announced(self) -> bool:
        return self is not FeatureAnnouncement.MISSING


@dataclass(frozen=True)
class VulnerabilityFacts:
    name: str
    status: Fact[str] = field(default_factory=Fact.unavailable)

    @property
    def available(self) -> bool:
        return self.status.is_present

    @property
    def reports_mitigated(self) -> bool:
        return self.available and VULNERABLE_MARKER not in self.status.value

    @property
    def reports_vulnerable(self) -> bool:
        return self.available and not self.reports_mitigated


@dataclass(frozen=True)
class CommandLineFacts:
    raw: Fact[str] = field(default_factory=Fact.unavailable)
    nopti: bool = False
    noibrs: bool = False
    noibpb: bool = False
    no_rfi_flush: bool = False
    nospectre_v2: bool = False
    spectre_v2: Fact[str] = field(default_factory=Fact.absent)

    @property
    def spectre_v2_set(self) -> bool:
        return self.spectre_v2.is_present


@dataclass(frozen=True)
class DebugFacts:
    mounted: Fact[bool] = field(default_factory=Fact.unavailable)
    pti: Fact[int] = field(default_factory=Fact.unavailable)
    ibpb: Fact[int] = field(default_factory=Fact.unavailable)
    ibrs: Fact[int] = field(default_factory=Fact.unavailable)
    retp: Fact[int] = field(default_factory=Fact.unavailable)
    rfi_flush: Fact[int] = field(default_factory=Fact.unavailable)

    @property
    def is_mounted(self) -> bool:
        return bool(self.mounted.get(False))

    @property
    def any_x86_available(self) -> bool:
        return any(f.is_present for f in (self.pti, self.ibpb, self.ibrs, self.retp))


@dataclass(frozen=True)
class KernelLogFacts:
    text: Fact[str] = field(default_factory=Fact.unavailable)
    from_file: bool = False
    from_buffer: bool = False
    wrapped: bool = False
    pti_marker: bool = False
    ibrs: FeatureAnnouncement = FeatureAnnouncement.MISSING
    ibpb: FeatureAnnouncement = FeatureAnnouncement.MISSING
    retpoline_tried: bool = False


@dataclass(frozen=True)
class ModuleFacts:
    # Loaded modules whose modinfo lacks "retpoline: Y"
    inspected: Fact[Tuple[str, ...]] = field(default_factory=Fact.unavailable)
    # Modules named by "built without retpoline-enabled compiler" log warnings
    from_log: Tuple[str, ...] = ()

    @property
    def inspected_names(self) -> Tuple[str, ...]:
        return tuple(self.inspected.get(()) or ())


@dataclass(frozen=True)
class CpuFacts:
    vendor: Optional[Vendor] = None
    model_name: Fact[str] = field(default_factory=Fact.unavailable)
    model_number: Fact[int] = field(default_factory=Fact.absent)
    flag_ibpb: bool = False


@dataclass(frozen=True)
class EnvironmentFacts:
    kernel_release: str = ""
    rhel: Optional[int] = None
    architecture: Fact[str] = field(default_factory=Fact.unavailable)
    virtualization: Fact[str] = field(default_factory=Fact.unavailable)


@dataclass(frozen=True)
class FactSnapshot:
    spectre_v1: VulnerabilityFacts = field(default_factory=lambda: VulnerabilityFacts("spectre_v1"))
    spectre_v2: VulnerabilityFacts = field(default_factory=lambda: VulnerabilityFacts("spectre_v2"))
    meltdown: VulnerabilityFacts = field(default_factory=lambda: VulnerabilityFacts("meltdown"))
    cmdline: CommandLineFacts = field(default_factory=CommandLineFacts)
    debug: DebugFacts = field(default_factory=DebugFacts)
    log: KernelLogFacts = field(default_factory=KernelLogFacts)
    modules: ModuleFacts = field(default_factory=ModuleFacts)
    cpu: CpuFacts = field(default_factory=CpuFacts)
    env: EnvironmentFacts = field(default_factory=EnvironmentFacts)

    @property
    def status_files_available(self) -> bool:
        return self.spectre_v1.available or self.spectre_v2.available or self.meltdown.available
