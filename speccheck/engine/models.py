from __future__ import annotations

from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, computed_field


class VulnerabilityId(str, Enum):
    SPECTRE_V1 = "spectre_v1"
    SPECTRE_V2 = "spectre_v2"
    MELTDOWN = "meltdown"


# label, CVE, description
VULNERABILITY_INFO = {
    VulnerabilityId.SPECTRE_V1: (
        "Variant #1 (Spectre)",
        "CVE-2017-5753",
        "speculative execution bounds-check bypass",
    ),
    VulnerabilityId.SPECTRE_V2: (
        "Variant #2 (Spectre)",
        "CVE-2017-5715",
        "speculative execution branch target injection",
    ),
    VulnerabilityId.MELTDOWN: (
        "Variant #3 (Meltdown)",
        "CVE-2017-5754",
        "speculative execution permission faults handling",
    ),
}

# Bit weights of the result code
RESULT_BITS = {
    VulnerabilityId.SPECTRE_V1: 2,
    VulnerabilityId.SPECTRE_V2: 4,
    VulnerabilityId.MELTDOWN: 8,
}


class EvidenceSource(str, Enum):
    """Precedence tier that decided a boolean."""

    STATUS_FILE = "status_file"
    STATUS_EDGE_CASE = "status_edge_case"
    DEBUGFS = "debugfs"
    KERNEL_LOG = "kernel_log"
    COMMAND_LINE = "command_line"
    RUNTIME_PROTECTIONS = "runtime_protections"
    KERNEL_HEURISTIC = "kernel_heuristic"
    VENDOR = "vendor"
    DEFAULT = "default"


class Outcome(str, Enum):
    MITIGATED = "mitigated"
    VULNERABLE = "vulnerable"
    NOT_AFFECTED = "not_affected"


class EdgeCase(str, Enum):
    RETPOLINE_WITHOUT_IBPB = "retpoline_without_ibpb"
    SKYLAKE_FULL_RETPOLINE = "skylake_full_retpoline"
    SKYLAKE_WITHOUT_IBPB = "skylake_without_ibpb"
    SKYLAKE_UNSAFE_MODULES = "skylake_unsafe_modules"

    @property
    def status_text(self) -> str:
        return EDGE_CASE_STATUS[self]


# Trailing *** marks a status corrected from what the kernel reported
EDGE_CASE_STATUS = {
    EdgeCase.RETPOLINE_WITHOUT_IBPB: "Vulnerable: Retpoline without IBPB ***",
    EdgeCase.SKYLAKE_FULL_RETPOLINE: "Mitigation: Full retpoline ***",
    EdgeCase.SKYLAKE_WITHOUT_IBPB: "Vulnerable: Retpoline without IBPB ***",
    EdgeCase.SKYLAKE_UNSAFE_MODULES: "Vulnerable: Retpoline with unsafe module(s) ***",
}


class Resolution(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: bool
    source: EvidenceSource


class Verdict(BaseModel):
    model_config = ConfigDict(frozen=True)

    vulnerability: VulnerabilityId
    outcome: Outcome
    resolution: Resolution
    status_text: str
    edge_case: Optional[EdgeCase] = None

    @property
    def vulnerable(self) -> bool:
        return self.outcome is Outcome.VULNERABLE

    @property
    def label(self) -> str:
        return VULNERABILITY_INFO[self.vulnerability][0]

    @property
    def cve(self) -> str:
        return VULNERABILITY_INFO[self.vulnerability][1]

    @property
    def description(self) -> str:
        return VULNERABILITY_INFO[self.vulnerability][2]


class Signals(BaseModel):
    """Cross-cutting booleans consumed by the annotator and the debug dump."""

    model_config = ConfigDict(frozen=True)

    kernel_updated: bool
    retpoline_kernel: bool
    retpoline_tried: bool
    microcode_updated: bool
    ibrs: Resolution
    ibpb: Resolution
    pti: Resolution
    rfi_flush: Resolution
    unsafe_modules: bool
    unsafe_module_names: Tuple[str, ...] = ()
    # True when only the status text reported unsafe modules
    unsafe_modules_reported_only: bool = False


class VerdictSet(BaseModel):
    model_config = ConfigDict(frozen=True)

    spectre_v1: Verdict
    spectre_v2: Verdict
    meltdown: Verdict
    signals: Signals

    @property
    def verdicts(self) -> Tuple[Verdict, Verdict, Verdict]:
        return (self.spectre_v1, self.spectre_v2, self.meltdown)

    def get(self, vulnerability: VulnerabilityId) -> Verdict:
        return getattr(self, vulnerability.value)

    @computed_field
    @property
    def result_code(self) -> int:
        return sum(RESULT_BITS[v.vulnerability] for v in self.verdicts if v.vulnerable)

    @property
    def vulnerable_count(self) -> int:
        return sum(1 for v in self.verdicts if v.vulnerable)


class CaveatCode(str, Enum):
    KERNEL_UPDATE_NOT_DETECTED = "kernel_update_not_detected"
    RETPOLINE_WITHOUT_IBPB = "retpoline_without_ibpb"
    RETPOLINE_WITH_UNSAFE_MODULES = "retpoline_with_unsafe_modules"
    MICROCODE_UPDATE_NOT_DETECTED = "microcode_update_not_detected"
    IBRS_DISABLED = "ibrs_disabled"
    IBPB_DISABLED = "ibpb_disabled"
    CMDLINE_NOIBRS = "cmdline_noibrs"
    CMDLINE_NOIBPB = "cmdline_noibpb"
    CMDLINE_NOSPECTRE_V2 = "cmdline_nospectre_v2"
    CMDLINE_SPECTRE_V2 = "cmdline_spectre_v2"
    RETPOLINE_DISABLED = "retpoline_disabled"
    UNSAFE_MODULES = "unsafe_modules"
    UNSAFE_MODULES_UNLOADED = "unsafe_modules_unloaded"
    PTI_DISABLED = "pti_disabled"
    RFI_FLUSH_DISABLED = "rfi_flush_disabled"
    CMDLINE_NO_RFI_FLUSH = "cmdline_no_rfi_flush"
    CMDLINE_NOPTI = "cmdline_nopti"
    MOUNT_DEBUGFS = "mount_debugfs"
    INSTALL_RETPOLINE_KERNEL = "install_retpoline_kernel"
    LOG_WRAPPED = "log_wrapped"
    LOG_UNAVAILABLE = "log_unavailable"


class Caveat(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: CaveatCode
    message: str
    details: Tuple[str, ...] = ()
    hint: Tuple[str, ...] = ()


class Reference(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: str
    url: str


class Annotations(BaseModel):
    model_config = ConfigDict(frozen=True)

    spectre_v1: Tuple[Caveat, ...] = ()
    spectre_v2: Tuple[Caveat, ...] = ()
    meltdown: Tuple[Caveat, ...] = ()
    recommendations: Tuple[Caveat, ...] = ()
    warnings: Tuple[Caveat, ...] = ()
    references: Tuple[Reference, ...] = ()

    def for_vulnerability(self, vulnerability: VulnerabilityId) -> Tuple[Caveat, ...]:
        return getattr(self, vulnerability.value)


class SystemSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    vendor: Optional[str] = None
    cpu: Optional[str] = None
    cpu_model: Optional[int] = None
    kernel_release: str
    architecture: Optional[str] = None
    virtualization: str


class Report(BaseModel):
    """Machine-readable form of one run (``--json``)."""

    model_config = ConfigDict(frozen=True)

    version: str
    system: SystemSummary
    verdicts: VerdictSet
    annotations: Annotations
    result_code: int = Field(ge=0, le=14)
