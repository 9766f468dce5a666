"""
Pure parsers turning raw text from /proc, /sys, dmesg and kmod tools into facts.

Nothing here touches the filesystem or spawns processes, so every parser is
exercised directly from unit tests with literal text.
"""
from __future__ import annotations

import re
from typing import Iterable, List, Optional, Tuple

from speccheck.facts.snapshot import (
    CommandLineFacts,
    CpuFacts,
    FeatureAnnouncement,
    KernelLogFacts,
    Vendor,
)
from speccheck.facts.types import Fact

# These will not appear if PTI was disabled from the command line
PTI_MARKERS = (
    "x86/pti: Unmapping kernel while in userspace",
    "x86/pti: Kernel page table isolation enabled",
    "x86/pti: Xen PV detected, disabling",
    "Kernel page table isolation enabled",
)

# These appear even if the feature was disabled from the command line
IBRS_FEATURE = "FEATURE SPEC_CTRL"
IBPB_FEATURE = "FEATURE IBPB_SUPPORT"
FEATURE_NOT_PRESENT = "Not Present"

BOOT_BANNER_RE = re.compile(r"Linux.version")
UNSAFE_MODULE_LOG_RE = re.compile(r"module '([^']+)' built without retpoline-enabled compiler")
MODINFO_RETPOLINE_RE = re.compile(r"retpoline:[ ]*Y")
CPU_FLAGS_IBPB_RE = re.compile(r"^flags\s+:.*ibpb", re.MULTILINE)
SUPPORTED_KERNEL_RE = re.compile(r"\.el[5-8]")
RHEL_RE = re.compile(r"el(\d)")

VENDOR_SIGNATURES = (
    ("GenuineIntel", Vendor.INTEL),
    ("AuthenticAMD", Vendor.AMD),
    ("POWER", Vendor.POWER),
)


def unique(names: Iterable[str]) -> Tuple[str, ...]:
    """Deduplicate while preserving discovery order."""
    seen = set()
    ordered = []
    for name in names:
        if name and name not in seen:
            seen.add(name)
            ordered.append(name)
    return tuple(ordered)


# ----------------------------------------------------------------------
# Kernel release
# ----------------------------------------------------------------------

def is_supported_kernel(release: str) -> bool:
    return bool(SUPPORTED_KERNEL_RE.search(release))


def parse_rhel(release: str) -> Optional[int]:
    matches = RHEL_RE.findall(release)
    if not matches:
        return None
    return int(matches[-1])


# ----------------------------------------------------------------------
# Kernel command line
# ----------------------------------------------------------------------

def parse_cmdline(raw: Fact[str]) -> CommandLineFacts:
    if not raw.is_present:
        return CommandLineFacts(raw=raw)

    names = set()
    spectre_v2: Fact[str] = Fact.absent()
    for token in raw.value.split():
        name, sep, value = token.partition("=")
        names.add(name)
        if name == "spectre_v2" and sep:
            mode = re.match(r"[a-zA-Z]+", value)
            spectre_v2 = Fact.present(mode.group(0) if mode else value)

    return CommandLineFacts(
        raw=raw,
        nopti="nopti" in names,
        noibrs="noibrs" in names,
        noibpb="noibpb" in names,
        no_rfi_flush="no_rfi_flush" in names,
        nospectre_v2="nospectre_v2" in names,
        spectre_v2=spectre_v2,
    )


# ----------------------------------------------------------------------
# Kernel log
# ----------------------------------------------------------------------

def _last_announcement(lines: List[str], feature: str) -> FeatureAnnouncement:
    matching = [line for line in lines if feature in line]
    if not matching:
        return FeatureAnnouncement.MISSING
    # Check last
    if FEATURE_NOT_PRESENT in matching[-1]:
        return FeatureAnnouncement.NOT_PRESENT
    return FeatureAnnouncement.PRESENT


def scan_kernel_log(text: Fact[str], from_file: bool = False, from_buffer: bool = False) -> KernelLogFacts:
    if not text.is_present:
        return KernelLogFacts(text=text, from_file=from_file, from_buffer=from_buffer)

    data = text.value
    lines = data.splitlines()
    return KernelLogFacts(
        text=text,
        from_file=from_file,
        from_buffer=from_buffer,
        # A live ring buffer without the boot banner has already been overwritten
        wrapped=from_buffer and not BOOT_BANNER_RE.search(data),
        pti_marker=any(marker in data for marker in PTI_MARKERS),
        ibrs=_last_announcement(lines, IBRS_FEATURE),
        ibpb=_last_announcement(lines, IBPB_FEATURE),
        retpoline_tried="retpoline" in data,
    )


def unsafe_modules_from_log(text: Fact[str]) -> Tuple[str, ...]:
    if not text.is_present:
        return ()
    names = []
    for line in text.value.splitlines():
        match = UNSAFE_MODULE_LOG_RE.search(line)
        if match:
            names.append(match.group(1))
    return unique(names)


# ----------------------------------------------------------------------
# Kernel modules
# ----------------------------------------------------------------------

def parse_lsmod(output: str) -> Tuple[str, ...]:
    names = []
    for line in output.splitlines()[1:]:  # header: Module Size Used by
        fields = line.split()
        if fields:
            names.append(fields[0])
    return unique(names)


def modinfo_has_retpoline(output: str) -> bool:
    return bool(MODINFO_RETPOLINE_RE.search(output))


# ----------------------------------------------------------------------
# CPU
# ----------------------------------------------------------------------

def detect_vendor(cpuinfo: Fact[str]) -> Optional[Vendor]:
    if not cpuinfo.is_present:
        return None
    for signature, vendor in VENDOR_SIGNATURES:
        if signature in cpuinfo.value:
            return vendor
    return None


def _cpuinfo_fields(text: str):
    for line in text.splitlines():
        key, sep, value = line.partition(":")
        if sep:
            yield key.strip(), " ".join(value.split())


def _first_value(text: str, key: str) -> Fact[str]:
    for field_key, value in _cpuinfo_fields(text):
        if field_key == key:
            return Fact.present(value)
    return Fact.absent()


def _model_number(text: str) -> Fact[int]:
    for key, value in _cpuinfo_fields(text):
        if key == "model" and len(value.split()) == 1:
            try:
                return Fact.present(int(value))
            except ValueError:
                return Fact.absent()
    return Fact.absent()


def parse_cpuinfo(cpuinfo: Fact[str]) -> CpuFacts:
    if not cpuinfo.is_present:
        return CpuFacts(model_name=cpuinfo)

    text = cpuinfo.value
    vendor = detect_vendor(cpuinfo)
    if vendor is Vendor.POWER:
        model_name = _first_value(text, "cpu")
        model_number: Fact[int] = Fact.absent()
    else:
        model_name = _first_value(text, "model name")
        model_number = _model_number(text) if vendor is not None else Fact.absent()

    return CpuFacts(
        vendor=vendor,
        model_name=model_name,
        model_number=model_number,
        flag_ibpb=bool(CPU_FLAGS_IBPB_RE.search(text)),
    )


# ----------------------------------------------------------------------
# debugfs / procfs scalars
# ----------------------------------------------------------------------

def parse_debug_value(text: str) -> Optional[int]:
    try:
        return int(text.strip())
    except ValueError:
        return None


def debugfs_in_mounts(text: str) -> bool:
    return any("debugfs" in line for line in text.splitlines())


def parse_virt_what(output: str) -> Fact[str]:
    tokens = " ".join(line.strip() for line in output.splitlines() if line.strip())
    if not tokens:
        return Fact.absent()
    return Fact.present(tokens)
