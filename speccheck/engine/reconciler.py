# ============================================================================
# speccheck/engine/reconciler.py
# Evidence Reconciler
# ============================================================================
#
# PURPOSE:
# Turns one FactSnapshot into one VerdictSet. Pure and total: no I/O, no
# exceptions, and every gap in the evidence resolves to the safer answer.
#
# PRECEDENCE:
# Every decision below is an ordered list of tiers evaluated top-down with
# early return. Status files and debugfs are authoritative when present; the
# kernel log only fills gaps, and only when no boot parameter disabled the
# protection it announces.
#
# ============================================================================

from __future__ import annotations

import logging
from typing import Optional, Sequence, Tuple

from speccheck.engine.models import (
    EdgeCase,
    EvidenceSource,
    Outcome,
    Resolution,
    Signals,
    Verdict,
    VerdictSet,
    VulnerabilityId,
)
from speccheck.engine.phrasing import StatusPhrasing, classify_spectre_v2_status, reports_unsafe_modules
from speccheck.facts.parsing import unique
from speccheck.facts.snapshot import FactSnapshot, FeatureAnnouncement, Vendor, VulnerabilityFacts
from speccheck.facts.types import Fact

logger = logging.getLogger(__name__)


def _enabled(fact: Fact[int]) -> bool:
    # debugfs files hold 0/1, ibrs_enabled may also hold 2 or 3
    return bool(fact.get(0))


# ----------------------------------------------------------------------
# Cross-cutting signals
# ----------------------------------------------------------------------

def kernel_updated(snapshot: FactSnapshot) -> bool:
    """Does the running kernel ship any mitigation machinery at all?"""
    log = snapshot.log
    return (
        snapshot.status_files_available
        or snapshot.debug.any_x86_available
        or log.pti_marker
        or log.ibrs.announced
        or log.ibpb.announced
    )


def microcode_updated(snapshot: FactSnapshot) -> bool:
    # The IBRS/IBPB feature lines do not change when the feature is disabled
    # at runtime or on the command line, so they track the microcode. Writing
    # 1 to the debugfs files is impossible without updated microcode.
    return (
        snapshot.log.ibrs is FeatureAnnouncement.PRESENT
        or snapshot.log.ibpb is FeatureAnnouncement.PRESENT
        or _enabled(snapshot.debug.ibrs)
        or _enabled(snapshot.debug.ibpb)
    )


def retpoline_tried(snapshot: FactSnapshot) -> bool:
    return snapshot.log.retpoline_tried or _enabled(snapshot.debug.retp)


def runtime_protection(debug: Fact[int], announced: bool, disabled_by: Sequence[bool]) -> Resolution:
    """
    Resolve a runtime protection (IBRS, IBPB, PTI).

    1. debugfs, when available, is trusted unconditionally: it reflects the
       live state even if a boot parameter was used.
    2. Otherwise the kernel log, but only if no boot parameter disabled the
       protection. debugfs is not mounted, so it was not disabled at runtime.
    3. Otherwise not enabled.
    """
    if debug.is_present:
        return Resolution(value=_enabled(debug), source=EvidenceSource.DEBUGFS)
    if announced and any(disabled_by):
        return Resolution(value=False, source=EvidenceSource.COMMAND_LINE)
    if announced:
        return Resolution(value=True, source=EvidenceSource.KERNEL_LOG)
    return Resolution(value=False, source=EvidenceSource.DEFAULT)


def resolve_ibrs(snapshot: FactSnapshot) -> Resolution:
    cmd = snapshot.cmdline
    return runtime_protection(
        snapshot.debug.ibrs,
        snapshot.log.ibrs is FeatureAnnouncement.PRESENT,
        (cmd.noibrs, cmd.nospectre_v2, cmd.spectre_v2_set),
    )


def resolve_ibpb(snapshot: FactSnapshot) -> Resolution:
    cmd = snapshot.cmdline
    return runtime_protection(
        snapshot.debug.ibpb,
        snapshot.log.ibpb is FeatureAnnouncement.PRESENT,
        (cmd.noibpb, cmd.nospectre_v2, cmd.spectre_v2_set),
    )


def resolve_pti(snapshot: FactSnapshot) -> Resolution:
    return runtime_protection(snapshot.debug.pti, snapshot.log.pti_marker, (snapshot.cmdline.nopti,))


def resolve_rfi_flush(snapshot: FactSnapshot) -> Resolution:
    # RFI flush is on by default on POWER; only debugfs or no_rfi_flush say otherwise
    if snapshot.debug.rfi_flush.is_present:
        return Resolution(value=_enabled(snapshot.debug.rfi_flush), source=EvidenceSource.DEBUGFS)
    if snapshot.cmdline.no_rfi_flush:
        return Resolution(value=False, source=EvidenceSource.COMMAND_LINE)
    return Resolution(value=True, source=EvidenceSource.DEFAULT)


def unsafe_module_names(snapshot: FactSnapshot) -> Tuple[str, ...]:
    return unique(snapshot.modules.inspected_names + snapshot.modules.from_log)


def build_signals(snapshot: FactSnapshot) -> Signals:
    names = unsafe_module_names(snapshot)
    # Detection may miss a module that was already unloaded; the status file still remembers
    reported = reports_unsafe_modules(snapshot.spectre_v2.status)
    return Signals(
        kernel_updated=kernel_updated(snapshot),
        retpoline_kernel=snapshot.status_files_available,
        retpoline_tried=retpoline_tried(snapshot),
        microcode_updated=microcode_updated(snapshot),
        ibrs=resolve_ibrs(snapshot),
        ibpb=resolve_ibpb(snapshot),
        pti=resolve_pti(snapshot),
        rfi_flush=resolve_rfi_flush(snapshot),
        unsafe_modules=bool(names) or reported,
        unsafe_module_names=names,
        unsafe_modules_reported_only=reported and not names,
    )


# ----------------------------------------------------------------------
# Per-vulnerability procedures
# ----------------------------------------------------------------------

def resolve_spectre_v1(snapshot: FactSnapshot, signals: Signals) -> Resolution:
    """
    On an updated kernel the v1 mitigation is compiled in and cannot be
    turned off, except when the status file itself says vulnerable (e.g. an
    architecture the kernel does not mitigate); then the status file wins.
    """
    facts = snapshot.spectre_v1
    if facts.reports_mitigated:
        return Resolution(value=True, source=EvidenceSource.STATUS_FILE)
    if facts.reports_vulnerable:
        return Resolution(value=False, source=EvidenceSource.STATUS_FILE)
    if signals.kernel_updated:
        return Resolution(value=True, source=EvidenceSource.KERNEL_HEURISTIC)
    return Resolution(value=False, source=EvidenceSource.DEFAULT)


def resolve_spectre_v2(snapshot: FactSnapshot, signals: Signals) -> Tuple[Resolution, Optional[EdgeCase]]:
    facts = snapshot.spectre_v2
    if facts.available:
        # On a retpoline kernel the status file does not lie, except for the phrasings below
        base = Resolution(value=facts.reports_mitigated, source=EvidenceSource.STATUS_FILE)
    else:
        base = Resolution(
            value=signals.ibrs.value and signals.ibpb.value,
            source=EvidenceSource.RUNTIME_PROTECTIONS,
        )

    phrasing = classify_spectre_v2_status(facts.status)
    barrier = signals.ibpb.value or snapshot.cpu.flag_ibpb

    if phrasing is StatusPhrasing.FULL_RETPOLINE:
        if not barrier:
            return Resolution(value=False, source=EvidenceSource.STATUS_EDGE_CASE), EdgeCase.RETPOLINE_WITHOUT_IBPB
        return base, None

    if phrasing is StatusPhrasing.RETPOLINE_ON_SKYLAKE:
        if not barrier:
            return Resolution(value=False, source=EvidenceSource.STATUS_EDGE_CASE), EdgeCase.SKYLAKE_WITHOUT_IBPB
        if signals.unsafe_modules:
            return Resolution(value=False, source=EvidenceSource.STATUS_EDGE_CASE), EdgeCase.SKYLAKE_UNSAFE_MODULES
        return Resolution(value=True, source=EvidenceSource.STATUS_EDGE_CASE), EdgeCase.SKYLAKE_FULL_RETPOLINE

    # StatusPhrasing.UNRECOGNIZED: trust the generic path as is
    return base, None


def resolve_meltdown(snapshot: FactSnapshot, signals: Signals) -> Tuple[Outcome, Resolution]:
    """
    1. AMD is not affected, whatever else the evidence says.
    2. The status file, when present.
    3. POWER without a status file: unknown, reported as vulnerable.
    4. PTI.
    """
    if snapshot.cpu.vendor is Vendor.AMD:
        return Outcome.NOT_AFFECTED, Resolution(value=True, source=EvidenceSource.VENDOR)

    facts = snapshot.meltdown
    if facts.available:
        resolution = Resolution(value=facts.reports_mitigated, source=EvidenceSource.STATUS_FILE)
    elif snapshot.cpu.vendor is Vendor.POWER:
        resolution = Resolution(value=False, source=EvidenceSource.VENDOR)
    else:
        resolution = signals.pti
    return _outcome(resolution), resolution


# ----------------------------------------------------------------------
# Verdicts
# ----------------------------------------------------------------------

def _outcome(resolution: Resolution) -> Outcome:
    return Outcome.MITIGATED if resolution.value else Outcome.VULNERABLE


def _status_text(facts: VulnerabilityFacts, resolution: Resolution) -> str:
    if facts.available:
        return facts.status.value
    return "Mitigated" if resolution.value else "Vulnerable"


def reconcile(snapshot: FactSnapshot) -> VerdictSet:
    signals = build_signals(snapshot)

    v1 = resolve_spectre_v1(snapshot, signals)
    spectre_v1 = Verdict(
        vulnerability=VulnerabilityId.SPECTRE_V1,
        outcome=_outcome(v1),
        resolution=v1,
        status_text=_status_text(snapshot.spectre_v1, v1),
    )

    v2, edge_case = resolve_spectre_v2(snapshot, signals)
    spectre_v2 = Verdict(
        vulnerability=VulnerabilityId.SPECTRE_V2,
        outcome=_outcome(v2),
        resolution=v2,
        status_text=edge_case.status_text if edge_case else _status_text(snapshot.spectre_v2, v2),
        edge_case=edge_case,
    )

    outcome, md = resolve_meltdown(snapshot, signals)
    meltdown = Verdict(
        vulnerability=VulnerabilityId.MELTDOWN,
        outcome=outcome,
        resolution=md,
        status_text="AMD not affected" if outcome is Outcome.NOT_AFFECTED else _status_text(snapshot.meltdown, md),
    )

    verdicts = VerdictSet(spectre_v1=spectre_v1, spectre_v2=spectre_v2, meltdown=meltdown, signals=signals)
    logger.debug(
        "Reconciled: v1=%s v2=%s meltdown=%s edge_case=%s result=%d",
        spectre_v1.outcome.value,
        spectre_v2.outcome.value,
        meltdown.outcome.value,
        edge_case.value if edge_case else None,
        verdicts.result_code,
    )
    return verdicts
