"""Fact Snapshot construction."""
from __future__ import annotations

import logging

from speccheck.facts.parsing import (
    parse_cmdline,
    parse_cpuinfo,
    parse_rhel,
    scan_kernel_log,
    unsafe_modules_from_log,
)
from speccheck.facts.snapshot import (
    DebugFacts,
    EnvironmentFacts,
    FactSnapshot,
    ModuleFacts,
    VulnerabilityFacts,
)
from speccheck.facts.sources import FactSources

logger = logging.getLogger(__name__)


def build_snapshot(sources: FactSources) -> FactSnapshot:
    """
    Consult every source once and freeze the result.

    Sources are independent; none of them aborts the build. Hard
    prerequisites (required tools, supported kernel) are checked by the
    caller before this runs.
    """
    log_text, from_file, from_buffer = sources.kernel_log()
    release = sources.kernel_release()

    snapshot = FactSnapshot(
        spectre_v1=VulnerabilityFacts("spectre_v1", sources.vulnerability_status("spectre_v1")),
        spectre_v2=VulnerabilityFacts("spectre_v2", sources.vulnerability_status("spectre_v2")),
        meltdown=VulnerabilityFacts("meltdown", sources.vulnerability_status("meltdown")),
        cmdline=parse_cmdline(sources.cmdline()),
        debug=DebugFacts(
            mounted=sources.debugfs_mounted(),
            pti=sources.debug_x86("pti_enabled"),
            ibpb=sources.debug_x86("ibpb_enabled"),
            ibrs=sources.debug_x86("ibrs_enabled"),
            retp=sources.debug_x86("retp_enabled"),
            rfi_flush=sources.debug_rfi_flush(),
        ),
        log=scan_kernel_log(log_text, from_file=from_file, from_buffer=from_buffer),
        modules=ModuleFacts(
            inspected=sources.unsafe_modules(),
            from_log=unsafe_modules_from_log(log_text),
        ),
        cpu=parse_cpuinfo(sources.cpuinfo()),
        env=EnvironmentFacts(
            kernel_release=release,
            rhel=parse_rhel(release),
            architecture=sources.architecture(),
            virtualization=sources.virtualization(),
        ),
    )

    logger.debug(
        "Snapshot built: status files=%s, debugfs mounted=%s, log from %s",
        snapshot.status_files_available,
        snapshot.debug.mounted.describe(),
        "file" if from_file else "buffer" if from_buffer else "nowhere",
    )
    return snapshot
