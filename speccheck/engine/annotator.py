"""
Diagnostic Annotator.

Explains verdicts: per-vulnerability caveats, recommendations for better
evidence, warnings about evidence quality, and reference links. Derives
everything from the snapshot and the verdict set; collects nothing new.
The order of every list is fixed.
"""
from __future__ import annotations

from typing import List, Tuple

from speccheck.engine.models import (
    Annotations,
    Caveat,
    CaveatCode,
    EdgeCase,
    Reference,
    VerdictSet,
)
from speccheck.facts.snapshot import FactSnapshot, Vendor

UNSAFE_MODULE_GREP = "# grep 'built without retpoline-enabled compiler' /var/log/messages"

DEBUGFS_MOUNT_COMMANDS = {
    5: "# mount -t debugfs nodev /sys/kernel/debug",
    6: "# mount -t debugfs nodev /sys/kernel/debug",
    7: "# systemctl restart sys-kernel-debug.mount",
}

REF_VULNERABILITIES = Reference(
    description="For more information about the vulnerabilities see:",
    url="https://access.redhat.com/security/vulnerabilities/speculativeexecution",
)
REF_MITIGATIONS = Reference(
    description=(
        "For more information about different mitigation techniques, their performance\n"
        "impact, and available controls, see:"
    ),
    url="https://access.redhat.com/articles/3311301",
)
REF_RETPOLINE = Reference(
    description="For more information about retpoline mitigation technique, see:",
    url="https://support.google.com/faqs/answer/7625886",
)
REF_VMS = Reference(
    description="For more information about correctly enabling mitigations in VMs, see:",
    url="https://access.redhat.com/articles/3331571",
)
REF_VMWARE = Reference(
    description="For more information about correctly enabling mitigations in VMWare VMs, see:",
    url="https://kb.vmware.com/s/article/52085",
)
REF_RETPOLINE_KERNELS = Reference(
    description="For more information about minimal kernel versions containing retpoline, see:",
    url="https://access.redhat.com/solutions/3424111",
)
REF_UNSAFE_MODULES = Reference(
    description=(
        "For more information about retpoline mitigation not working because\n"
        "kernel modules which were not compiled with retpoline support were loaded, see:"
    ),
    url="https://access.redhat.com/solutions/3399691",
)
REF_MICROCODE = Reference(
    description="For more information about microcode updates provided by Red Hat, see:",
    url="https://access.redhat.com/articles/3436091",
)

KERNEL_UPDATE = Caveat(code=CaveatCode.KERNEL_UPDATE_NOT_DETECTED, message="Kernel update not detected")


def spectre_v1_caveats(snapshot: FactSnapshot, verdicts: VerdictSet) -> Tuple[Caveat, ...]:
    if not verdicts.spectre_v1.vulnerable:
        return ()
    if not verdicts.signals.kernel_updated:
        return (KERNEL_UPDATE,)
    return ()


def _edge_case_caveat(edge_case: EdgeCase) -> List[Caveat]:
    if edge_case is EdgeCase.RETPOLINE_WITHOUT_IBPB:
        return [Caveat(
            code=CaveatCode.RETPOLINE_WITHOUT_IBPB,
            message="Kernel reports 'Full retpoline', but IBPB is neither enabled nor advertised by the CPU "
                    "(retpoline without IBPB)",
        )]
    if edge_case is EdgeCase.SKYLAKE_WITHOUT_IBPB:
        return [Caveat(
            code=CaveatCode.RETPOLINE_WITHOUT_IBPB,
            message="Kernel reports 'Retpoline on Skylake', but IBPB is neither enabled nor advertised by the CPU "
                    "(retpoline without IBPB)",
        )]
    if edge_case is EdgeCase.SKYLAKE_UNSAFE_MODULES:
        return [Caveat(
            code=CaveatCode.RETPOLINE_WITH_UNSAFE_MODULES,
            message="Kernel reports 'Retpoline on Skylake', but modules without retpoline support are loaded",
        )]
    return []


def spectre_v2_caveats(snapshot: FactSnapshot, verdicts: VerdictSet) -> Tuple[Caveat, ...]:
    verdict = verdicts.spectre_v2
    signals = verdicts.signals
    cmd = snapshot.cmdline
    if not verdict.vulnerable:
        return ()
    if not signals.kernel_updated:
        return (KERNEL_UPDATE,)

    caveats: List[Caveat] = []
    if verdict.edge_case is not None:
        caveats.extend(_edge_case_caveat(verdict.edge_case))
    if not signals.microcode_updated:
        caveats.append(Caveat(code=CaveatCode.MICROCODE_UPDATE_NOT_DETECTED, message="Microcode update not detected"))
    if not signals.ibrs.value and not signals.retpoline_tried:
        caveats.append(Caveat(code=CaveatCode.IBRS_DISABLED, message="IBRS disabled or not supported"))
    if not signals.ibpb.value:
        caveats.append(Caveat(code=CaveatCode.IBPB_DISABLED, message="IBPB disabled or not supported"))
    if cmd.noibrs:
        caveats.append(Caveat(code=CaveatCode.CMDLINE_NOIBRS, message="'noibrs' commandline option"))
    if cmd.noibpb:
        caveats.append(Caveat(code=CaveatCode.CMDLINE_NOIBPB, message="'noibpb' commandline option"))
    if cmd.nospectre_v2:
        caveats.append(Caveat(code=CaveatCode.CMDLINE_NOSPECTRE_V2, message="'nospectre_v2' commandline option"))
    if cmd.spectre_v2_set:
        # It is highly probable that it disabled something
        caveats.append(Caveat(
            code=CaveatCode.CMDLINE_SPECTRE_V2,
            message=f"'spectre_v2={cmd.spectre_v2.value}' commandline option",
        ))
    if signals.retpoline_kernel and signals.retpoline_tried:
        caveats.append(Caveat(code=CaveatCode.RETPOLINE_DISABLED, message="Retpoline disabled"))
    if signals.unsafe_modules:
        if signals.unsafe_module_names:
            caveats.append(Caveat(
                code=CaveatCode.UNSAFE_MODULES,
                message="Kernel modules without retpoline support:",
                details=signals.unsafe_module_names,
            ))
        else:
            caveats.append(Caveat(
                code=CaveatCode.UNSAFE_MODULES_UNLOADED,
                message="Kernel modules without retpoline support:",
                hint=(
                    "It seems that the offending module was already unloaded,",
                    "try the following command:",
                    f"  {UNSAFE_MODULE_GREP}",
                ),
            ))
    return tuple(caveats)


def meltdown_caveats(snapshot: FactSnapshot, verdicts: VerdictSet) -> Tuple[Caveat, ...]:
    signals = verdicts.signals
    cmd = snapshot.cmdline
    if not verdicts.meltdown.vulnerable:
        return ()
    if not signals.kernel_updated:
        return (KERNEL_UPDATE,)

    caveats: List[Caveat] = []
    if not signals.pti.value:
        caveats.append(Caveat(code=CaveatCode.PTI_DISABLED, message="PTI disabled"))
    if snapshot.cpu.vendor is Vendor.POWER and not signals.rfi_flush.value:
        caveats.append(Caveat(code=CaveatCode.RFI_FLUSH_DISABLED, message="RFI FLUSH disabled"))
    if cmd.no_rfi_flush:
        caveats.append(Caveat(code=CaveatCode.CMDLINE_NO_RFI_FLUSH, message="'no_rfi_flush' commandline option"))
    if cmd.nopti:
        caveats.append(Caveat(code=CaveatCode.CMDLINE_NOPTI, message="'nopti' commandline option"))
    return tuple(caveats)


def recommendations(snapshot: FactSnapshot, verdicts: VerdictSet) -> Tuple[Caveat, ...]:
    """Ways to improve the evidence available to the next run."""
    items: List[Caveat] = []
    if not snapshot.debug.is_mounted:
        command = DEBUGFS_MOUNT_COMMANDS.get(snapshot.env.rhel)
        items.append(Caveat(
            code=CaveatCode.MOUNT_DEBUGFS,
            message="Mount debugfs which provides debugging files in the path\n"
                    "  /sys/kernel/debug/[arch], using the following command:",
            hint=(f"  {command}",) if command else (),
        ))
    if not verdicts.signals.retpoline_kernel:
        items.append(Caveat(
            code=CaveatCode.INSTALL_RETPOLINE_KERNEL,
            message="Install retpoline kernel which provides vulnerability files in the\n"
                    "  following path: /sys/devices/system/cpu/vulnerabilities/*",
        ))
    return tuple(items)


def warnings(snapshot: FactSnapshot) -> Tuple[Caveat, ...]:
    if snapshot.log.text.is_unavailable:
        return (Caveat(
            code=CaveatCode.LOG_UNAVAILABLE,
            message="Kernel log could not be read from /var/log/dmesg or dmesg,\nthe results may be inaccurate.",
        ),)
    if snapshot.log.from_buffer and snapshot.log.wrapped:
        return (Caveat(
            code=CaveatCode.LOG_WRAPPED,
            message="It seems that dmesg circular buffer already wrapped,\nthe results may be inaccurate.",
        ),)
    return ()


def references(snapshot: FactSnapshot, verdicts: VerdictSet) -> Tuple[Reference, ...]:
    refs = [REF_VULNERABILITIES, REF_MITIGATIONS, REF_RETPOLINE]
    virt = snapshot.env.virtualization
    # Anything but a definite "no hypervisor" gets the VM guidance
    if not virt.is_absent:
        refs.append(REF_VMS)
    if virt.is_present and "vmware" in virt.value:
        refs.append(REF_VMWARE)
    if not verdicts.signals.retpoline_kernel:
        refs.append(REF_RETPOLINE_KERNELS)
    if verdicts.signals.unsafe_modules:
        refs.append(REF_UNSAFE_MODULES)
    if not verdicts.signals.microcode_updated:
        refs.append(REF_MICROCODE)
    return tuple(refs)


def annotate(snapshot: FactSnapshot, verdicts: VerdictSet) -> Annotations:
    return Annotations(
        spectre_v1=spectre_v1_caveats(snapshot, verdicts),
        spectre_v2=spectre_v2_caveats(snapshot, verdicts),
        meltdown=meltdown_caveats(snapshot, verdicts),
        recommendations=recommendations(snapshot, verdicts),
        warnings=warnings(snapshot),
        references=references(snapshot, verdicts),
    )
