from speccheck.engine.annotator import annotate
from speccheck.engine.models import CaveatCode
from speccheck.engine.reconciler import reconcile
from speccheck.facts.parsing import parse_cmdline
from speccheck.facts.snapshot import (
    CpuFacts,
    DebugFacts,
    EnvironmentFacts,
    KernelLogFacts,
    ModuleFacts,
    Vendor,
)
from speccheck.facts.types import Fact


def annotations_for(snapshot):
    return annotate(snapshot, reconcile(snapshot))


def codes(caveats):
    return [c.code for c in caveats]


def test_mitigated_verdicts_have_no_caveats(make_snapshot, status_files):
    snap = make_snapshot(
        debug=DebugFacts(mounted=Fact.present(True), ibpb=Fact.present(1)),
        **status_files(v1="Mitigation: Load fences", v2="Mitigation: Full retpoline", meltdown="Mitigation: PTI"),
    )
    notes = annotations_for(snap)
    assert notes.spectre_v1 == ()
    assert notes.spectre_v2 == ()
    assert notes.meltdown == ()
    assert notes.recommendations == ()


def test_old_kernel_gets_only_kernel_update_caveat(make_snapshot):
    notes = annotations_for(make_snapshot(cmdline=parse_cmdline(Fact.present("nopti noibrs"))))
    for caveats in (notes.spectre_v1, notes.spectre_v2, notes.meltdown):
        assert codes(caveats) == [CaveatCode.KERNEL_UPDATE_NOT_DETECTED]


def test_spectre_v2_caveat_order(make_snapshot, status_files):
    snap = make_snapshot(
        cmdline=parse_cmdline(Fact.present("ro noibrs spectre_v2=off")),
        debug=DebugFacts(retp=Fact.present(1)),
        **status_files(v2="Vulnerable"),
    )
    notes = annotations_for(snap)
    assert codes(notes.spectre_v2) == [
        CaveatCode.MICROCODE_UPDATE_NOT_DETECTED,
        CaveatCode.IBPB_DISABLED,
        CaveatCode.CMDLINE_NOIBRS,
        CaveatCode.CMDLINE_SPECTRE_V2,
        CaveatCode.RETPOLINE_DISABLED,
    ]
    assert notes.spectre_v2[3].message == "'spectre_v2=off' commandline option"


def test_ibrs_caveat_only_when_retpoline_not_tried(make_snapshot, status_files):
    notes = annotations_for(make_snapshot(**status_files(v2="Vulnerable")))
    assert CaveatCode.IBRS_DISABLED in codes(notes.spectre_v2)
    assert CaveatCode.RETPOLINE_DISABLED not in codes(notes.spectre_v2)


def test_edge_case_caveat_comes_first(make_snapshot, status_files):
    notes = annotations_for(make_snapshot(**status_files(v2="Mitigation: Full retpoline")))
    assert notes.spectre_v2[0].code is CaveatCode.RETPOLINE_WITHOUT_IBPB


def test_unsafe_modules_listed(make_snapshot, status_files):
    snap = make_snapshot(
        modules=ModuleFacts(inspected=Fact.present(("vboxdrv",)), from_log=("nvidia", "vboxdrv")),
        **status_files(v2="Vulnerable: Retpoline with unsafe module(s)"),
    )
    notes = annotations_for(snap)
    unsafe = [c for c in notes.spectre_v2 if c.code is CaveatCode.UNSAFE_MODULES]
    assert len(unsafe) == 1
    assert unsafe[0].details == ("vboxdrv", "nvidia")


def test_unsafe_modules_already_unloaded(make_snapshot, status_files):
    notes = annotations_for(make_snapshot(**status_files(v2="Vulnerable: Retpoline with unsafe module(s)")))
    unloaded = [c for c in notes.spectre_v2 if c.code is CaveatCode.UNSAFE_MODULES_UNLOADED]
    assert len(unloaded) == 1
    assert any("grep 'built without retpoline-enabled compiler'" in line for line in unloaded[0].hint)


def test_meltdown_caveats_on_power(make_snapshot, status_files):
    snap = make_snapshot(
        cpu=CpuFacts(vendor=Vendor.POWER),
        cmdline=parse_cmdline(Fact.present("no_rfi_flush nopti")),
        **status_files(meltdown="Vulnerable"),
    )
    notes = annotations_for(snap)
    assert codes(notes.meltdown) == [
        CaveatCode.PTI_DISABLED,
        CaveatCode.RFI_FLUSH_DISABLED,
        CaveatCode.CMDLINE_NO_RFI_FLUSH,
        CaveatCode.CMDLINE_NOPTI,
    ]


def test_recommendations_depend_on_release(make_snapshot):
    snap = make_snapshot()
    notes = annotations_for(snap)
    assert codes(notes.recommendations) == [CaveatCode.MOUNT_DEBUGFS, CaveatCode.INSTALL_RETPOLINE_KERNEL]
    assert notes.recommendations[0].hint == ("  # systemctl restart sys-kernel-debug.mount",)

    rhel6 = make_snapshot(env=EnvironmentFacts(kernel_release="2.6.32-754.el6.x86_64", rhel=6))
    assert annotations_for(rhel6).recommendations[0].hint == ("  # mount -t debugfs nodev /sys/kernel/debug",)

    rhel8 = make_snapshot(env=EnvironmentFacts(kernel_release="4.18.0-80.el8.x86_64", rhel=8))
    assert annotations_for(rhel8).recommendations[0].hint == ()


def test_wrapped_buffer_warning(make_snapshot):
    wrapped = KernelLogFacts(text=Fact.present("x"), from_buffer=True, wrapped=True)
    assert codes(annotations_for(make_snapshot(log=wrapped)).warnings) == [CaveatCode.LOG_WRAPPED]
    persisted = KernelLogFacts(text=Fact.present("Linux version 3.10.0"), from_file=True)
    assert annotations_for(make_snapshot(log=persisted)).warnings == ()


def test_unreadable_kernel_log_warning(make_snapshot):
    notes = annotations_for(make_snapshot(log=KernelLogFacts(text=Fact.unavailable("dmesg not available"))))
    assert codes(notes.warnings) == [CaveatCode.LOG_UNAVAILABLE]
    assert notes.warnings[0].message.endswith("the results may be inaccurate.")


def test_references(make_snapshot, status_files):
    urls = [r.url for r in annotations_for(make_snapshot()).references]
    assert urls[:3] == [
        "https://access.redhat.com/security/vulnerabilities/speculativeexecution",
        "https://access.redhat.com/articles/3311301",
        "https://support.google.com/faqs/answer/7625886",
    ]
    assert "https://access.redhat.com/articles/3331571" not in urls
    assert "https://access.redhat.com/solutions/3424111" in urls
    assert "https://access.redhat.com/articles/3436091" in urls

    vmware = make_snapshot(env=EnvironmentFacts(
        kernel_release="3.10.0-862.el7.x86_64",
        rhel=7,
        virtualization=Fact.present("vmware"),
    ))
    urls = [r.url for r in annotations_for(vmware).references]
    assert "https://access.redhat.com/articles/3331571" in urls
    assert "https://kb.vmware.com/s/article/52085" in urls


def test_unknown_virtualization_still_gets_vm_reference(make_snapshot):
    snap = make_snapshot(env=EnvironmentFacts(
        kernel_release="3.10.0-862.el7.x86_64",
        rhel=7,
        virtualization=Fact.unavailable("virt-what not available"),
    ))
    urls = [r.url for r in annotations_for(snap).references]
    assert "https://access.redhat.com/articles/3331571" in urls
