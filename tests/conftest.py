"""Pytest configuration for speccheck."""
import os
from dataclasses import replace
from types import SimpleNamespace

import pytest

from speccheck.base.config import PathsConfig, SpeccheckConfig, set_config
from speccheck.facts.snapshot import (
    CommandLineFacts,
    CpuFacts,
    EnvironmentFacts,
    FactSnapshot,
    Vendor,
    VulnerabilityFacts,
)
from speccheck.facts.types import Fact
from speccheck.toolkit.runner import ToolResult

INTEL_CPUINFO = """processor\t: 0
vendor_id\t: GenuineIntel
cpu family\t: 6
model\t\t: 85
model name\t: Intel(R) Xeon(R) Gold 6130 CPU @ 2.10GHz
stepping\t: 4
flags\t\t: fpu vme de pse tsc msr pae ibpb ibrs stibp
"""

AMD_CPUINFO = """processor\t: 0
vendor_id\t: AuthenticAMD
cpu family\t: 23
model\t\t: 1
model name\t: AMD EPYC 7601 32-Core Processor
flags\t\t: fpu vme de pse tsc
"""

POWER_CPUINFO = """processor\t: 0
cpu\t\t: POWER8E (raw), altivec supported
clock\t\t: 3425.000000MHz
revision\t: 2.1 (pvr 004b 0201)
"""


def pytest_configure():
    # Config must never come from the developer's shell
    for key in list(os.environ):
        if key.startswith("SPECCHECK_"):
            del os.environ[key]


@pytest.fixture(autouse=True)
def reset_config():
    set_config(None)
    yield
    set_config(None)


def vulnerability(name, text=None):
    """Status file for ``name``; None means the file does not exist."""
    if text is None:
        return VulnerabilityFacts(name, Fact.unavailable("No such file or directory"))
    return VulnerabilityFacts(name, Fact.present(text))


@pytest.fixture
def make_snapshot():
    """Intel RHEL 7 bare-metal host with no other evidence; override any field."""

    def _make(**overrides):
        base = FactSnapshot(
            cmdline=CommandLineFacts(raw=Fact.present("BOOT_IMAGE=/vmlinuz-3.10.0 ro quiet")),
            cpu=CpuFacts(
                vendor=Vendor.INTEL,
                model_name=Fact.present("Intel(R) Xeon(R) Gold 6130 CPU @ 2.10GHz"),
                model_number=Fact.present(85),
            ),
            env=EnvironmentFacts(
                kernel_release="3.10.0-862.el7.x86_64",
                rhel=7,
                architecture=Fact.present("x86_64"),
                virtualization=Fact.absent(),
            ),
        )
        return replace(base, **overrides)

    return _make


@pytest.fixture
def status_files():
    """spectre_v1/spectre_v2/meltdown status files as snapshot overrides."""

    def _files(v1=None, v2=None, meltdown=None):
        return {
            "spectre_v1": vulnerability("spectre_v1", v1),
            "spectre_v2": vulnerability("spectre_v2", v2),
            "meltdown": vulnerability("meltdown", meltdown),
        }

    return _files


class FakeRunner:
    """
    Stand-in for run_tool. ``responses`` maps argv tuples to stdout, to
    (stdout, returncode) or to a ToolResult; anything else is "not installed".
    """

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []

    def __call__(self, argv):
        argv = tuple(argv)
        self.calls.append(argv)
        response = self.responses.get(argv)
        if response is None:
            return None
        if isinstance(response, ToolResult):
            return response
        if isinstance(response, tuple):
            stdout, returncode = response
        else:
            stdout, returncode = response, 0
        return ToolResult(argv=argv, stdout=stdout, stderr="", returncode=returncode)


@pytest.fixture
def fake_runner():
    return FakeRunner


class FakeRoot:
    """Fake sysfs/procfs tree under a temporary directory."""

    def __init__(self, base):
        self.base = base
        self.paths = PathsConfig(
            vulnerabilities_dir=base / "sys/devices/system/cpu/vulnerabilities",
            debug_x86_dir=base / "sys/kernel/debug/x86",
            debug_powerpc_dir=base / "sys/kernel/debug/powerpc",
            cmdline_path=base / "proc/cmdline",
            dmesg_log_path=base / "var/log/dmesg",
            cpuinfo_path=base / "proc/cpuinfo",
            mounts_path=base / "proc/mounts",
        )

    def write(self, path, text):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text)
        return path

    def vulnerability(self, name, text):
        return self.write(self.paths.vulnerabilities_dir / name, text + "\n")

    def debug_x86(self, name, value):
        return self.write(self.paths.debug_x86_dir / name, f"{value}\n")

    def config(self, **kwargs):
        return SpeccheckConfig(paths=self.paths, **kwargs)


@pytest.fixture
def fake_root(tmp_path):
    return FakeRoot(tmp_path)


@pytest.fixture
def make_uname():
    def _uname(release="3.10.0-862.el7.x86_64", machine="x86_64"):
        return lambda: SimpleNamespace(sysname="Linux", release=release, machine=machine)

    return _uname


@pytest.fixture
def cpuinfo_samples():
    return {"intel": INTEL_CPUINFO, "amd": AMD_CPUINFO, "power": POWER_CPUINFO}
