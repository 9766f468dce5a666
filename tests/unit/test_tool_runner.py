import subprocess

import pytest

from speccheck.toolkit import runner as runner_module
from speccheck.toolkit.registry import TOOLS, find_binary, get_tool_command, search_path
from speccheck.toolkit.runner import make_runner, run_tool


class FakePopen:
    instances = []

    def __init__(self, command, stdout=None, stderr=None, text=None, errors=None, hang=False, returncode=0):
        self.command = command
        self.hang = hang
        self.returncode = returncode
        self.killed = False
        self.communicate_calls = 0
        FakePopen.instances.append(self)

    def communicate(self, timeout=None):
        self.communicate_calls += 1
        if self.hang and not self.killed:
            raise subprocess.TimeoutExpired(self.command, timeout)
        return "out\n", ""

    def kill(self):
        self.killed = True


@pytest.fixture
def popen(monkeypatch):
    FakePopen.instances = []
    monkeypatch.setattr(runner_module, "find_binary", lambda name, extra_paths=(): f"/usr/bin/{name}")

    def install(**behaviour):
        monkeypatch.setattr(runner_module.subprocess, "Popen", lambda cmd, **kw: FakePopen(cmd, **kw, **behaviour))
        return FakePopen

    return install


def test_run_tool_returns_output(popen):
    popen(returncode=0)
    result = run_tool(["lsmod"], timeout=1.0)
    assert result.ok
    assert result.stdout == "out\n"
    assert result.argv == ("lsmod",)
    assert FakePopen.instances[0].command == ["/usr/bin/lsmod"]


def test_run_tool_nonzero_exit_is_a_result(popen):
    popen(returncode=1)
    result = run_tool(["modinfo", "missing"])
    assert result is not None
    assert not result.ok


def test_run_tool_timeout_kills_without_retry(popen):
    popen(hang=True)
    assert run_tool(["dmesg"], timeout=0.1) is None
    assert len(FakePopen.instances) == 1
    assert FakePopen.instances[0].killed


def test_run_tool_missing_binary(monkeypatch):
    monkeypatch.setattr(runner_module, "find_binary", lambda name, extra_paths=(): None)
    assert run_tool(["virt-what"]) is None


def test_run_tool_start_failure(monkeypatch):
    monkeypatch.setattr(runner_module, "find_binary", lambda name, extra_paths=(): "/usr/bin/dmesg")

    def broken(*args, **kwargs):
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr(runner_module.subprocess, "Popen", broken)
    assert run_tool(["dmesg"]) is None


def test_run_tool_rejects_empty_argv():
    with pytest.raises(ValueError):
        run_tool([])


def test_make_runner_binds_timeout(monkeypatch):
    seen = {}

    def fake_run_tool(argv, timeout, extra_paths):
        seen.update(argv=argv, timeout=timeout, extra_paths=extra_paths)

    monkeypatch.setattr(runner_module, "run_tool", fake_run_tool)
    make_runner(3.0, ["/sbin"])(["lsmod"])
    assert seen == {"argv": ["lsmod"], "timeout": 3.0, "extra_paths": ("/sbin",)}


def test_registry_commands():
    assert TOOLS["rpm"]["required"]
    assert get_tool_command("modinfo", "vboxdrv") == ["modinfo", "vboxdrv"]
    with pytest.raises(KeyError):
        get_tool_command("nmap")


def test_search_path_prepends_extra(monkeypatch):
    monkeypatch.setenv("PATH", "/usr/bin")
    assert search_path(["/sbin", "/usr/sbin"]).split(":") == ["/sbin", "/usr/sbin", "/usr/bin"]


def test_find_binary_in_extra_path(tmp_path, monkeypatch):
    monkeypatch.setenv("PATH", "")
    binary = tmp_path / "lsmod"
    binary.write_text("#!/bin/sh\n")
    binary.chmod(0o755)
    assert find_binary("lsmod", [str(tmp_path)]) == str(binary)
