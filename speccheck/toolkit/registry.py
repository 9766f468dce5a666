"""Catalogue of the system tools speccheck shells out to."""
import logging
import os
import shutil
from typing import Dict, Iterable, Optional

logger = logging.getLogger(__name__)


# Each tool is defined as a dictionary with:
# - label: Human-readable description (shown in debug logs)
# - cmd: Base command-line arguments as a list
# - package: RPM package that ships the binary (used for install hints)
# - required: If True, the run aborts when the binary is missing

TOOLS: Dict[str, Dict] = {
    "rpm": {
        "label": "RPM package manager",
        "cmd": ["rpm"],
        "package": "rpm",
        "required": True,
    },
    "dmesg": {
        "label": "Kernel ring buffer reader",
        "cmd": ["dmesg"],
        "package": "util-linux",
        "required": False,
    },
    "lsmod": {
        "label": "Loaded kernel module lister",
        "cmd": ["lsmod"],
        "package": "kmod",
        "required": False,
    },
    "modinfo": {
        "label": "Kernel module metadata",
        "cmd": ["modinfo"],
        "package": "kmod",
        "required": False,
    },
    "virt-what": {
        "label": "Virtualization detection",
        "cmd": ["virt-what"],
        "package": "virt-what",
        "required": False,
    },
}


def search_path(extra_paths: Iterable[str] = ()) -> str:
    """PATH string with ``extra_paths`` prepended."""
    parts = [p for p in extra_paths if p]
    current = os.environ.get("PATH", os.defpath)
    if current:
        parts.append(current)
    return os.pathsep.join(parts)


def find_binary(name: str, extra_paths: Iterable[str] = ()) -> Optional[str]:
    """Resolve a tool name to an absolute path, or None when not installed."""
    tool = TOOLS.get(name, {})
    binary = tool.get("cmd", [name])[0]
    found = shutil.which(binary, path=search_path(extra_paths))
    if not found:
        logger.debug("Binary %r (%s) not found", binary, tool.get("label", name))
    return found


def get_tool_command(name: str, *args: str) -> list:
    """Build the argv for a registered tool."""
    tool = TOOLS.get(name)
    if tool is None:
        raise KeyError(f"Unknown tool: {name}")
    return list(tool["cmd"]) + list(args)
