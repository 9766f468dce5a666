# speccheck/base/config.py
# Runtime configuration: probe locations, tool policy and logging

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import List, Optional, Tuple

from speccheck.base.errors import ErrorCode, SpeccheckError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PathsConfig:
    vulnerabilities_dir: Path = Path("/sys/devices/system/cpu/vulnerabilities")
    debug_x86_dir: Path = Path("/sys/kernel/debug/x86")
    debug_powerpc_dir: Path = Path("/sys/kernel/debug/powerpc")
    cmdline_path: Path = Path("/proc/cmdline")
    dmesg_log_path: Path = Path("/var/log/dmesg")
    cpuinfo_path: Path = Path("/proc/cpuinfo")
    mounts_path: Path = Path("/proc/mounts")


@dataclass(frozen=True)
class ToolConfig:
    timeout_seconds: float = 10.0
    required_tools: tuple = ("rpm",)
    # RHEL 5 keeps lsmod/modinfo outside the default PATH of non-login shells
    legacy_search_paths: tuple = ("/sbin", "/usr/sbin")
    extra_search_paths: tuple = ()


@dataclass(frozen=True)
class LogConfig:
    level: str = "WARNING"
    format: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    file_path: Optional[Path] = None
    max_file_size_mb: int = 10
    backup_count: int = 3


@dataclass
class SpeccheckConfig:
    paths: PathsConfig = field(default_factory=PathsConfig)
    tools: ToolConfig = field(default_factory=ToolConfig)
    log: LogConfig = field(default_factory=LogConfig)
    debug: bool = False
    color: bool = True

    def with_search_paths(self, extra: Tuple[str, ...]) -> "SpeccheckConfig":
        tools = replace(self.tools, extra_search_paths=tuple(self.tools.extra_search_paths) + tuple(extra))
        return replace(self, tools=tools)

    @classmethod
    def from_env(cls) -> "SpeccheckConfig":
        defaults = PathsConfig()
        paths = PathsConfig(
            vulnerabilities_dir=Path(os.getenv("SPECCHECK_VULNS_PATH", str(defaults.vulnerabilities_dir))),
            debug_x86_dir=Path(os.getenv("SPECCHECK_DEBUG_X86_PATH", str(defaults.debug_x86_dir))),
            debug_powerpc_dir=Path(os.getenv("SPECCHECK_DEBUG_POWERPC_PATH", str(defaults.debug_powerpc_dir))),
            cmdline_path=Path(os.getenv("SPECCHECK_CMDLINE_PATH", str(defaults.cmdline_path))),
            dmesg_log_path=Path(os.getenv("SPECCHECK_DMESG_LOG_PATH", str(defaults.dmesg_log_path))),
            cpuinfo_path=Path(os.getenv("SPECCHECK_CPUINFO_PATH", str(defaults.cpuinfo_path))),
            mounts_path=Path(os.getenv("SPECCHECK_MOUNTS_PATH", str(defaults.mounts_path))),
        )

        raw_timeout = os.getenv("SPECCHECK_TOOL_TIMEOUT", "10")
        try:
            timeout = float(raw_timeout)
        except ValueError:
            raise SpeccheckError(
                ErrorCode.CONFIG_INVALID,
                f"SPECCHECK_TOOL_TIMEOUT must be a number, got {raw_timeout!r}",
                details={"variable": "SPECCHECK_TOOL_TIMEOUT"},
            )
        if timeout <= 0:
            raise SpeccheckError(
                ErrorCode.CONFIG_INVALID,
                "SPECCHECK_TOOL_TIMEOUT must be positive",
                details={"variable": "SPECCHECK_TOOL_TIMEOUT", "value": raw_timeout},
            )
        tools = ToolConfig(timeout_seconds=timeout)

        log_file = os.getenv("SPECCHECK_LOG_FILE")
        log = LogConfig(
            level=os.getenv("SPECCHECK_LOG_LEVEL", "WARNING"),
            file_path=Path(log_file) if log_file else None,
        )

        return cls(
            paths=paths,
            tools=tools,
            log=log,
            debug=os.getenv("SPECCHECK_DEBUG", "false").lower() == "true",
        )


_config: Optional[SpeccheckConfig] = None


def get_config() -> SpeccheckConfig:
    global _config
    if _config is None:
        _config = SpeccheckConfig.from_env()
    return _config


def set_config(config: Optional[SpeccheckConfig]) -> None:
    global _config
    _config = config


def setup_logging(config: Optional[SpeccheckConfig] = None) -> None:
    cfg = config or get_config()

    # Reports go to stdout; keep log records on stderr so they never mix
    handlers: List[logging.Handler] = [logging.StreamHandler()]

    if cfg.log.file_path is not None:
        from logging.handlers import RotatingFileHandler
        file_handler = RotatingFileHandler(
            cfg.log.file_path,
            maxBytes=cfg.log.max_file_size_mb * 1024 * 1024,
            backupCount=cfg.log.backup_count,
        )
        handlers.append(file_handler)

    level = "DEBUG" if cfg.debug else cfg.log.level
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format=cfg.log.format,
        handlers=handlers,
        force=True,
    )
