"""
speccheck command line.

Usage:
    speccheck [-n | --no-colors] [-d | --debug] [--json]
    python -m speccheck

Exit status is the result code (2 * spectre_v1 + 4 * spectre_v2 +
8 * meltdown, each 1 when vulnerable), or 1 when the run cannot start.
"""
from __future__ import annotations

import argparse
import logging
import os
import sys
from dataclasses import replace
from typing import Callable, List, Optional

from colorama import just_fix_windows_console

from speccheck import __version__
from speccheck.base.config import SpeccheckConfig, get_config, setup_logging
from speccheck.base.errors import ErrorCode, SpeccheckError
from speccheck.engine.annotator import annotate
from speccheck.engine.reconciler import reconcile
from speccheck.facts.builder import build_snapshot
from speccheck.facts.modules import ModuleSafetyInspector
from speccheck.facts.parsing import is_supported_kernel, parse_rhel
from speccheck.facts.snapshot import FactSnapshot, Vendor
from speccheck.facts.sources import FactSources
from speccheck.reporting.document import build_report, render_json
from speccheck.reporting.text import TextRenderer
from speccheck.toolkit.diagnostics import require_tools
from speccheck.toolkit.runner import ToolRunner, make_runner

logger = logging.getLogger(__name__)


class _UsageParser(argparse.ArgumentParser):
    # Any usage problem, --help included, exits 1
    def error(self, message):
        self.print_usage(sys.stdout)
        self.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = _UsageParser(
        prog="speccheck",
        description="Detect Spectre v1/v2 and Meltdown mitigation status on RHEL systems.",
        add_help=False,
    )
    parser.add_argument("-n", "--no-colors", action="store_true", help="Disable colored output")
    parser.add_argument("-d", "--debug", action="store_true", help="Print every collected fact and derived signal")
    parser.add_argument("--json", action="store_true", help="Print a JSON report instead of text")
    parser.add_argument("-h", "--help", action="store_true", help="Show this help and exit")
    return parser


def check_privileges(geteuid: Callable[[], int]) -> None:
    if geteuid() != 0:
        raise SpeccheckError(
            ErrorCode.AUTH_PRIVILEGES_REQUIRED,
            "This script must run with elevated privileges (e.g. as root)",
        )


def check_kernel(release: str) -> None:
    if not is_supported_kernel(release):
        raise SpeccheckError(
            ErrorCode.PLATFORM_KERNEL_UNSUPPORTED,
            "This script is meant to be used only on RHEL 5-8.",
            details={"kernel_release": release},
        )


def check_platform(snapshot: FactSnapshot) -> None:
    """Fallback detection without status files only covers Intel/AMD."""
    if snapshot.status_files_available:
        return
    if snapshot.cpu.vendor is Vendor.POWER:
        raise SpeccheckError(
            ErrorCode.PLATFORM_STATUS_FILES_REQUIRED,
            "This system's kernel does not provide detailed vulnerability information.\n"
            "Fallback detection is supported only on Intel/AMD x86/x86_64 for now.\n"
            "To use this script on IBM POWER update your kernel.",
        )
    if snapshot.cpu.vendor is None:
        raise SpeccheckError(
            ErrorCode.PLATFORM_ARCH_UNSUPPORTED,
            "This system architecture is not supported by the script at the moment.\n"
            "Presently, only Intel/AMD x86/x86_64 and IBM POWER are supported.",
        )


def main(
    argv: Optional[List[str]] = None,
    config: Optional[SpeccheckConfig] = None,
    runner: Optional[ToolRunner] = None,
    inspector: Optional[ModuleSafetyInspector] = None,
    geteuid: Callable[[], int] = os.geteuid,
    uname: Callable[[], os.uname_result] = os.uname,
) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else 1
    if args.help:
        parser.print_help(sys.stdout)
        return 1

    try:
        cfg = config or get_config()
    except SpeccheckError as e:
        print(e.message, file=sys.stderr)
        return e.exit_status
    cfg = replace(cfg, debug=cfg.debug or args.debug, color=cfg.color and not args.no_colors and not args.json)
    setup_logging(cfg)

    if cfg.color:
        just_fix_windows_console()
    renderer = TextRenderer(color=cfg.color)
    try:
        return _run(args, cfg, renderer, runner, inspector, geteuid, uname)
    except SpeccheckError as e:
        logger.debug("Run aborted: %s", e)
        if args.json:
            print(e.to_json())
        else:
            print(e.message)
            print()
        return e.exit_status


def _run(args, cfg, renderer, runner, inspector, geteuid, uname) -> int:
    check_privileges(geteuid)
    if not args.json:
        print(renderer.disclaimer(__version__))

    release = uname().release
    if parse_rhel(release) == 5:
        cfg = cfg.with_search_paths(cfg.tools.legacy_search_paths)
    require_tools(list(cfg.tools.required_tools), cfg.tools.extra_search_paths)
    check_kernel(release)

    if runner is None:
        runner = make_runner(cfg.tools.timeout_seconds, cfg.tools.extra_search_paths)
    sources = FactSources(paths=cfg.paths, runner=runner, inspector=inspector, uname=uname)
    snapshot = build_snapshot(sources)
    verdicts = reconcile(snapshot)

    if cfg.debug and not args.json:
        print(renderer.debug_table(snapshot, verdicts))
        print()
    if not args.json:
        print(renderer.header(snapshot))

    check_platform(snapshot)
    annotations = annotate(snapshot, verdicts)

    if args.json:
        print(render_json(build_report(snapshot, verdicts, annotations, __version__)))
    else:
        print(renderer.report(snapshot, verdicts, annotations))
    return verdicts.result_code


if __name__ == "__main__":
    sys.exit(main())
