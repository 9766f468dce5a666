"""Machine-readable report (``--json``)."""
from __future__ import annotations

from speccheck.engine.models import Annotations, Report, SystemSummary, VerdictSet
from speccheck.facts.snapshot import FactSnapshot
from speccheck.reporting.text import virtualization_label


def system_summary(snapshot: FactSnapshot) -> SystemSummary:
    cpu = snapshot.cpu
    env = snapshot.env
    return SystemSummary(
        vendor=cpu.vendor.value if cpu.vendor else None,
        cpu=cpu.model_name.get(),
        cpu_model=cpu.model_number.get(),
        kernel_release=env.kernel_release,
        architecture=env.architecture.get(),
        virtualization=virtualization_label(env.virtualization),
    )


def build_report(snapshot: FactSnapshot, verdicts: VerdictSet, annotations: Annotations, version: str) -> Report:
    return Report(
        version=version,
        system=system_summary(snapshot),
        verdicts=verdicts,
        annotations=annotations,
        result_code=verdicts.result_code,
    )


def render_json(report: Report) -> str:
    return report.model_dump_json(indent=2)
