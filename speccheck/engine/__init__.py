"""Evidence reconciliation: facts in, verdicts and explanations out."""
from speccheck.engine.annotator import annotate
from speccheck.engine.models import (
    Annotations,
    Caveat,
    CaveatCode,
    EdgeCase,
    EvidenceSource,
    Outcome,
    Resolution,
    Verdict,
    VerdictSet,
    VulnerabilityId,
)
from speccheck.engine.reconciler import reconcile

__all__ = [
    "Annotations",
    "Caveat",
    "CaveatCode",
    "EdgeCase",
    "EvidenceSource",
    "Outcome",
    "Resolution",
    "Verdict",
    "VerdictSet",
    "VulnerabilityId",
    "annotate",
    "reconcile",
]
