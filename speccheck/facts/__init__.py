"""System facts: typed, tri-state, collected once per run."""
from speccheck.facts.builder import build_snapshot
from speccheck.facts.snapshot import FactSnapshot, FeatureAnnouncement, Vendor
from speccheck.facts.sources import FactSources
from speccheck.facts.types import Fact, FactState

__all__ = [
    "Fact",
    "FactSnapshot",
    "FactSources",
    "FactState",
    "FeatureAnnouncement",
    "Vendor",
    "build_snapshot",
]
