"""
Recognized spectre_v2 status phrasings.

Some RHEL 5/6 kernels report "Full retpoline" even when IBPB is missing,
and older releases used "Vulnerable: Retpoline on Skylake+", which in
practice means "Mitigation: Full retpoline" once IBPB and unsafe modules are
taken into account. Only these two phrasings get special handling; anything
else is UNRECOGNIZED and trusted as written.

Message priorities reported by the kernel, strongest first:
- "Vulnerable"
- "Vulnerable: Minimal ASM retpoline"
- "Vulnerable: Retpoline without IBPB"
- "Vulnerable: Retpoline on Skylake+"  (older releases only)
- "Vulnerable: Retpoline with unsafe module(s)"
- "Mitigation: ..."
"""
from __future__ import annotations

from enum import Enum

from speccheck.facts.types import Fact


class StatusPhrasing(str, Enum):
    FULL_RETPOLINE = "full_retpoline"
    RETPOLINE_ON_SKYLAKE = "retpoline_on_skylake"
    UNRECOGNIZED = "unrecognized"


# Checked in order; the Skylake phrasing takes precedence
PHRASINGS = (
    ("Retpoline on Skylake", StatusPhrasing.RETPOLINE_ON_SKYLAKE),
    ("Full retpoline", StatusPhrasing.FULL_RETPOLINE),
)

UNSAFE_MODULE_PHRASE = "unsafe module"


def classify_spectre_v2_status(status: Fact[str]) -> StatusPhrasing:
    if not status.is_present:
        return StatusPhrasing.UNRECOGNIZED
    for phrase, phrasing in PHRASINGS:
        if phrase in status.value:
            return phrasing
    return StatusPhrasing.UNRECOGNIZED


def reports_unsafe_modules(status: Fact[str]) -> bool:
    return status.is_present and UNSAFE_MODULE_PHRASE in status.value
