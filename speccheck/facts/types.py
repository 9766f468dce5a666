"""Tri-state fact values."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class FactState(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class Fact(Generic[T]):
    """
    One probed signal.

    ``ABSENT`` means the source answered and the signal is not there (e.g. no
    ``spectre_v2=`` parameter on the command line). ``UNAVAILABLE`` means the
    source itself could not be consulted (file missing, tool not installed,
    command timed out). The two are never collapsed into a default value.
    """

    state: FactState
    value: Optional[T] = None
    reason: Optional[str] = None

    @classmethod
    def present(cls, value: T) -> "Fact[T]":
        return cls(FactState.PRESENT, value)

    @classmethod
    def absent(cls) -> "Fact[T]":
        return cls(FactState.ABSENT)

    @classmethod
    def unavailable(cls, reason: Optional[str] = None) -> "Fact[T]":
        return cls(FactState.UNAVAILABLE, reason=reason)

    @property
    def is_present(self) -> bool:
        return self.state is FactState.PRESENT

    @property
    def is_absent(self) -> bool:
        return self.state is FactState.ABSENT

    @property
    def is_unavailable(self) -> bool:
        return self.state is FactState.UNAVAILABLE

    def get(self, default: Optional[T] = None) -> Optional[T]:
        return self.value if self.is_present else default

    def describe(self) -> str:
        if self.is_present:
            return repr(self.value)
        if self.is_unavailable and self.reason:
            return f"<unavailable: {self.reason}>"
        return f"<{self.state.value}>"
