# fhirstruct/schemas/terminology.py
"""Pluggable terminology lookups for non-required bindings.

The validator only needs one capability from a terminology service:
"is this code known in this code system?".  Anything offering
``is_known_code(system, code)`` can be plugged in; live value-set
expansion against a remote server is left to callers.

Key components:
    - TerminologyService: the structural protocol the validator depends on.
    - InMemoryTerminologyService: lookup-table implementation, seeded by
      hand or from the code tables of registered bindings.
"""

from __future__ import annotations

from typing import Iterable, Optional, Protocol, runtime_checkable

from .model import CodeBinding

__all__ = ["TerminologyService", "InMemoryTerminologyService"]


@runtime_checkable
class TerminologyService(Protocol):
    def is_known_code(self, system: Optional[str], code: str) -> bool:
        ...


class InMemoryTerminologyService:
    """Local lookup table of codes per code system.

    Codes are case-sensitive, as in the standard.  A lookup without a
    system matches a code listed under any system.
    """

    def __init__(self, codes: Optional[dict[str, Iterable[str]]] = None) -> None:
        self._codes: dict[str, set[str]] = {}
        for system, values in (codes or {}).items():
            self.add(system, values)

    def add(self, system: str, codes: Iterable[str]) -> "InMemoryTerminologyService":
        """Register *codes* under *system*; repeated calls accumulate."""
        self._codes.setdefault(system, set()).update(codes)
        return self

    def add_binding(self, binding: CodeBinding) -> "InMemoryTerminologyService":
        """Register every code of a binding's local tables."""
        for system, values in binding.codes.items():
            self.add(system, values)
        return self

    @property
    def systems(self) -> list[str]:
        return sorted(self._codes)

    def is_known_code(self, system: Optional[str], code: str) -> bool:
        """Return True if *code* is known in *system*.

        Parameters
        ----------
        system:
            Code-system URI, or ``None`` when the value carries no system
            (a bare ``code`` element).
        code:
            The literal code, compared case-sensitively.
        """
        if system is None:
            return any(code in values for values in self._codes.values())
        return code in self._codes.get(system, ())
