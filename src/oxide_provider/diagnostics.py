"""Severity-tagged diagnostics accumulated during a single operation.

Any error-severity diagnostic aborts the operation it was raised in; the
engine discards partial state whenever ``has_error()`` is true.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any


class Severity(str, Enum):
    """Diagnostic severity levels."""

    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Diagnostic:
    """A single diagnostic message.

    Attributes:
        severity: Error or warning.
        summary: Short human-readable summary.
        detail: Longer explanation, including verbatim API error text.
        attribute: Attribute the diagnostic refers to, if any.
    """

    severity: Severity
    summary: str
    detail: str = ""
    attribute: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["severity"] = self.severity.value
        return data


class Diagnostics:
    """Ordered collection of diagnostics for one operation."""

    def __init__(self, items: Iterable[Diagnostic] | None = None) -> None:
        self._items: list[Diagnostic] = list(items or [])

    def add_error(self, summary: str, detail: str = "", attribute: str | None = None) -> None:
        self._items.append(Diagnostic(Severity.ERROR, summary, detail, attribute))

    def add_warning(self, summary: str, detail: str = "", attribute: str | None = None) -> None:
        self._items.append(Diagnostic(Severity.WARNING, summary, detail, attribute))

    def extend(self, other: Iterable[Diagnostic]) -> None:
        self._items.extend(other)

    def has_error(self) -> bool:
        return any(d.severity == Severity.ERROR for d in self._items)

    def errors(self) -> list[Diagnostic]:
        return [d for d in self._items if d.severity == Severity.ERROR]

    def warnings(self) -> list[Diagnostic]:
        return [d for d in self._items if d.severity == Severity.WARNING]

    def to_list(self) -> list[dict[str, Any]]:
        return [d.to_dict() for d in self._items]

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def __repr__(self) -> str:
        return f"Diagnostics({self._items!r})"
