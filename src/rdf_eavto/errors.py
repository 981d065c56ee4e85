"""
Exceptions raised by the EAVTO store.

Not-found is never an error: queries for unknown entities return an empty
ResultSet.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class EAVTOError(Exception):
    """Base class for all store errors."""


class StorageError(EAVTOError):
    """The embedded SQL engine failed. The engine error is kept as ``__cause__``."""


class NotInitializedError(EAVTOError):
    """The store was used before ``open()`` or after ``close()``."""

    def __init__(self, message: str = "Database not initialized"):
        super().__init__(message)


class ImportFailedError(EAVTOError):
    """An RDF file could not be read or parsed."""


@dataclass(frozen=True)
class Violation:
    """One row that failed literal parsing or typed-column coherence."""
    subject: str
    predicate: str
    datatype: Optional[str]
    value: Optional[str]
    reason: str

    def __str__(self) -> str:
        return (
            f"{self.subject} {self.predicate} "
            f"(datatype={self.datatype}, value={self.value!r}): {self.reason}"
        )


class ValidationError(EAVTOError, ValueError):
    """
    A batch contained literals that do not fit their datatype.

    The whole batch is rolled back. ``violations`` lists every offending row
    so the caller can repair the input.
    """

    MAX_LISTED = 5

    def __init__(self, violations: list[Violation]):
        self.violations = list(violations)
        super().__init__(self._format())

    def _format(self) -> str:
        lines = [f"{len(self.violations)} invalid literal(s) in batch:"]
        for violation in self.violations[: self.MAX_LISTED]:
            lines.append(f"  {violation}")
        hidden = len(self.violations) - self.MAX_LISTED
        if hidden > 0:
            lines.append(f"  ... and {hidden} more")
        return "\n".join(lines)
