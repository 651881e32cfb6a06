"""Exception hierarchy and diagnostics for tracetool commands.

Four error kinds cover every failure a batch command can meet:

- InputError: malformed configuration, duration grammar or forwarded predicate.
- DataError: one malformed record. Recovered locally: the record is skipped.
- ComputeError: a degenerate computation for one group (e.g. zero variance).
  Recovered locally: the group is excluded from the output.
- StoreError: the event store is missing, lacks a table/column, or fails on I/O.

InputError and StoreError abort the command. DataError and ComputeError are
turned into Diagnostic values that are logged and returned with the results.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Hashable, Mapping, Optional

ErrorDetails = Optional[Mapping[str, Any]]


class TracetoolError(Exception):
    """Base exception carrying optional structured details."""

    def __init__(self, message: str, *, details: ErrorDetails = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})

    def __str__(self) -> str:
        return self.message


class InputError(TracetoolError):
    """Raised when configuration or user supplied parameters are invalid."""


class DataError(TracetoolError):
    """Raised for a single malformed record (e.g. a negative duration)."""


class ComputeError(TracetoolError):
    """Raised when a computation is undefined for its input (e.g. zero variance)."""


class StoreError(TracetoolError):
    """Raised when the event store cannot be opened, queried or written."""


@dataclass(frozen=True)
class Diagnostic:
    """A recovered DataError or ComputeError, reported alongside results.

    Attributes:
        kind: Error class name ("DataError" or "ComputeError").
        message: Human readable description.
        key: Identity of the skipped record (timestamp, ordinal) or excluded group id.
    """
    kind: str
    message: str
    key: Hashable = None

    @classmethod
    def from_error(cls, error: TracetoolError, key: Hashable = None) -> "Diagnostic":
        return cls(kind=error.__class__.__name__, message=str(error), key=key)


__all__ = [
    "ComputeError",
    "DataError",
    "Diagnostic",
    "InputError",
    "StoreError",
    "TracetoolError",
]
