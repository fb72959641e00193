"""Diagnostics collected during a generation run.

Recoverable conditions (an unknown format, a construct degraded to an
opaque type) never raise: they travel next to the value they concern as an
``Outcome`` and are concatenated up the call chain into a
``DiagnosticsReport``. The report decides whether the run failed.
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import StrEnum
from typing import Generic, TypeVar

from reefgen.exceptions import CodeGenerationError

T = TypeVar('T')

__all__ = [
    'Severity',
    'DiagnosticKind',
    'Diagnostic',
    'Outcome',
    'DiagnosticsReport',
]


class Severity(StrEnum):
    WARNING = 'warning'
    ERROR = 'error'


class DiagnosticKind(StrEnum):
    UNRESOLVED = 'unresolved'
    COMPOSITION_CONFLICT = 'composition-conflict'
    NAME_COLLISION = 'name-collision'
    UNSUPPORTED_CONSTRUCT = 'unsupported-construct'
    UNKNOWN_FORMAT = 'unknown-format'
    SERIALIZATION_STRATEGY_UNRESOLVABLE = 'serialization-strategy-unresolvable'
    REQUEST_BODY_NOT_EXPECTED = 'request-body-not-expected'
    UNSUPPORTED_MEDIA_TYPE = 'unsupported-media-type'
    INVALID_DOCUMENT = 'invalid-document'


@dataclass(frozen=True)
class Diagnostic:
    """A single warning or error, located by JSON pointer in the source document."""

    severity: Severity
    kind: DiagnosticKind
    message: str
    pointer: str = ''

    @classmethod
    def warning(cls, kind: DiagnosticKind, message: str, pointer: str = '') -> 'Diagnostic':
        return cls(Severity.WARNING, kind, message, pointer)

    @classmethod
    def error(cls, kind: DiagnosticKind, message: str, pointer: str = '') -> 'Diagnostic':
        return cls(Severity.ERROR, kind, message, pointer)

    @classmethod
    def from_exception(
        cls, kind: DiagnosticKind, error: CodeGenerationError | Exception, pointer: str = ''
    ) -> 'Diagnostic':
        message = getattr(error, 'message', str(error))
        pointer = pointer or getattr(error, 'pointer', None) or ''
        # The pointer is reported separately
        suffix = f' (at {pointer})'
        if pointer and message.endswith(suffix):
            message = message[: -len(suffix)]
        return cls(Severity.ERROR, kind, message, pointer)

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    def __str__(self) -> str:
        location = f' at {self.pointer}' if self.pointer else ''
        return f'{self.severity}[{self.kind}]{location}: {self.message}'


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """A value together with the non-fatal diagnostics produced while computing it."""

    value: T
    diagnostics: tuple[Diagnostic, ...] = ()

    def with_diagnostics(self, diagnostics: Iterable[Diagnostic]) -> 'Outcome[T]':
        return Outcome(self.value, self.diagnostics + tuple(diagnostics))

    @property
    def has_errors(self) -> bool:
        return any(d.is_error for d in self.diagnostics)


class DiagnosticsReport:
    """Ordered, duplicate-free collection of diagnostics for one run.

    The same condition is often reached through several paths (a shared
    component referenced from many operations); it is recorded once, at the
    position where it was first reported.
    """

    def __init__(self, diagnostics: Iterable[Diagnostic] = ()):
        self._items: list[Diagnostic] = []
        self._seen: set[Diagnostic] = set()
        self.extend(diagnostics)

    def add(self, diagnostic: Diagnostic) -> None:
        if diagnostic not in self._seen:
            self._seen.add(diagnostic)
            self._items.append(diagnostic)

    def extend(self, diagnostics: Iterable[Diagnostic]) -> None:
        for diagnostic in diagnostics:
            self.add(diagnostic)

    def errors(self) -> list[Diagnostic]:
        return [d for d in self._items if d.is_error]

    def warnings(self) -> list[Diagnostic]:
        return [d for d in self._items if not d.is_error]

    def of_kind(self, kind: DiagnosticKind) -> list[Diagnostic]:
        return [d for d in self._items if d.kind is kind]

    @property
    def failed(self) -> bool:
        return any(d.is_error for d in self._items)

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DiagnosticsReport):
            return NotImplemented
        return self._items == other._items

    def __repr__(self) -> str:
        return f'DiagnosticsReport({self._items!r})'
