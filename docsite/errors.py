from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence, Union


class BuildError(Exception):
    """Base class for every failure that aborts a build."""

    def diagnostics(self) -> list[str]:
        return [str(self)]


class ConfigError(BuildError):
    pass


class ParseError(BuildError):
    MALFORMED_DIRECTIVE = "malformed directive"
    UNKNOWN_DIRECTIVE = "unknown directive"
    UNTERMINATED_CODE_BLOCK = "unterminated code block"
    UNKNOWN_ROLE = "unknown role"
    MALFORMED_HEADING = "malformed heading"
    MISSING_INCLUDE = "missing include"
    UNREADABLE_SOURCE = "unreadable source"

    def __init__(self, kind: str, path: Union[str, Path], line: int, message: str) -> None:
        self.kind = kind
        self.path = str(path)
        self.line = line
        self.message = message
        super().__init__(f"{self.path}:{line}: {kind}: {message}")


class ReferenceProblem(BuildError):
    """A single reference that cannot be resolved to exactly one target."""


class UnresolvedReferenceError(ReferenceProblem):
    def __init__(self, path: Union[str, Path], line: int, target: str, kind: str = "ref") -> None:
        self.path = str(path)
        self.line = line
        self.target = target
        self.kind = kind
        super().__init__(f"{self.path}:{line}: unresolved {kind} reference: {target!r}")


class AmbiguousReferenceError(ReferenceProblem):
    def __init__(self, label: str, first: tuple[str, int], second: tuple[str, int]) -> None:
        self.label = label
        self.first = first
        self.second = second
        self.sources = (first[0], second[0])
        super().__init__(
            f"{second[0]}:{second[1]}: duplicate label {label!r}, "
            f"also defined at {first[0]}:{first[1]}"
        )


class ResolutionError(BuildError):
    """Every unresolved or ambiguous reference found in the corpus."""

    def __init__(self, errors: Sequence[ReferenceProblem]) -> None:
        self.errors = list(errors)
        noun = "problem" if len(self.errors) == 1 else "problems"
        super().__init__(f"{len(self.errors)} reference {noun} found")

    def diagnostics(self) -> list[str]:
        return [str(error) for error in self.errors]

    def of_type(self, cls: type) -> list[ReferenceProblem]:
        return [error for error in self.errors if isinstance(error, cls)]


class CyclicNavigationError(BuildError):
    def __init__(self, cycle: Sequence[str], path: Optional[str] = None) -> None:
        self.cycle = list(cycle)
        self.path = path
        where = f"{path}: " if path else ""
        super().__init__(f"{where}toctree cycle: {' -> '.join(self.cycle)}")
