"""Script error types.

Raised when an embedded script cannot be parsed or evaluated. These are the
only failures the flow engine lets propagate; every traversal condition
(unresolved ids, exhausted branches) is reported as data instead.
"""

from __future__ import annotations

from dataclasses import dataclass


class ScriptError(Exception):
    """Base class for script parse and evaluation failures."""


@dataclass
class ScriptSyntaxError(ScriptError):
    """Raised when a script is not valid for the expression grammar.

    Attributes:
        script: The offending script source.
        detail: Parser message describing the failure.
        line: 1-based line of the failure, if known.
        column: 1-based column of the failure, if known.
    """

    script: str
    detail: str
    line: int | None = None
    column: int | None = None

    def __post_init__(self) -> None:
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        where = ""
        if self.line is not None and self.column is not None:
            where = f" at line {self.line}, column {self.column}"
        return f"Invalid script{where}: {self.script!r} ({self.detail})"


@dataclass
class ScriptEvaluationError(ScriptError):
    """Raised when a well-formed script fails while running.

    Typical causes are references to unknown variables, calls to functions
    that were never registered, or assignments inside condition scripts.

    Attributes:
        script: The script being evaluated.
        detail: What went wrong.
    """

    script: str
    detail: str

    def __post_init__(self) -> None:
        super().__init__(f"Script {self.script!r} failed: {self.detail}")
