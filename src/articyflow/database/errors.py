"""Export loading errors."""

from __future__ import annotations


class ExportLoadError(Exception):
    """Raised when an exported project cannot be loaded."""

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"Failed to load export {source}: {reason}")
