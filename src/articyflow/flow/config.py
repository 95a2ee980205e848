"""Iteration configuration and flow settings loading."""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ruamel.yaml import YAML

if TYPE_CHECKING:
    from articyflow.flow.state import VisitSet
    from articyflow.nodes import FlowNode

# Default configuration values
DEFAULT_STOP_AT_TYPES = ["DialogueFragment"]
SETTINGS_FILENAME = "flow.yaml"
STOP_AT_ENV = "ARTICYFLOW_STOP_AT"


class CustomStopType(Enum):
    """How a custom stop handler wants a matched stop node treated."""

    NORMAL_STOP = "NORMAL_STOP"  # Finish the branch here
    STOP_AND_CONTINUE = "STOP_AND_CONTINUE"  # Finish it, and also keep collecting past it
    CONTINUE = "CONTINUE"  # Ignore the match


CustomStopHandler = Callable[["FlowNode", "VisitSet"], "CustomStopType | None"]


@dataclass
class IterationConfig:
    """Configuration passed to every advanced iteration call.

    Attributes:
        stop_at_types: Node types that end a branch.
        custom_stop_handler: Optional callback deciding how a node matching
            ``stop_at_types`` is handled. Returning None means NORMAL_STOP.
    """

    stop_at_types: list[str] = field(default_factory=lambda: list(DEFAULT_STOP_AT_TYPES))
    custom_stop_handler: CustomStopHandler | None = None

    def should_stop_at(self, node: FlowNode) -> bool:
        """True if *node* is one of the stop types."""
        return any(node.is_type(type_name) for type_name in self.stop_at_types)


@dataclass
class FlowSettings:
    """Settings for running a flow, usually read from ``flow.yaml``.

    Resolution order for the stop set:
    1. Environment variable ARTICYFLOW_STOP_AT (comma separated); callers
       with an explicit stop set, such as the CLI's --stop-at, bypass this
    2. ``stop_at_types`` in the settings file
    3. DEFAULT_STOP_AT_TYPES

    Attributes:
        export: Path to the exported JSON, relative paths resolved against
            the settings file's directory.
        start: Id of the node to start from.
        stop_at_types: Node types that end a branch.
    """

    export: Path | None = None
    start: str | None = None
    stop_at_types: list[str] = field(default_factory=lambda: list(DEFAULT_STOP_AT_TYPES))

    def effective_stop_at_types(self) -> list[str]:
        override = os.getenv(STOP_AT_ENV)
        if override:
            return [part.strip() for part in override.split(",") if part.strip()]
        return list(self.stop_at_types)

    def iteration_config(
        self, custom_stop_handler: CustomStopHandler | None = None
    ) -> IterationConfig:
        return IterationConfig(
            stop_at_types=self.effective_stop_at_types(),
            custom_stop_handler=custom_stop_handler,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any], base_dir: Path | None = None) -> FlowSettings:
        """Create settings from a dictionary.

        Args:
            data: Mapping with optional ``export``, ``start`` and
                ``stop_at_types`` keys.
            base_dir: Directory relative export paths are resolved against.

        Returns:
            FlowSettings instance.
        """
        export = data.get("export")
        export_path: Path | None = None
        if export:
            export_path = Path(str(export))
            if base_dir is not None and not export_path.is_absolute():
                export_path = base_dir / export_path

        stop_at = data.get("stop_at_types", list(DEFAULT_STOP_AT_TYPES))
        if isinstance(stop_at, str):
            stop_at = [stop_at]

        start = data.get("start")
        return cls(
            export=export_path,
            start=str(start) if start is not None else None,
            stop_at_types=[str(t) for t in stop_at],
        )


class FlowConfigError(Exception):
    """Raised when flow settings cannot be loaded."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to load flow settings at {path}: {reason}")


def load_flow_settings(path: Path) -> FlowSettings:
    """Load flow settings from a YAML file.

    Args:
        path: Settings file, or a directory containing ``flow.yaml``.

    Returns:
        FlowSettings instance.

    Raises:
        FlowConfigError: If the file is missing, empty or malformed.
    """
    config_path = path / SETTINGS_FILENAME if path.is_dir() else path

    if not config_path.exists():
        raise FlowConfigError(config_path, "File not found")

    yaml = YAML(typ="safe")
    try:
        with config_path.open("r", encoding="utf-8") as f:
            data = yaml.load(f)

        if data is None:
            raise FlowConfigError(config_path, "Empty file")
        if not isinstance(data, dict):
            raise FlowConfigError(config_path, "Expected a mapping at the top level")

        return FlowSettings.from_dict(dict(data), base_dir=config_path.parent)
    except Exception as e:
        if isinstance(e, FlowConfigError):
            raise
        raise FlowConfigError(config_path, str(e)) from e
