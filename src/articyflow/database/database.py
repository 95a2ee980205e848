"""Flow database: resolves exported object ids to interpretable flow nodes.

The :class:`Database` protocol is all the flow iterator needs: resolve an id
to a node and create a fresh variable store. :class:`FlowDatabase` is the
implementation built from an exported JSON file.
"""

from __future__ import annotations

import json
from functools import cache
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pydantic import ValidationError

from articyflow.database.errors import ExportLoadError
from articyflow.database.models import NULL_ID, ArticyData, FlowObjectProperties, ModelData
from articyflow.nodes import NODE_KINDS, FlowNode, build_flow_objects
from articyflow.observability.logging import get_logger
from articyflow.variables import build_variable_store

if TYPE_CHECKING:
    from pathlib import Path

    from articyflow.script.registry import ScriptRegistry
    from articyflow.variables import VariableStore

log = get_logger(__name__)

PIN_TYPES = ("InputPin", "OutputPin")


@runtime_checkable
class Database(Protocol):
    """What the flow iterator consumes from a database."""

    def get_object(self, object_id: str | None, expected: type | None = None) -> Any:
        """Return the object with *object_id*, or None.

        If *expected* is given, objects that are not instances of it resolve
        to None as well.
        """
        ...

    def new_variable_store(self) -> VariableStore:
        """Return a fresh variable store holding every default value."""
        ...


class FlowDatabase:
    """In-memory database built from an exported project.

    Flow objects (and their pins) become :mod:`articyflow.nodes` variants;
    every other model (entities, locations, assets) stays available as raw
    :class:`ModelData` through :meth:`get_model`.

    Attributes:
        data: The validated export.
    """

    def __init__(self, data: ArticyData) -> None:
        self.data = data
        self._classes: dict[str, str] = {
            definition.type: definition.class_
            for definition in data.object_definitions
            if definition.class_ and definition.class_ != definition.type
        }
        self._models: dict[str, ModelData] = {}
        self._objects: dict[str, FlowNode] = {}
        self.type_lineage = cache(self._type_lineage)

        for package in data.packages:
            for model in package.models:
                self._add_model(model)

        log.info(
            "flow_database_loaded",
            project=data.project.name,
            models=len(self._models),
            flow_objects=len(self._objects),
        )

    def __repr__(self) -> str:
        return (
            f"FlowDatabase(project={self.data.project.name!r}, "
            f"models={len(self._models)}, flow_objects={len(self._objects)})"
        )

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> FlowDatabase:
        """Build a database from parsed export JSON.

        Raises:
            ExportLoadError: If the data does not match the export schema.
        """
        try:
            data = ArticyData.model_validate(raw)
        except ValidationError as e:
            raise ExportLoadError(source="<dict>", reason=str(e)) from e
        return cls(data)

    @classmethod
    def from_file(cls, path: Path) -> FlowDatabase:
        """Load an exported JSON file.

        Raises:
            ExportLoadError: If the file is missing, not JSON, or invalid.
        """
        if not path.exists():
            raise ExportLoadError(source=str(path), reason="File not found")
        try:
            with path.open("r", encoding="utf-8") as f:
                raw = json.load(f)
            data = ArticyData.model_validate(raw)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise ExportLoadError(source=str(path), reason=str(e)) from e
        return cls(data)

    def _add_model(self, model: ModelData) -> None:
        object_id = model.object_id
        if object_id is None:
            log.warning("model_without_id", type=model.type)
            return
        self._models[object_id] = model

        base_type = self.flow_class(model.type)
        if base_type is None:
            return

        try:
            properties = FlowObjectProperties.model_validate(model.properties)
        except ValidationError as e:
            raise ExportLoadError(
                source=object_id, reason=f"Invalid {model.type} properties: {e}"
            ) from e

        for obj in build_flow_objects(self, model, properties, base_type):
            self._objects[obj.id] = obj

    # -------------------------------------------------------------------------
    # Types
    # -------------------------------------------------------------------------

    def _type_lineage(self, type_name: str) -> tuple[str, ...]:
        lineage = [type_name]
        current = type_name
        while current in self._classes:
            current = self._classes[current]
            if current in lineage:
                break
            lineage.append(current)
        return tuple(lineage)

    def flow_class(self, type_name: str) -> str | None:
        """Built-in flow class *type_name* derives from, or None."""
        for candidate in self.type_lineage(type_name):
            if candidate in NODE_KINDS:
                return candidate
        return None

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def get_object(self, object_id: str | None, expected: type | None = None) -> Any:
        if not object_id or object_id == NULL_ID:
            return None
        obj = self._objects.get(object_id)
        if obj is None:
            return None
        if expected is not None and not isinstance(obj, expected):
            return None
        return obj

    def get_model(self, object_id: str) -> ModelData | None:
        """Raw exported model for any object id (flow or not)."""
        return self._models.get(object_id)

    def has_object(self, object_id: str) -> bool:
        return object_id in self._objects

    def objects_of_type(self, type_name: str) -> list[FlowNode]:
        """Flow objects that are *type_name* or derive from it."""
        return [obj for obj in self._objects.values() if obj.is_type(type_name)]

    def count_by_type(self) -> dict[str, int]:
        """Number of models per exported type, pins excluded."""
        counts: dict[str, int] = {}
        for model in self._models.values():
            counts[model.type] = counts.get(model.type, 0) + 1
        return dict(sorted(counts.items()))

    # -------------------------------------------------------------------------
    # Variables and scripts
    # -------------------------------------------------------------------------

    def new_variable_store(self) -> VariableStore:
        return build_variable_store(self.data.global_variables)

    def verify_script_methods(self, registry: ScriptRegistry | None = None) -> list[str]:
        """Check every declared script method against a registry.

        Args:
            registry: Registry to check (the default registry if omitted).

        Returns:
            Names of declared methods that are not registered. Each one is
            also logged as an error.
        """
        from articyflow.script.registry import default_registry

        registry = registry if registry is not None else default_registry
        return [
            method.name
            for method in self.data.script_methods
            if not registry.verify_method(method)
        ]
