"""Pydantic models for the exported flow JSON.

These cover the subset of the articy:draft JSON export the flow engine
needs: packages of object models, object type definitions, global variable
definitions, script method declarations and the project hierarchy. Field
names are snake_case in Python and PascalCase in the export.

Unknown keys are ignored so newer exporter versions keep loading.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_pascal

NULL_ID = "0x0000000000000000"
"""Id the exporter writes for unset references."""


class ExportModel(BaseModel):
    """Base for export models: PascalCase aliases, unknown keys ignored."""

    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True, extra="ignore")


class ProjectData(ExportModel):
    """Root project information."""

    name: str = ""
    detail_name: str = ""
    technical_name: str = ""
    guid: str = ""


class SettingsData(ExportModel):
    """Export settings."""

    localization: str = Field(default="False", alias="set_Localization")
    export_version: str = ""


class ConnectionData(ExportModel):
    """A connection leaving a pin."""

    label: str = ""
    target_pin: str = ""
    target: str = ""


class PinData(ExportModel):
    """Input or output pin of a flow node.

    Input pin text is a condition; output pin text is an instruction.
    """

    id: str
    technical_name: str = ""
    text: str = ""
    owner: str = ""
    connections: list[ConnectionData] = Field(default_factory=list)

    @field_validator("connections", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("text", mode="before")
    @classmethod
    def _none_is_blank(cls, value: Any) -> Any:
        return "" if value is None else value


class FlowObjectProperties(ExportModel):
    """Properties shared by every flow object the engine interprets.

    Which fields are meaningful depends on the object type: ``expression``
    for conditions and instructions, ``target``/``target_pin`` for jumps,
    ``speaker``/``menu_text`` for dialogue fragments.
    """

    id: str
    technical_name: str = ""
    display_name: str = ""
    text: str = ""
    menu_text: str = ""
    speaker: str = ""
    expression: str = ""
    target: str = ""
    target_pin: str = ""
    parent: str = ""
    input_pins: list[PinData] = Field(default_factory=list)
    output_pins: list[PinData] = Field(default_factory=list)

    @field_validator("input_pins", "output_pins", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator(
        "technical_name",
        "display_name",
        "text",
        "menu_text",
        "speaker",
        "expression",
        "target",
        "target_pin",
        "parent",
        mode="before",
    )
    @classmethod
    def _none_is_blank(cls, value: Any) -> Any:
        return "" if value is None else value


class ModelData(ExportModel):
    """One exported object: its type, raw properties and template features."""

    type: str
    properties: dict[str, Any] = Field(default_factory=dict)
    template: dict[str, dict[str, Any]] | None = None
    asset_ref: str | None = None
    asset_category: str | None = None

    @property
    def object_id(self) -> str | None:
        value = self.properties.get("Id")
        return str(value) if value is not None else None


class PackageData(ExportModel):
    """An exported package of models."""

    name: str = ""
    description: str = ""
    is_default_package: bool = False
    models: list[ModelData] = Field(default_factory=list)


class ObjectDefinition(ExportModel):
    """Definition of an exported object type and the class it derives from.

    Enum definitions additionally carry ``values`` and ``display_names``.
    """

    type: str
    class_: str = Field(default="", alias="Class")
    values: dict[str, int] | None = None
    display_names: dict[str, str] | None = None


class HierarchyEntry(ExportModel):
    """Entry of the project hierarchy."""

    id: str
    type: str = ""
    children: list[HierarchyEntry] = Field(default_factory=list)

    @field_validator("children", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class GlobalVariableDef(ExportModel):
    """A global variable and its starting value (exported as text)."""

    variable: str
    type: str = "String"
    value: str = ""
    description: str = ""

    @field_validator("value", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, bool):
            return "True" if value else "False"
        if isinstance(value, int | float):
            return str(value)
        return value


class VariableNamespaceDef(ExportModel):
    """A namespace of global variables."""

    namespace: str
    description: str = ""
    variables: list[GlobalVariableDef] = Field(default_factory=list)


class ScriptMethodDef(ExportModel):
    """A script method the exported scripts call."""

    name: str
    return_type: str = "void"


class ArticyData(ExportModel):
    """Root of an exported JSON file."""

    settings: SettingsData = Field(default_factory=SettingsData)
    project: ProjectData = Field(default_factory=ProjectData)
    packages: list[PackageData] = Field(default_factory=list)
    object_definitions: list[ObjectDefinition] = Field(default_factory=list)
    global_variables: list[VariableNamespaceDef] = Field(default_factory=list)
    hierarchy: HierarchyEntry | None = None
    script_methods: list[ScriptMethodDef] = Field(default_factory=list)
