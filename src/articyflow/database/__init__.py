"""Database package - exported project models and node resolution."""

from articyflow.database.database import Database, FlowDatabase
from articyflow.database.errors import ExportLoadError
from articyflow.database.models import (
    NULL_ID,
    ArticyData,
    ConnectionData,
    FlowObjectProperties,
    GlobalVariableDef,
    HierarchyEntry,
    ModelData,
    ObjectDefinition,
    PackageData,
    PinData,
    ProjectData,
    ScriptMethodDef,
    VariableNamespaceDef,
)

__all__ = [
    "NULL_ID",
    "ArticyData",
    "ConnectionData",
    "Database",
    "ExportLoadError",
    "FlowDatabase",
    "FlowObjectProperties",
    "GlobalVariableDef",
    "HierarchyEntry",
    "ModelData",
    "ObjectDefinition",
    "PackageData",
    "PinData",
    "ProjectData",
    "ScriptMethodDef",
    "VariableNamespaceDef",
]
