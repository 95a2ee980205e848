"""Variable stores.

A variable store is a flat mapping from fully qualified variable name
(``Namespace.Variable``) to a primitive value. Every flow state owns its
store; speculative traversal clones it before running any script that may
write to it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeAlias

if TYPE_CHECKING:
    from collections.abc import Iterable

    from articyflow.database.models import GlobalVariableDef, VariableNamespaceDef

Variable: TypeAlias = bool | int | float | str
VariableStore: TypeAlias = dict[str, Variable]


def qualified_name(namespace: str, variable: str) -> str:
    """Join a namespace and variable name the way scripts reference them."""
    return f"{namespace}.{variable}"


def clone_variable_store(variables: VariableStore) -> VariableStore:
    """Return a structurally independent copy of *variables*.

    Values are immutable scalars, so copying the mapping is a deep copy.
    """
    return dict(variables)


def parse_variable_value(type_name: str, raw: str | None) -> Variable:
    """Convert an exported default value to its typed form.

    Args:
        type_name: Declared type (``Boolean``, ``Integer``, ``Float`` or
            ``String``). Unknown types are kept as strings.
        raw: Exported value text.

    Returns:
        The typed value. Unparseable numbers fall back to 0.
    """
    text = "" if raw is None else str(raw)
    kind = type_name.lower()

    if kind in ("boolean", "bool"):
        return text.strip().lower() == "true"
    if kind in ("integer", "int"):
        try:
            return int(text.strip() or "0")
        except ValueError:
            return 0
    if kind in ("float", "double", "number"):
        try:
            return float(text.strip() or "0")
        except ValueError:
            return 0.0
    return text


def build_variable_store(namespaces: Iterable[VariableNamespaceDef]) -> VariableStore:
    """Build a fresh store from exported global variable definitions."""
    store: VariableStore = {}
    for namespace in namespaces:
        for definition in namespace.variables:
            store[qualified_name(namespace.namespace, definition.variable)] = _default_value(
                definition
            )
    return store


def _default_value(definition: GlobalVariableDef) -> Variable:
    return parse_variable_value(definition.type, definition.value)
