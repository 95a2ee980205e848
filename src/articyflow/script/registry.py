"""Registries for native script functions and feature execution handlers.

Scripts exported with a flow may call functions implemented by the
embedding application (``GiveItem("sword")``), and templates may carry
features the application wants to react to whenever a node carrying them is
committed. Both are registered here by name.

A module-level default registry backs the convenience functions; pass an
explicit :class:`ScriptRegistry` through a ``ScriptContext`` to keep
separate sets (tests, several loaded projects).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from articyflow.observability.logging import get_logger

if TYPE_CHECKING:
    from articyflow.database.models import ScriptMethodDef
    from articyflow.script.base import FeatureExecutionHandler, ScriptFunction

log = get_logger(__name__)


class ScriptRegistry:
    """Named native functions and per-feature execution handlers."""

    def __init__(self) -> None:
        self._functions: dict[str, ScriptFunction] = {}
        self._feature_handlers: dict[str, list[FeatureExecutionHandler]] = {}

    # -- functions ------------------------------------------------------------

    def register_function(self, name: str, func: ScriptFunction) -> None:
        """Register *func* under *name*, replacing any previous registration."""
        self._functions[name] = func

    def clear_functions(self) -> None:
        self._functions.clear()

    def has_function(self, name: str) -> bool:
        return name in self._functions

    @property
    def functions(self) -> dict[str, ScriptFunction]:
        """Registered functions by name (a copy)."""
        return dict(self._functions)

    def verify_method(self, method: ScriptMethodDef) -> bool:
        """Check that a script method declared by an export is registered.

        Logs an error if it is not. Scripts calling it will fail when they
        run, but everything else keeps working.
        """
        if method.name not in self._functions:
            log.error(
                "script_method_not_registered",
                method=method.name,
                return_type=method.return_type,
            )
            return False
        return True

    # -- feature handlers -----------------------------------------------------

    def register_feature_handler(self, feature: str, handler: FeatureExecutionHandler) -> None:
        """Add a handler called whenever a node with *feature* is executed.

        Several handlers may be registered for the same feature; they run in
        registration order.
        """
        self._feature_handlers.setdefault(feature, []).append(handler)

    def clear_feature_handlers(self) -> None:
        self._feature_handlers.clear()

    def feature_handlers(self, feature: str) -> list[FeatureExecutionHandler]:
        return list(self._feature_handlers.get(feature, []))


default_registry = ScriptRegistry()


def register_script_function(name: str, func: ScriptFunction) -> None:
    """Register a native function on the default registry.

    Args:
        name: Function name as used in exported scripts.
        func: Callable invoked as ``func(invocation, *args)``. It may return a
            plain value, None, or a :class:`ScriptActions`.
    """
    default_registry.register_function(name, func)


def clear_registered_script_functions() -> None:
    """Remove every function from the default registry."""
    default_registry.clear_functions()


def verify_registered_script_method(method: ScriptMethodDef) -> bool:
    """Check a declared script method against the default registry."""
    return default_registry.verify_method(method)


def register_feature_execution_handler(feature: str, handler: FeatureExecutionHandler) -> None:
    """Register a feature execution handler on the default registry."""
    default_registry.register_feature_handler(feature, handler)


def clear_registered_feature_handlers() -> None:
    """Remove every feature handler from the default registry."""
    default_registry.clear_feature_handlers()
