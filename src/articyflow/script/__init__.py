"""Script package - sandboxed evaluation of embedded flow scripts."""

from articyflow.script.base import (
    FeatureExecutionHandler,
    ScriptActions,
    ScriptFunction,
    ScriptInvocation,
)
from articyflow.script.errors import ScriptError, ScriptEvaluationError, ScriptSyntaxError
from articyflow.script.evaluator import Evaluator, ExpressoEvaluator, parse_script
from articyflow.script.registry import (
    ScriptRegistry,
    clear_registered_feature_handlers,
    clear_registered_script_functions,
    default_registry,
    register_feature_execution_handler,
    register_script_function,
    verify_registered_script_method,
)
from articyflow.script.sandbox import (
    ScriptContext,
    on_node_execution,
    run_script,
    script_dispatch,
)

__all__ = [
    "Evaluator",
    "ExpressoEvaluator",
    "FeatureExecutionHandler",
    "ScriptActions",
    "ScriptContext",
    "ScriptError",
    "ScriptEvaluationError",
    "ScriptFunction",
    "ScriptInvocation",
    "ScriptRegistry",
    "ScriptSyntaxError",
    "clear_registered_feature_handlers",
    "clear_registered_script_functions",
    "default_registry",
    "on_node_execution",
    "parse_script",
    "register_feature_execution_handler",
    "register_script_function",
    "run_script",
    "script_dispatch",
    "verify_registered_script_method",
]
