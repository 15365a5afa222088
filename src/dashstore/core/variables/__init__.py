"""
Variable resolution engine: storage, sandboxed expressions and templates.
"""

from dashstore.core.variables.fixed import FIXED_ID_PREFIX, fixed_variables, is_fixed
from dashstore.core.variables.library import (
    LIBRARY_ID_PREFIX,
    library_definitions,
    library_variables,
)
from dashstore.core.variables.resolver import (
    FAILURE_MARKER_PREFIX,
    ResolvedVariables,
    VariableResolver,
    build_variable_context,
    failure_marker,
    is_failure_marker,
    resolve_variable,
    resolve_variables,
)
from dashstore.core.variables.sandbox import (
    SandboxedEvaluator,
    coerce_scalar,
    evaluate_expression,
    to_display_string,
)
from dashstore.core.variables.store import VariableStore
from dashstore.core.variables.template import substitute, substitute_resolved

__all__ = [
    "FAILURE_MARKER_PREFIX",
    "FIXED_ID_PREFIX",
    "LIBRARY_ID_PREFIX",
    "ResolvedVariables",
    "SandboxedEvaluator",
    "VariableResolver",
    "VariableStore",
    "build_variable_context",
    "coerce_scalar",
    "evaluate_expression",
    "failure_marker",
    "fixed_variables",
    "is_failure_marker",
    "is_fixed",
    "library_definitions",
    "library_variables",
    "resolve_variable",
    "resolve_variables",
    "substitute",
    "substitute_resolved",
    "to_display_string",
]
