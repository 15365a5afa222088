"""
Variable resolution.

Turns a scope's variables into display values. Plain variables are
definitional: their display value is the raw text and their coerced value
seeds the evaluation scope. Expression variables are then evaluated in
declaration order, each result fed back into the shared scope so later
expressions can read earlier ones.

An expression that reads another expression variable not yet resolved
resolves it on demand. The chain of variables being resolved is tracked,
so a cycle is detected instead of recursed into: every member of the cycle
gets a failure marker, as does any variable depending on a failed one.

Resolution never raises. Failures surface as ``[EVAL_ERROR: <message>]``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from dashstore.core.entities.models import Variable
from dashstore.core.errors import EvaluationError
from dashstore.core.variables.sandbox import (
    Clock,
    coerce_scalar,
    evaluate_expression,
    referenced_names,
    to_display_string,
)

logger = logging.getLogger(__name__)

FAILURE_MARKER_PREFIX = "[EVAL_ERROR:"


def failure_marker(message: str) -> str:
    """Build the visible marker substituted for a failed expression."""
    return f"{FAILURE_MARKER_PREFIX} {message}]"


def is_failure_marker(value: str) -> bool:
    return value.startswith(FAILURE_MARKER_PREFIX) and value.endswith("]")


def build_variable_context(variables: Iterable[Variable]) -> dict[str, Any]:
    """
    Build the evaluation scope from plain (non-expression) variables.

    Raw values are coerced so arithmetic works on numeric text; see
    :func:`~dashstore.core.variables.sandbox.coerce_scalar`.
    """
    return {v.name: coerce_scalar(v.raw_value) for v in variables if not _is_evaluated(v)}


def _is_evaluated(variable: Variable) -> bool:
    return variable.is_expression and bool(variable.raw_value.strip())


@dataclass
class ResolvedVariables:
    """
    Result of resolving one scope.

    Attributes:
        values: Display string per variable name
        scope: Evaluation values per name (failed expressions excluded)
        errors: Failure message per failed expression variable name
    """

    values: dict[str, str] = field(default_factory=dict)
    scope: dict[str, Any] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)

    def __contains__(self, name: object) -> bool:
        return name in self.values

    def get(self, name: str, default: str | None = None) -> str | None:
        return self.values.get(name, default)


class VariableResolver:
    """
    Resolve a scope's variables in one pass.

    Args:
        variables: Persisted variables in declaration order
        fixed: Host-injected variables; they shadow persisted variables of
            the same name
        clock: Clock for the date helpers
    """

    def __init__(
        self,
        variables: Iterable[Variable],
        fixed: Iterable[Variable] = (),
        clock: Clock | None = None,
    ) -> None:
        fixed_list = list(fixed)
        fixed_names = {v.name for v in fixed_list}
        # Fixed variables come last so they win on duplicate names.
        ordered = [v for v in variables if v.name not in fixed_names] + fixed_list
        self._clock = clock
        self._plain = [v for v in ordered if not _is_evaluated(v)]
        self._expressions: dict[str, Variable] = {}
        for variable in ordered:
            if _is_evaluated(variable):
                self._expressions[variable.name] = variable
        self._order = [v.name for v in ordered]

    def resolve(self) -> ResolvedVariables:
        result = ResolvedVariables()
        for variable in self._plain:
            result.values[variable.name] = variable.raw_value
        result.scope.update(build_variable_context(self._plain))

        for name in self._expressions:
            self._resolve(name, result, [])

        # Re-key in declaration order for stable listings.
        result.values = {name: result.values[name] for name in self._order if name in result.values}
        return result

    def _resolve(self, name: str, result: ResolvedVariables, chain: list[str]) -> None:
        if name in result.errors or name in result.values:
            return
        if name in chain:
            cycle = chain[chain.index(name) :]
            message = "Cyclic reference: " + " -> ".join([*cycle, name])
            for member in cycle:
                self._fail(member, message, result)
            return

        variable = self._expressions[name]
        chain.append(name)
        try:
            for dependency in referenced_names(variable.raw_value):
                if dependency in self._expressions:
                    self._resolve(dependency, result, chain)
                if name in result.errors:
                    return
                if dependency in result.errors:
                    self._fail(name, f"Depends on failed variable '{dependency}'", result)
                    return
            value = evaluate_expression(variable.raw_value, result.scope, clock=self._clock)
        except EvaluationError as e:
            self._fail(name, e.message, result)
            return
        finally:
            chain.pop()

        try:
            display = to_display_string(value)
        except ValueError as e:
            self._fail(name, str(e), result)
            return
        result.scope[name] = value
        result.values[name] = display

    @staticmethod
    def _fail(name: str, message: str, result: ResolvedVariables) -> None:
        logger.debug("Variable %s failed to resolve: %s", name, message)
        result.errors[name] = message
        result.values[name] = failure_marker(message)
        result.scope.pop(name, None)


def resolve_variables(
    variables: Iterable[Variable],
    fixed: Iterable[Variable] = (),
    clock: Clock | None = None,
) -> ResolvedVariables:
    """Resolve every variable of a scope. Never raises."""
    return VariableResolver(variables, fixed, clock).resolve()


def resolve_variable(
    variable: Variable,
    variables: Iterable[Variable],
    fixed: Iterable[Variable] = (),
    clock: Clock | None = None,
) -> str:
    """
    Resolve a single variable against its scope.

    Plain variables return their raw text unchanged.
    """
    if not _is_evaluated(variable):
        return variable.raw_value
    scope_vars = [v for v in variables if v.id != variable.id] + [variable]
    resolved = resolve_variables(scope_vars, fixed, clock)
    return resolved.values.get(variable.name, "")


__all__ = [
    "FAILURE_MARKER_PREFIX",
    "ResolvedVariables",
    "VariableResolver",
    "build_variable_context",
    "failure_marker",
    "is_failure_marker",
    "resolve_variable",
    "resolve_variables",
]
