"""
``{{name}}`` placeholder substitution.

Substitution is a single left-to-right pass: replacement text is never
scanned again, so values that happen to contain ``{{...}}`` are not
expanded a second time.
"""

import logging
import re
from collections.abc import Iterable

from dashstore.core.entities.models import Variable
from dashstore.core.errors import EvaluationError
from dashstore.core.variables.resolver import ResolvedVariables, resolve_variables
from dashstore.core.variables.sandbox import Clock, evaluate_expression, to_display_string

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{([^{}]+)\}\}")

_DISPLAYABLE = (str, int, float, bool, list, tuple, type(None))


def has_placeholders(text: str) -> bool:
    return PLACEHOLDER_PATTERN.search(text) is not None


def substitute_resolved(
    text: str,
    resolved: ResolvedVariables,
    *,
    inline_expressions: bool = True,
    clock: Clock | None = None,
) -> str:
    """
    Replace placeholders using an already-resolved scope.

    Args:
        text: Text that may contain ``{{...}}`` placeholders
        resolved: Result of resolving the scope's variables
        inline_expressions: Also evaluate placeholders such as
            ``{{year + 1}}`` that are not a bare variable name
        clock: Clock for date helpers in inline expressions

    Returns:
        Text with every known placeholder replaced. Unknown names and
        inline expressions that fail are left verbatim.
    """
    if not text or "{{" not in text:
        return text

    def replace(match: re.Match[str]) -> str:
        content = match.group(1)
        key = content.strip()
        if key in resolved.values:
            return resolved.values[key]
        if not inline_expressions:
            return match.group(0)
        try:
            value = evaluate_expression(content, resolved.scope, clock=clock)
        except EvaluationError as e:
            logger.debug("Leaving placeholder %s untouched: %s", match.group(0), e.message)
            return match.group(0)
        if not isinstance(value, _DISPLAYABLE):
            return match.group(0)
        try:
            return to_display_string(value)
        except ValueError as e:
            logger.debug("Leaving placeholder %s untouched: %s", match.group(0), e)
            return match.group(0)

    return PLACEHOLDER_PATTERN.sub(replace, text)


def substitute(
    text: str,
    variables: Iterable[Variable],
    *,
    fixed: Iterable[Variable] = (),
    clock: Clock | None = None,
    inline_expressions: bool = True,
) -> str:
    """
    Replace ``{{name}}`` placeholders with resolved variable values.

    Example:
        >>> year = Variable(id="v1", scope_id="d1", name="year", raw_value="2024")
        >>> substitute("Report {{year}}", [year])
        'Report 2024'
    """
    if not text or "{{" not in text:
        return text
    resolved = resolve_variables(variables, fixed, clock)
    return substitute_resolved(text, resolved, inline_expressions=inline_expressions, clock=clock)


__all__ = [
    "PLACEHOLDER_PATTERN",
    "has_placeholders",
    "substitute",
    "substitute_resolved",
]
