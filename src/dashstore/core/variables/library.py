"""
Dashboard script libraries.

A dashboard's script library holds named helper expressions, one
``name = expression`` definition per line. Blank lines and lines starting
with ``#`` are ignored. Each definition is evaluated in the expression
sandbox like an expression variable, so helpers may read the dashboard's
variables and each other, and variables and placeholders may read helpers.

Example:
    >>> library_definitions("# fiscal year\\nfiscal_year = current_year() + 1")
    [('fiscal_year', 'current_year() + 1')]
"""

import ast
import logging
from collections.abc import Iterable

from dashstore.core.entities.models import Variable
from dashstore.core.errors import ValidationError

logger = logging.getLogger(__name__)

LIBRARY_ID_PREFIX = "library-"


def library_definitions(script: str) -> list[tuple[str, str]]:
    """
    Parse a script library into ``(name, expression)`` pairs.

    Raises:
        ValidationError: If a line is not a definition, a name is invalid
            or defined twice, or an expression does not parse
    """
    definitions: list[tuple[str, str]] = []
    seen: set[str] = set()
    for lineno, line in enumerate(script.splitlines(), start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        name, sep, expression = stripped.partition("=")
        name, expression = name.strip(), expression.strip()
        if not sep or not expression or expression.startswith("="):
            raise ValidationError(f"Line {lineno}: expected 'name = expression'", line=lineno)
        if not name.isidentifier() or name.startswith("_"):
            raise ValidationError(f"Line {lineno}: invalid helper name '{name}'", line=lineno)
        if name in seen:
            raise ValidationError(f"Line {lineno}: helper '{name}' is defined twice", line=lineno)
        try:
            ast.parse(expression, mode="eval")
        except SyntaxError as e:
            raise ValidationError(f"Line {lineno}: {e.msg}", line=lineno) from e
        seen.add(name)
        definitions.append((name, expression))
    return definitions


def library_variables(scope_id: str, script: str, taken: Iterable[str] = ()) -> list[Variable]:
    """
    Turn a script library into expression variables for resolution.

    Helpers whose name is already taken by a variable are shadowed. A
    library that does not parse contributes nothing.
    """
    if not script.strip():
        return []
    try:
        definitions = library_definitions(script)
    except ValidationError as e:
        logger.warning("Ignoring script library of %s: %s", scope_id, e.message)
        return []
    shadowed = set(taken)
    return [
        Variable(
            id=f"{LIBRARY_ID_PREFIX}{name}",
            scope_id=scope_id,
            name=name,
            raw_value=expression,
            is_expression=True,
        )
        for name, expression in definitions
        if name not in shadowed
    ]
