"""
Variable storage keyed by dashboard scope.

The store keeps every persisted variable in declaration order and notifies
its owner through ``on_mutation(scope_id)`` after each change, which is how
the owning dashboard aggregate gets marked ``unsaved``.

Example:
    >>> touched = []
    >>> store = VariableStore(on_mutation=touched.append)
    >>> var = store.add("d1", "year", "2024")
    >>> [v.name for v in store.list("d1")]
    ['year']
    >>> touched
    ['d1']
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from dashstore.core.entities.models import Variable, VariableOption, new_id, utc_now
from dashstore.core.errors import ValidationError
from dashstore.core.variables.fixed import FIXED_ID_PREFIX

logger = logging.getLogger(__name__)


def _noop(scope_id: str) -> None:
    return None


class VariableStore:
    """
    Ordered collection of variables for all dashboards.

    Variables are only ever replaced wholesale (pydantic copies), never
    mutated in place, so callers may keep references to listed variables
    as stable snapshots.
    """

    def __init__(self, on_mutation: Callable[[str], None] | None = None) -> None:
        self._variables: list[Variable] = []
        self._on_mutation = on_mutation or _noop

    def load(self, variables: Iterable[Variable]) -> None:
        """Replace the whole collection without signalling a mutation."""
        self._variables = [v for v in variables if not v.id.startswith(FIXED_ID_PREFIX)]

    def all(self) -> list[Variable]:
        return list(self._variables)

    def list(self, scope_id: str) -> list[Variable]:
        """Variables of one scope, in declaration order."""
        return [v for v in self._variables if v.scope_id == scope_id]

    def get(self, variable_id: str) -> Variable | None:
        for variable in self._variables:
            if variable.id == variable_id:
                return variable
        return None

    def find(self, scope_id: str, name: str) -> Variable | None:
        for variable in self._variables:
            if variable.scope_id == scope_id and variable.name == name:
                return variable
        return None

    def add(
        self,
        scope_id: str,
        name: str,
        raw_value: str = "",
        *,
        is_expression: bool = False,
        options: list[VariableOption] | None = None,
        visible_in_host: bool = False,
    ) -> Variable:
        """
        Create a variable with a generated id and append it to its scope.

        Raises:
            ValidationError: If the name is empty or already used in the scope
        """
        variable = Variable(
            id=new_id(),
            scope_id=scope_id,
            name=name.strip(),
            raw_value=raw_value,
            is_expression=is_expression,
            options=options,
            visible_in_host=visible_in_host,
            last_modified=utc_now(),
        )
        self._validate(scope_id, [*self.list(scope_id), variable])
        self._variables.append(variable)
        logger.debug("Added variable %s to scope %s", variable.name, scope_id)
        self._on_mutation(scope_id)
        return variable

    def update(self, variable: Variable) -> Variable:
        """
        Replace an existing variable (matched by id).

        Raises:
            ValidationError: If no variable has this id, or the new name is
                empty or clashes
        """
        index = self._index_of(variable.id)
        if index is None:
            raise ValidationError(f"Unknown variable '{variable.id}'", id=variable.id)
        previous = self._variables[index]
        updated = variable.model_copy(
            update={
                "scope_id": previous.scope_id,
                "name": variable.name.strip(),
                "last_modified": utc_now(),
            }
        )
        scope = [updated if v.id == updated.id else v for v in self.list(previous.scope_id)]
        self._validate(previous.scope_id, scope)
        self._variables[index] = updated
        self._on_mutation(previous.scope_id)
        return updated

    def upsert_all(self, scope_id: str, variables: Iterable[Variable]) -> list[Variable]:
        """
        Replace the full variable set of a scope in one step.

        Host-injected variables are dropped silently. The batch is validated
        as a whole before anything changes, so a rejected batch leaves the
        scope untouched.

        Args:
            scope_id: Dashboard whose variables are replaced
            variables: New variable set, in display order

        Returns:
            Variables that were in the scope before and are absent now

        Raises:
            ValidationError: If any name is empty or duplicated
        """
        now = utc_now()
        incoming = [
            v.model_copy(update={"scope_id": scope_id, "name": v.name.strip(), "last_modified": now})
            for v in variables
            if not v.id.startswith(FIXED_ID_PREFIX)
        ]
        self._validate(scope_id, incoming)

        kept_ids = {v.id for v in incoming}
        removed = [v for v in self.list(scope_id) if v.id not in kept_ids]
        others = [v for v in self._variables if v.scope_id != scope_id]
        self._variables = others + incoming
        logger.debug(
            "Replaced variables of scope %s (%d kept, %d removed)",
            scope_id,
            len(incoming),
            len(removed),
        )
        self._on_mutation(scope_id)
        return removed

    def remove(self, scope_id: str, variable_id: str) -> Variable | None:
        """
        Delete one variable.

        Returns:
            The removed variable, or None if it was not in the scope
        """
        index = self._index_of(variable_id)
        if index is None or self._variables[index].scope_id != scope_id:
            return None
        removed = self._variables.pop(index)
        self._on_mutation(scope_id)
        return removed

    def remove_scope(self, scope_id: str) -> list[Variable]:
        """Drop every variable of a scope (dashboard deletion cascade)."""
        removed = self.list(scope_id)
        if removed:
            self._variables = [v for v in self._variables if v.scope_id != scope_id]
        return removed

    def _index_of(self, variable_id: str) -> int | None:
        for index, variable in enumerate(self._variables):
            if variable.id == variable_id:
                return index
        return None

    @staticmethod
    def _validate(scope_id: str, variables: list[Variable]) -> None:
        seen: set[str] = set()
        for variable in variables:
            if not variable.name:
                raise ValidationError(
                    "Variable name must not be empty",
                    scope_id=scope_id,
                    variable_id=variable.id,
                )
            if variable.name in seen:
                raise ValidationError(
                    f"Variable name '{variable.name}' is already used in this dashboard",
                    scope_id=scope_id,
                    name=variable.name,
                )
            seen.add(variable.name)
