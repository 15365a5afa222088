"""
Host-injected fixed variables.

Fixed variables are derived on demand from the host context and are never
persisted or exported. Their ids carry a reserved prefix so every layer can
tell them apart from user variables.
"""

from dashstore.core.entities.models import HostContext, Variable

FIXED_ID_PREFIX = "fixed-"

# (variable name, id suffix, HostContext attribute)
_FIXED_FIELDS = (
    ("department", "dept", "department"),
    ("owner", "owner", "owner"),
    ("tenant_id", "tenant", "tenant_id"),
)


def is_fixed(variable: Variable) -> bool:
    """Check whether a variable is host-injected."""
    return variable.id.startswith(FIXED_ID_PREFIX)


def fixed_variables(scope_id: str, host: HostContext | None) -> list[Variable]:
    """
    Build the fixed variables for a scope from the host context.

    Only non-empty host values produce a variable.

    Args:
        scope_id: Dashboard the variables are displayed in
        host: Host-supplied context, or None when running standalone

    Returns:
        Fixed variables in a stable order (department, owner, tenant_id)
    """
    if host is None:
        return []
    result: list[Variable] = []
    for name, suffix, attr in _FIXED_FIELDS:
        value = getattr(host, attr)
        if value:
            result.append(
                Variable(
                    id=f"{FIXED_ID_PREFIX}{suffix}",
                    scope_id=scope_id,
                    name=name,
                    raw_value=value,
                )
            )
    return result
