"""
Entity models shared by every dashstore component.
"""

from dashstore.core.entities.models import (
    DEFAULT_BRAND_COLOR,
    AppSettings,
    Card,
    Dashboard,
    DatabaseType,
    DataSource,
    DeletionTombstone,
    EntityType,
    FormattingSettings,
    HostContext,
    Variable,
    VariableOption,
    WhiteLabelSettings,
    new_id,
    utc_now,
)

__all__ = [
    "DEFAULT_BRAND_COLOR",
    "AppSettings",
    "Card",
    "Dashboard",
    "DataSource",
    "DatabaseType",
    "DeletionTombstone",
    "EntityType",
    "FormattingSettings",
    "HostContext",
    "Variable",
    "VariableOption",
    "WhiteLabelSettings",
    "new_id",
    "utc_now",
]
