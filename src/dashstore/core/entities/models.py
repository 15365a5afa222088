"""
Entity data models for dashstore.

Defines the Pydantic models for everything a tenant configures: dashboards,
their cards and variables, data sources, and the global settings group.
Field aliases follow the camelCase wire format used by the storage keys and
by exported documents, so a model dumped with ``by_alias=True`` can be read
back by any other client of the same configuration service.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_BRAND_COLOR = "#4f46e5"


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Generate a fresh opaque entity id."""
    return str(uuid.uuid4())


class DatabaseType(str, Enum):
    """Kinds of data source a card can query."""

    LOCAL_STORAGE = "LocalStorage (Demo)"
    POSTGRESQL = "PostgreSQL"
    MYSQL = "MySQL"
    SQL_SERVER = "SQL Server"
    REDIS = "Redis"
    MONGODB = "MongoDB"
    COSMOSDB = "CosmosDB"
    SUPABASE = "Supabase"
    REST_API = "REST API"


class EntityType(str, Enum):
    """Entity kinds that can be deleted and therefore tombstoned."""

    DASHBOARD = "dashboard"
    CARD = "card"
    VARIABLE = "variable"
    DATA_SOURCE = "dataSource"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Dump to the camelCase JSON-compatible wire format."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class FormattingSettings(_WireModel):
    """Per-dashboard display formatting for dates, numbers and currency."""

    date_format: str = Field(default="DD/MM/YYYY", alias="dateFormat")
    date_time_format: str = Field(default="DD/MM/YYYY HH:mm:ss", alias="dateTimeFormat")
    currency_symbol: str = Field(default="R$", alias="currencySymbol")
    currency_position: str = Field(
        default="prefix",
        alias="currencyPosition",
        pattern="^(prefix|suffix)$",
    )
    decimal_separator: str = Field(default=",", alias="decimalSeparator", pattern="^[,.]$")
    thousands_separator: str = Field(default=".", alias="thousandsSeparator", pattern="^[,.]$")
    currency_decimal_places: int = Field(default=2, ge=0, alias="currencyDecimalPlaces")
    number_decimal_places: int = Field(default=2, ge=0, alias="numberDecimalPlaces")


class Dashboard(_WireModel):
    """
    A dashboard: the unit that owns cards and variables.

    The name may contain ``{{variable}}`` placeholders and is displayed
    through template substitution. Cards and variables reference their
    dashboard by ``dashboard_id``; deleting a dashboard cascades to both.

    Example:
        >>> dash = Dashboard(id="d1", name="Sales {{year}}")
        >>> dash.to_wire()["name"]
        'Sales {{year}}'
    """

    id: str = Field(..., description="Opaque dashboard identifier")
    name: str = Field(..., description="Display name, possibly templated")
    formatting_settings: FormattingSettings = Field(
        default_factory=FormattingSettings,
        alias="formattingSettings",
    )
    script_library: str = Field(
        default="",
        alias="scriptLibrary",
        description="Helper definitions, one 'name = expression' per line",
    )
    card_order: list[str] = Field(
        default_factory=list,
        alias="cardOrder",
        description="Display order of the dashboard's card ids",
    )
    last_modified: datetime | None = Field(default=None, alias="lastModified")


class Card(_WireModel):
    """
    A chart/table card on a dashboard.

    Only the fields the core reasons about are declared; rendering details
    (chart keys, column types, KPI config, ...) are carried through as extra
    fields untouched.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    dashboard_id: str = Field(..., alias="dashboardId")
    title: str = ""
    query: str = ""
    data_source_id: str = Field(default="", alias="dataSourceId")
    last_modified: datetime | None = Field(default=None, alias="lastModified")


class VariableOption(_WireModel):
    """A selectable label/value pair for dropdown-style variables."""

    label: str
    value: str


class Variable(_WireModel):
    """
    A named value scoped to one dashboard.

    ``raw_value`` is stored verbatim with no type coercion. When
    ``is_expression`` is set, it is evaluated in the expression sandbox
    against the other variables of the same scope.

    Example:
        >>> var = Variable(id="v1", scope_id="d1", name="year", raw_value="2024")
        >>> var.to_wire()["value"]
        '2024'
    """

    id: str = Field(..., description="Opaque variable identifier")
    scope_id: str = Field(..., alias="dashboardId", description="Owning dashboard id")
    name: str = Field(..., description="Name, unique within the scope")
    raw_value: str = Field(default="", alias="value")
    is_expression: bool = Field(default=False, alias="isExpression")
    options: list[VariableOption] | None = Field(default=None)
    visible_in_host: bool = Field(default=False, alias="showOnDashboard")
    last_modified: datetime | None = Field(default=None, alias="lastModified")


class DataSource(_WireModel):
    """A configured database connection cards can query."""

    id: str
    name: str
    type: DatabaseType = DatabaseType.LOCAL_STORAGE
    connection_string: str = Field(default="", alias="connectionString")
    last_modified: datetime | None = Field(default=None, alias="lastModified")


class WhiteLabelSettings(_WireModel):
    """Global branding settings."""

    brand_color: str = Field(default=DEFAULT_BRAND_COLOR, alias="brandColor")
    last_modified: datetime | None = Field(default=None, alias="lastModified")


class AppSettings(_WireModel):
    """Global application settings."""

    auto_save: bool = Field(default=False, alias="autoSave")
    last_modified: datetime | None = Field(default=None, alias="lastModified")


class DeletionTombstone(_WireModel):
    """
    Record of a local deletion that has not been synced yet.

    Tombstones make deletions win over older remote copies during
    reconciliation and are cleared after a successful sync.
    """

    id: str
    type: EntityType
    parent_id: str | None = Field(default=None, alias="parentId")
    deleted_at: datetime = Field(default_factory=utc_now, alias="deletedAt")


class HostContext(BaseModel):
    """
    Values injected by the embedding host.

    These identify the tenant and the organisational scope. They are sent
    as routing metadata on every remote call and surfaced to templates as
    fixed variables.
    """

    tenant_id: str | None = None
    department: str | None = None
    owner: str | None = None


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
