"""
Portable export document.

An export document is UTF-8 JSON shaped as::

    {
      "metadata": {"version": "1", "exportedAt": "..."},
      "dashboards": [...], "cards": [...], "variables": [...], "dataSources": [...]
    }

Every entity array is optional, but a valid document carries
``metadata.version`` and at least one of them.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from dashstore.core.entities.models import Card, Dashboard, DataSource, Variable, utc_now

SCHEMA_VERSION = "1"


class ExportKind(str, Enum):
    """What an export document was produced for, and what an import expects."""

    DASHBOARDS = "dashboards"
    DATA_SOURCES = "dataSources"


class ExportMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    version: str
    exported_at: datetime | None = Field(default=None, alias="exportedAt")

    @field_validator("version", mode="before")
    @classmethod
    def _version_as_text(cls, value: Any) -> Any:
        # Older exports wrote the version as a number
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class ExportDocument(BaseModel):
    """
    Export document model.

    Example:
        >>> doc = ExportDocument.create(data_sources=[])
        >>> doc.metadata.version
        '1'
    """

    model_config = ConfigDict(populate_by_name=True)

    metadata: ExportMetadata
    dashboards: list[Dashboard] | None = None
    cards: list[Card] | None = None
    variables: list[Variable] | None = None
    data_sources: list[DataSource] | None = Field(default=None, alias="dataSources")

    @classmethod
    def create(cls, **arrays: Any) -> ExportDocument:
        """Build a document stamped with the current schema version and time."""
        metadata = ExportMetadata(version=SCHEMA_VERSION, exported_at=utc_now())
        return cls(metadata=metadata, **arrays)

    def has_entities(self) -> bool:
        return any(
            items is not None
            for items in (self.dashboards, self.cards, self.variables, self.data_sources)
        )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_json(self, indent: int | None = 2) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=indent)


__all__ = ["SCHEMA_VERSION", "ExportDocument", "ExportKind", "ExportMetadata"]
