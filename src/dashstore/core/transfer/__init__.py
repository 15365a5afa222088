"""
Export and import of dashboards and data sources.
"""

from dashstore.core.transfer.exporter import export_dashboards, export_data_sources
from dashstore.core.transfer.importer import (
    ImportableItem,
    ImportResult,
    import_text,
    importable_items,
    merge_import,
    parse_export_document,
    validate_for,
)
from dashstore.core.transfer.models import SCHEMA_VERSION, ExportDocument, ExportKind

__all__ = [
    "SCHEMA_VERSION",
    "ExportDocument",
    "ExportKind",
    "ImportResult",
    "ImportableItem",
    "export_dashboards",
    "export_data_sources",
    "import_text",
    "importable_items",
    "merge_import",
    "parse_export_document",
    "validate_for",
]
