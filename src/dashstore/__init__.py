"""
dashstore - dashboard configuration store

Keeps dashboards, their cards and variables, data sources and global
settings for one tenant scope. Variables resolve through a sandboxed
expression engine; edits are committed to a local cache first and synced
to a remote configuration service on demand.
"""

__version__ = "0.3.0"

# Re-export core models for convenience
from dashstore.core.config.models import DashstoreConfig
from dashstore.core.entities.models import Card, Dashboard, DataSource, Variable
from dashstore.core.workspace import Workspace

__all__ = [
    "Card",
    "Dashboard",
    "DashstoreConfig",
    "DataSource",
    "Variable",
    "Workspace",
    "__version__",
]
