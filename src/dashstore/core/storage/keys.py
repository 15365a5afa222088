"""
Storage key layout shared by the local cache and the remote store.

Each dashboard is stored under three granular keys so a change to one
dashboard's cards never rewrites another dashboard's data.
"""

DATA_SOURCES_KEY = "dataSources"
WHITE_LABEL_KEY = "whiteLabelSettings"
APP_SETTINGS_KEY = "appSettings"

DASHBOARD_PREFIX = "dashboard:"
DASHBOARD_CARDS_PREFIX = "dashboardCards:"
DASHBOARD_VARIABLES_PREFIX = "dashboardVariables:"

# Local-only keys, never sent to the remote store
ACTIVE_DASHBOARD_KEY = "activeDashboardId"
DASHBOARD_ORDER_KEY = "dashboardOrder"
TOMBSTONES_KEY = "deletionTombstones"
PENDING_SYNC_KEY = "pendingSync"


def dashboard_key(dashboard_id: str) -> str:
    return f"{DASHBOARD_PREFIX}{dashboard_id}"


def cards_key(dashboard_id: str) -> str:
    return f"{DASHBOARD_CARDS_PREFIX}{dashboard_id}"


def variables_key(dashboard_id: str) -> str:
    return f"{DASHBOARD_VARIABLES_PREFIX}{dashboard_id}"


def dashboard_keys(dashboard_id: str) -> tuple[str, str, str]:
    """All three keys holding one dashboard's state."""
    return dashboard_key(dashboard_id), cards_key(dashboard_id), variables_key(dashboard_id)


__all__ = [
    "ACTIVE_DASHBOARD_KEY",
    "APP_SETTINGS_KEY",
    "DASHBOARD_CARDS_PREFIX",
    "DASHBOARD_ORDER_KEY",
    "DASHBOARD_PREFIX",
    "DASHBOARD_VARIABLES_PREFIX",
    "DATA_SOURCES_KEY",
    "PENDING_SYNC_KEY",
    "TOMBSTONES_KEY",
    "WHITE_LABEL_KEY",
    "cards_key",
    "dashboard_key",
    "dashboard_keys",
    "variables_key",
]
