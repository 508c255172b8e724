# nightsync_core/__init__.py

# Make exceptions available directly
from .exceptions import (
    AdapterError,
    ConfigError,
    DependencyError,
    DesktopError,
    NightSyncError,
    ScheduleError,
    SystemdError,
    ValidationError,
)

# Public API functions (via the api.py facade)
from .api import (
    build_applier,
    build_watcher,
    enable_auto,
    get_status,
    run_watcher,
    switch_mode,
    toggle,
)

# --- Core types and constants ---
from .config import CONFIG_FILE, LOG_FILE, ConfigStore, SyncConfig
from .modes import Mode, Subsystem
from .systemd import WATCHER_SERVICE_NAME

__all__ = [
    # Constants
    "CONFIG_FILE",
    "LOG_FILE",
    "WATCHER_SERVICE_NAME",
    # Types
    "ConfigStore",
    "Mode",
    "Subsystem",
    "SyncConfig",
    # Exceptions
    "AdapterError",
    "ConfigError",
    "DependencyError",
    "DesktopError",
    "NightSyncError",
    "ScheduleError",
    "SystemdError",
    "ValidationError",
    # API Functions (from api.py facade)
    "build_applier",
    "build_watcher",
    "enable_auto",
    "get_status",
    "run_watcher",
    "switch_mode",
    "toggle",
]
