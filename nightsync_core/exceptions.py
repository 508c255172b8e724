# nightsync_core/exceptions.py
"""
Custom exception classes for the nightsync core library.

These exceptions provide more specific error information than built-in
exceptions, allowing for more targeted error handling by callers.
All custom exceptions inherit from the base `NightSyncError`.

Only `ConfigError` is fatal to the watcher; everything else is caught,
logged and retried or skipped by the caller.
"""


class NightSyncError(Exception):
    """Base exception for nightsync core errors."""

    pass


class ConfigError(NightSyncError):
    """Missing, unreadable or schema-incompatible configuration record."""

    pass


class DependencyError(NightSyncError):
    """Errors due to missing external command dependencies."""

    pass


class ValidationError(NightSyncError):
    """Errors for invalid user input or data formats."""

    pass


class DesktopError(NightSyncError):
    """Errors interacting with kreadconfig6, kwriteconfig6 or plasma-apply-*."""

    pass


class AdapterError(NightSyncError):
    """A single subsystem adapter failed to apply its value."""

    def __init__(self, subsystem: str, message: str):
        super().__init__(f"{subsystem}: {message}")
        self.subsystem = subsystem


class ScheduleError(NightSyncError):
    """Errors talking to the NightTime schedule or GeoClue location services."""

    pass


class SystemdError(NightSyncError):
    """Errors interacting with systemctl."""

    pass
