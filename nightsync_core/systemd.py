# nightsync_core/systemd.py
"""
Systemd user unit control for nightsync.

The daemon itself runs as a user service; at runtime it only needs to
restart the NightTime daemon once location is available, mask/unmask the
splash service, and report whether the watcher service is running.
"""

import logging

from . import helpers
from .config import APP_NAME, BUS_CALL_TIMEOUT
from .exceptions import DependencyError, NightSyncError, SystemdError

log = logging.getLogger(__name__)

# --- Unit Names ---
WATCHER_SERVICE_NAME = f"{APP_NAME}.service"
KNIGHTTIME_SERVICE_NAME = "plasma-knighttimed.service"
KSPLASH_SERVICE_NAME = "plasma-ksplash.service"


class SystemdManager:
    """Runs `systemctl --user` for the units nightsync touches."""

    def _run_systemctl(
        self, args: list[str], check_errors: bool = True, capture_output: bool = True
    ) -> tuple[int, str, str]:
        """Runs a systemctl --user command."""
        cmd = ["systemctl", "--user", *args]
        try:
            code, stdout, stderr = helpers.run_command(
                cmd, capture=capture_output, timeout=BUS_CALL_TIMEOUT * 6
            )
            if code != 0 and check_errors:
                err_details = stderr.strip() if stderr else stdout.strip()
                log.error(
                    f"systemctl --user {' '.join(args)} failed (code {code}). Details: '{err_details}'"
                )
            return code, stdout, stderr
        except FileNotFoundError:
            log.error(f"systemctl command not found when trying to run: systemctl --user {' '.join(args)}")
            raise DependencyError("systemctl command not found.")
        except NightSyncError as e:
            raise SystemdError(
                f"Unexpected error running systemctl command 'systemctl --user {' '.join(args)}': {e}"
            ) from e

    def restart_unit(self, unit_name: str) -> None:
        code, _, stderr = self._run_systemctl(["restart", unit_name])
        if code != 0:
            raise SystemdError(f"Failed to restart {unit_name}: {stderr.strip()}")
        log.info(f"Restarted {unit_name}")

    def mask_unit(self, unit_name: str) -> None:
        code, _, stderr = self._run_systemctl(["mask", unit_name], check_errors=False)
        if code != 0:
            raise SystemdError(f"Failed to mask {unit_name}: {stderr.strip()}")

    def unmask_unit(self, unit_name: str) -> None:
        code, _, stderr = self._run_systemctl(["unmask", unit_name], check_errors=False)
        if code != 0:
            raise SystemdError(f"Failed to unmask {unit_name}: {stderr.strip()}")

    def is_active(self, unit_name: str) -> bool:
        try:
            code, _, _ = self._run_systemctl(
                ["is-active", "--quiet", unit_name], check_errors=False
            )
        except (DependencyError, SystemdError) as e:
            log.debug(f"Could not query {unit_name}: {e}")
            return False
        return code == 0
