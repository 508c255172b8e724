# nightsync_core/state.py
"""
Small file-backed runtime state shared with other processes.

- `ModeMarker`: the current mode (`light`/`dark`/`auto`) for status panels.
- `ApplyStamp`: the Unix time of the last apply made outside the watcher's
  own loop, read by the watcher's debounce check.

Both live under $XDG_RUNTIME_DIR and are rewritten atomically. A lost
update only costs one redundant apply.
"""

import logging
import os
import pathlib
import time
from typing import Callable, Optional

from . import helpers
from .config import APP_NAME
from .modes import Mode, parse_mode_or_none

log = logging.getLogger(__name__)


def runtime_dir() -> pathlib.Path:
    env = os.environ.get("XDG_RUNTIME_DIR")
    if env:
        return pathlib.Path(env)
    return pathlib.Path("/run/user") / str(os.getuid())


MODE_FILE_NAME = f"{APP_NAME}-runtime"
LAST_APPLY_FILE_NAME = f"{APP_NAME}-last-apply"


class ModeMarker:
    def __init__(self, path: Optional[pathlib.Path] = None):
        self.path = path or runtime_dir() / MODE_FILE_NAME

    def read(self) -> Optional[Mode]:
        try:
            return parse_mode_or_none(self.path.read_text(encoding="utf-8"))
        except OSError:
            return None

    def write(self, mode: Mode) -> None:
        """
        Raises:
            OSError: If the runtime directory is not writable.
        """
        helpers.atomic_write_text(self.path, f"{mode.value}\n")
        log.debug(f"Mode marker set to '{mode.value}' ({self.path})")


class ApplyStamp:
    def __init__(
        self,
        path: Optional[pathlib.Path] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.path = path or runtime_dir() / LAST_APPLY_FILE_NAME
        self._clock = clock

    def read(self) -> float:
        """Last recorded apply time, or 0 when absent or unreadable."""
        try:
            return float(int(self.path.read_text(encoding="utf-8").strip()))
        except (OSError, ValueError):
            return 0.0

    def record(self, when: Optional[float] = None) -> None:
        stamp = int(self._clock() if when is None else when)
        try:
            helpers.atomic_write_text(self.path, f"{stamp}\n")
        except OSError as e:
            log.warning(f"Could not record apply time in {self.path}: {e}")
