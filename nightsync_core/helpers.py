# nightsync_core/helpers.py

import logging
import logging.handlers
import os
import pathlib
import shutil
import subprocess
import tempfile
import threading
import time
from typing import Callable, Optional

from .exceptions import DependencyError, NightSyncError

log = logging.getLogger(__name__)

# --- Command Execution ---


def run_command(
    cmd_list: list[str],
    capture: bool = True,
    timeout: Optional[float] = None,
) -> tuple[int, str, str]:
    """
    Runs an external tool and reports how it went.

    A non-zero exit is not an error here: callers look at the code and raise
    the exception type that fits their collaborator (DesktopError,
    AdapterError, ...).

    Args:
        cmd_list: The command and its arguments.
        capture: Capture stdout/stderr (default). When False both go to the
                 terminal and come back empty.
        timeout: Seconds before the process is killed. Anything that may
                 block on another process (sudo, busctl, qdbus) passes one.

    Returns:
        (return_code, stdout, stderr), output stripped.

    Raises:
        FileNotFoundError: If the executable is not in PATH.
        NightSyncError: On timeout or any other failure to run the process.
    """
    log.debug(f"Running command: {' '.join(cmd_list)}")
    pipe = subprocess.PIPE if capture else None
    try:
        process = subprocess.run(
            cmd_list,
            stdout=pipe,
            stderr=pipe,
            text=True,
            encoding="utf-8",
            timeout=timeout,
        )
    except FileNotFoundError as e:
        log.debug(f"Command not found: {cmd_list[0]} - {e}")
        raise FileNotFoundError(f"Required command '{cmd_list[0]}' not found in PATH.") from e
    except subprocess.TimeoutExpired as e:
        log.warning(f"Command timed out after {timeout}s: {' '.join(cmd_list)}")
        raise NightSyncError(f"Command '{cmd_list[0]}' timed out after {timeout}s") from e
    except (OSError, ValueError, subprocess.SubprocessError) as e:
        log.exception(f"Could not run {' '.join(cmd_list)}: {e}")
        raise NightSyncError(f"Unexpected error running command '{cmd_list[0]}': {e}") from e

    stdout = (process.stdout or "").strip()
    stderr = (process.stderr or "").strip()
    log.debug(f"'{cmd_list[0]}' exited with {process.returncode}")
    if stderr and process.returncode != 0:
        log.debug(f"stderr: {stderr[:200]}")
    return process.returncode, stdout, stderr


# --- Dependency Checks ---


def command_exists(name: str) -> bool:
    """Returns True if `name` resolves to an executable in PATH."""
    return shutil.which(name) is not None


def check_dependencies(deps: list[str]) -> bool:
    """
    Raises:
        DependencyError: Naming every command from `deps` missing from PATH.
    """
    missing = [dep for dep in deps if not command_exists(dep)]
    if missing:
        error_msg = f"Missing required command(s): {', '.join(missing)}. Please install them."
        log.error(error_msg)
        raise DependencyError(error_msg)
    log.debug(f"Found {', '.join(deps)}")
    return True


# --- Polling ---


def retry_until(
    predicate: Callable[[], bool],
    attempts: int,
    interval: float,
    sleep: Callable[[float], None] = time.sleep,
    stop_event: Optional[threading.Event] = None,
) -> bool:
    """
    Calls `predicate` until it returns True, at most `attempts` times,
    sleeping `interval` seconds between calls.

    Exceptions raised by the predicate count as a failed attempt.
    When `stop_event` is given and set, polling ends early.

    Returns:
        True if the predicate succeeded, False when attempts ran out
        (or the stop event was set).
    """
    for attempt in range(1, attempts + 1):
        if stop_event is not None and stop_event.is_set():
            log.debug("Polling cancelled by stop event.")
            return False
        try:
            if predicate():
                log.debug(f"Predicate satisfied on attempt {attempt}/{attempts}")
                return True
        except Exception as e:
            log.debug(f"Predicate raised on attempt {attempt}/{attempts}: {e}")
        if attempt < attempts:
            if stop_event is not None:
                if stop_event.wait(interval):
                    return False
            else:
                sleep(interval)
    return False


# --- Files ---


def atomic_write_text(path: pathlib.Path, text: str) -> None:
    """
    Writes `text` to `path` by writing a temp file in the same directory and
    renaming it over the target, so readers never see a partial file.

    Raises:
        OSError: If the directory cannot be created or the write fails.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        pathlib.Path(tmp_name).unlink(missing_ok=True)
        raise


# --- Logging Setup ---

LOG_MAX_BYTES = 100 * 1024


def setup_library_logging(level=logging.WARNING, log_file: Optional[pathlib.Path] = None):
    """
    Gives the `nightsync_core` loggers a stderr handler when embedding code
    has not configured logging itself. The CLI sets up its own handlers and
    does not call this.

    With `log_file`, records also go to a size-capped rotating file.
    """
    package_logger = logging.getLogger("nightsync_core")

    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
        package_logger.addHandler(handler)

    if log_file is not None:
        package_logger.addHandler(make_file_handler(log_file))

    package_logger.setLevel(level)
    log.debug(f"nightsync_core logging level: {logging.getLevelName(level)}")


def make_file_handler(log_file: pathlib.Path) -> logging.Handler:
    """Returns a rotating file handler writing `[date time] [LEVEL] message` lines."""
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        log_file, maxBytes=LOG_MAX_BYTES, backupCount=1, encoding="utf-8"
    )
    handler.setFormatter(
        logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s", "%Y-%m-%d %H:%M:%S")
    )
    return handler
