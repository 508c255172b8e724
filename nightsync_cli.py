#!/usr/bin/env python3

"""
nightsync (CLI) - Light/Dark Sync for KDE Plasma

Command-line interface for the nightsync_core library: runs the watcher
daemon and switches between light, dark and automatic (day/night) mode.
"""

import argparse
import logging
import os
import signal
import sys

# Import the core library API and exceptions
try:
    import nightsync_core
    from nightsync_core import exceptions as core_exc
    from nightsync_core import helpers as core_helpers
    from nightsync_core.modes import Mode
except ImportError as e:
    print(f"Error: Failed to import the nightsync_core library: {e}", file=sys.stderr)
    print("Ensure nightsync_core is installed or available in your Python path.", file=sys.stderr)
    sys.exit(1)

log = logging.getLogger("nightsync_cli")

# --- ANSI Color Codes for Terminal Output ---
IS_TTY = sys.stdout.isatty()


class AnsiColors:
    GREEN = "\033[92m" if IS_TTY else ""
    RED = "\033[91m" if IS_TTY else ""
    YELLOW = "\033[93m" if IS_TTY else ""
    RESET = "\033[0m" if IS_TTY else ""


def debug_requested(verbose: bool) -> bool:
    return verbose or os.environ.get("NIGHTSYNC_DEBUG", "").lower() in ("1", "true", "yes")


# --- CLI Logging Setup ---
def setup_cli_logging(verbose: bool):
    """Configures logging for the interactive commands based on verbosity."""
    cli_log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(name)s: %(message)s")

    log.setLevel(cli_log_level)
    if log.hasHandlers():
        log.handlers.clear()

    core_log_level = logging.DEBUG if verbose else logging.WARNING
    core_logger = logging.getLogger("nightsync_core")
    core_logger.setLevel(core_log_level)
    if not core_logger.hasHandlers():
        core_handler = logging.StreamHandler(sys.stderr)
        core_handler.setFormatter(logging.Formatter("%(levelname)s: nightsync_core: %(message)s"))
        core_logger.addHandler(core_handler)
        core_logger.propagate = False

    if cli_log_level <= logging.INFO:
        info_handler = logging.StreamHandler(sys.stdout)
        info_handler.setFormatter(logging.Formatter("%(message)s"))
        info_handler.setLevel(logging.INFO)
        info_handler.addFilter(lambda record: record.levelno == logging.INFO)
        log.addHandler(info_handler)

    error_handler = logging.StreamHandler(sys.stderr)
    error_handler.setFormatter(logging.Formatter("%(levelname)s: %(name)s: %(message)s"))
    error_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    log.addHandler(error_handler)

    log.propagate = False
    if verbose:
        log.debug("Verbose logging enabled for nightsync_cli.")


def setup_watch_logging(verbose: bool):
    """
    The watcher runs under systemd: plain timestamped lines on stdout (the
    journal) plus a size-capped log file.
    """
    level = logging.DEBUG if verbose else logging.INFO
    formatter = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s", "%H:%M:%S")

    for name in ("nightsync_core", "nightsync_cli"):
        logger = logging.getLogger(name)
        logger.handlers.clear()
        logger.setLevel(level)
        logger.propagate = False

        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)
        try:
            logger.addHandler(core_helpers.make_file_handler(nightsync_core.LOG_FILE))
        except OSError as e:
            logger.warning(f"Cannot write log file {nightsync_core.LOG_FILE}: {e}")


# --- Output Formatting ---
def print_status(status_data: dict):
    """Formats and prints the status dictionary with colors."""
    log.info("--- nightsync Status ---")

    log.info("\n[Configuration]")
    config = status_data["config"]
    log.info(f"  File:             {config['path']}")
    if config["valid"]:
        log.info(f"  Valid:            {AnsiColors.GREEN}yes{AnsiColors.RESET}")
    else:
        log.info(f"  Valid:            {AnsiColors.RED}no{AnsiColors.RESET} ({config['error']})")

    log.info("\n[Desktop]")
    desktop = status_data["desktop"]
    log.info(f"  Mode marker:      {status_data['marker'] or 'not set'}")
    log.info(f"  Theme package:    {desktop['look_and_feel'] or 'unknown'}")
    log.info(f"  Maps to:          {desktop['mode'] or 'neither mode'}")
    log.info(f"  Automatic:        {'on' if desktop['automatic'] else 'off'}")

    log.info("\n[Schedule]")
    schedule = status_data["schedule"]
    if schedule["known"]:
        log.info(f"  Now:              {schedule['mode']}")
    else:
        log.info(f"  Now:              {AnsiColors.YELLOW}unknown (NightTime has no schedule){AnsiColors.RESET}")

    log.info("\n[Service]")
    watcher = status_data["watcher"]
    if watcher["active"]:
        log.info(f"  {watcher['service']}: {AnsiColors.GREEN}running{AnsiColors.RESET}")
    else:
        log.info(f"  {watcher['service']}: {AnsiColors.RED}not running{AnsiColors.RESET}")
    log.info("-" * 25)


def run_watch() -> None:
    watcher = nightsync_core.build_watcher()

    def _handle_signal(signum, frame):
        log.info(f"Received signal {signal.Signals(signum).name}, stopping watcher...")
        watcher.stop()

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)
    nightsync_core.run_watcher(watcher)


def main():
    """Parses command-line arguments and dispatches to appropriate command handlers."""
    parser = argparse.ArgumentParser(
        description="nightsync (CLI): Keep KDE Plasma's themes in sync with light/dark mode.",
        formatter_class=argparse.RawTextHelpFormatter,
        epilog="""
Examples:
  nightsync watch          # Run the sync daemon (normally started by systemd)
  nightsync dark           # Switch to dark mode and turn automatic mode off
  nightsync auto           # Follow sunrise/sunset
  nightsync toggle         # Cycle light -> dark -> auto
  nightsync status         # Show config, desktop and service state
""",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable detailed logging output.")
    subparsers = parser.add_subparsers(dest="command", title="Commands", required=True)

    subparsers.add_parser("watch", help="Run the watcher daemon in the foreground.")
    subparsers.add_parser("light", help="Switch to light mode (disables automatic mode).")
    subparsers.add_parser("dark", help="Switch to dark mode (disables automatic mode).")
    subparsers.add_parser("auto", help="Switch by sunrise/sunset from now on.")
    subparsers.add_parser("toggle", help="Cycle light -> dark -> auto -> light.")
    subparsers.add_parser("status", help="Show configuration, desktop and service status.")

    args = parser.parse_args()
    verbose = debug_requested(args.verbose)
    if args.command == "watch":
        setup_watch_logging(verbose)
    else:
        setup_cli_logging(verbose)
    exit_code = 0

    try:
        log.debug(f"Running command: {args.command}")

        if args.command == "watch":
            run_watch()

        elif args.command in ("light", "dark"):
            mode = Mode.parse(args.command)
            nightsync_core.switch_mode(mode)
            log.info(f"Mode: {mode.label}")

        elif args.command == "auto":
            nightsync_core.enable_auto()
            log.info("Mode: Auto")

        elif args.command == "toggle":
            mode = nightsync_core.toggle()
            log.info(f"Mode: {mode.label}")

        elif args.command == "status":
            print_status(nightsync_core.get_status())

        else:
            log.error(f"Unknown command: {args.command}")
            parser.print_help(sys.stderr)
            exit_code = 1

    except core_exc.NightSyncError as e:
        log.error(f"{AnsiColors.RED}nightsync Error: {e}{AnsiColors.RESET}", exc_info=verbose)
        exit_code = 1
    except Exception as e_main:
        log.error(f"{AnsiColors.RED}An unexpected error occurred in CLI: {e_main}{AnsiColors.RESET}", exc_info=True)
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
