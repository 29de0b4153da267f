"""
Centralized Logging Configuration for the façade reconciler

All Python logging goes to one rotating file plus the console:

    logs/facade/system.log

Usage in any module:
    from facade.core.logging_config import setup_logging, get_logger

    # Call once at entrypoint startup (CLI, service wrapper)
    setup_logging()

    # Get a logger for your module
    logger = get_logger(__name__)
    logger.info("My message")

The reconciliation core never calls setup_logging() itself; library users keep
control over handlers.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

# =============================================================================
# Configuration
# =============================================================================

LOG_DIR = Path("logs/facade")
SYSTEM_LOG_FILE = LOG_DIR / "system.log"
MAX_LOG_SIZE = 10 * 1024 * 1024  # 10 MB per file
BACKUP_COUNT = 5

DEFAULT_LOG_LEVEL = "INFO"

LOG_FORMAT = "%(asctime)s | %(levelname)-5s | %(name)-30s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-5s | %(name)-20s | %(message)s"
CONSOLE_DATE_FORMAT = "%H:%M:%S"

# =============================================================================
# Global State
# =============================================================================

_logging_configured = False
_file_handler: Optional[RotatingFileHandler] = None
_console_handler: Optional[logging.StreamHandler] = None


# =============================================================================
# Setup Functions
# =============================================================================


def setup_logging(
    level: Optional[str] = None,
    log_to_console: bool = True,
    log_to_file: bool = True,
    service_name: str = "facade",
    log_dir: Optional[Path] = None,
) -> None:
    """
    Configure logging for a reconciler entrypoint.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR). Defaults to LOG_LEVEL env var or INFO.
        log_to_console: Whether to also log to stderr (default True)
        log_to_file: Whether to log to system.log (default True)
        service_name: Identifier written in the startup marker
        log_dir: Override for the log directory (default logs/facade)
    """
    global _logging_configured, _file_handler, _console_handler

    if _logging_configured:
        return

    if level is None:
        level = os.getenv("LOG_LEVEL", DEFAULT_LOG_LEVEL)
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # === File Handler (system.log) ===
    if log_to_file:
        directory = log_dir or LOG_DIR
        directory.mkdir(parents=True, exist_ok=True)
        _file_handler = RotatingFileHandler(
            directory / SYSTEM_LOG_FILE.name,
            maxBytes=MAX_LOG_SIZE,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
        _file_handler.setLevel(log_level)
        _file_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        root_logger.addHandler(_file_handler)

    # === Console Handler ===
    # stderr, so CLI output on stdout stays machine-readable
    if log_to_console:
        _console_handler = logging.StreamHandler(sys.stderr)
        _console_handler.setLevel(log_level)
        _console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, CONSOLE_DATE_FORMAT))
        root_logger.addHandler(_console_handler)

    _logging_configured = True

    logger = logging.getLogger(service_name)
    logger.debug(f"LOGGING INITIALIZED - {service_name.upper()} | level={level.upper()}")


def reset_logging() -> None:
    """Forget the configured state (tests re-run setup_logging with new options)."""
    global _logging_configured, _file_handler, _console_handler

    root_logger = logging.getLogger()
    if _file_handler is not None:
        root_logger.removeHandler(_file_handler)
        _file_handler.close()
        _file_handler = None
    if _console_handler is not None:
        root_logger.removeHandler(_console_handler)
        _console_handler = None
    _logging_configured = False


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a module.

    Args:
        name: Usually __name__ to get the module's dotted path
    """
    return logging.getLogger(name)


# =============================================================================
# Convenience Functions
# =============================================================================


def log_phase(logger: logging.Logger, facade: str, environment: str, phase: str, status: str):
    """Log a reconciliation phase transition with standard format."""
    logger.info(f"[{facade}/{environment}] PHASE | {phase} | {status}")


def log_batch(logger: logging.Logger, facade: str, environment: str, action: str, target: str, size: int):
    """Log one grouped batch with standard format."""
    logger.info(f"[{facade}/{environment}] BATCH | {action} | target={target} | capabilities={size}")


def log_upgrade_end(
    logger: logging.Logger,
    facade: str,
    environment: str,
    success: bool,
    added: int = 0,
    replaced: int = 0,
    removed: int = 0,
):
    """Log the end of an upgrade with standard format."""
    status = "SUCCESS" if success else "FAILED"
    logger.info(
        f"[{facade}/{environment}] UPGRADE END | {status} | "
        f"added={added} replaced={replaced} removed={removed}"
    )
