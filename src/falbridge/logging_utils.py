"""Centralised logging setup for falbridge processes."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional, Union

__all__ = ["configure_logging"]

_MANAGED_HANDLER_FLAG = "_falbridge_managed_handler"

# uvicorn installs its own handlers; hand its records to the root handlers
_SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")
# httpx logs every upstream request at INFO
_CLIENT_LOGGERS = ("httpx", "httpcore")


def _default_log_directory() -> Path:
    """Return the directory for log files (``FALBRIDGE_LOG_DIR`` or ./logs)."""

    env_override = os.environ.get("FALBRIDGE_LOG_DIR")
    if env_override:
        return Path(env_override).expanduser()
    return Path.cwd() / "logs"


def _remove_managed_handlers(logger: logging.Logger) -> None:
    """Detach any handlers previously installed by :func:`configure_logging`."""

    for handler in list(logger.handlers):
        if getattr(handler, _MANAGED_HANDLER_FLAG, False):
            logger.removeHandler(handler)
            handler.close()


def _route_library_loggers(level: int) -> None:
    for name in _SERVER_LOGGERS:
        lib_logger = logging.getLogger(name)
        for handler in list(lib_logger.handlers):
            lib_logger.removeHandler(handler)
        lib_logger.propagate = True
    # Upstream request lines only show up when debugging the proxy itself
    client_level = level if level <= logging.DEBUG else logging.WARNING
    for name in _CLIENT_LOGGERS:
        logging.getLogger(name).setLevel(client_level)


def configure_logging(
    log_name: str,
    *,
    level: Union[int, str] = logging.INFO,
    log_dir: Optional[Path] = None,
    include_console: bool = True,
) -> Path:
    """Configure root logging to write to a named file inside the log directory."""

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    target_directory = (
        Path(log_dir).expanduser() if log_dir else _default_log_directory()
    )
    target_directory.mkdir(parents=True, exist_ok=True)
    log_path = target_directory / f"{log_name}.log"

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    _remove_managed_handlers(root_logger)

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    setattr(file_handler, _MANAGED_HANDLER_FLAG, True)
    root_logger.addHandler(file_handler)

    if include_console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        setattr(console_handler, _MANAGED_HANDLER_FLAG, True)
        root_logger.addHandler(console_handler)

    _route_library_loggers(level)
    logging.captureWarnings(True)

    return log_path
