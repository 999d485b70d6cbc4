"""
Logging setup for the scheduling service.

Container runtimes (Docker, Kubernetes, Fly.io) stamp their own timestamps, so
the formatter drops asctime there. LOG_LEVEL in the environment overrides the
default level.
"""
import logging
import os
import sys
from typing import Optional

CONTAINER_FORMAT = "[%(name)s] %(levelname)s: %(message)s"
LOCAL_FORMAT = "[%(asctime)s] [%(name)s] %(levelname)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Per-request chatter from the HTTP stack and the scheduler
NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "apscheduler", "postgrest", "supabase")


def running_in_container() -> bool:
    return bool(
        os.environ.get("FLY_APP_NAME")
        or os.environ.get("KUBERNETES_SERVICE_HOST")
        or os.path.exists("/.dockerenv")
    )


def resolve_level(level: Optional[int] = None) -> int:
    if level is not None:
        return level
    resolved = logging.getLevelName(os.environ.get("LOG_LEVEL", "INFO").upper())
    # getLevelName returns "Level X" for unknown names
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(level: Optional[int] = None, force: bool = False) -> None:
    """
    Attach a stdout handler to the root logger.

    Args:
        level: Explicit level; LOG_LEVEL or INFO when omitted
        force: Replace handlers installed earlier (uvicorn, pytest)
    """
    root_logger = logging.getLogger()
    if root_logger.handlers and not force:
        return

    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)

    level = resolve_level(level)
    if running_in_container():
        formatter = logging.Formatter(CONTAINER_FORMAT)
    else:
        formatter = logging.Formatter(LOCAL_FORMAT, datefmt=DATE_FORMAT)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(formatter)
    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
