# pyright: standard

"""b2-backup: b2_backup/__logger__.py
A common logger for the console (rich) and, for cron runs, syslog.
"""

import logging
import logging.handlers
import os

from rich.console import Console
from rich.logging import RichHandler

# Initialize basic console and handler
cons = Console(stderr=True)
rich_handler = RichHandler(console=cons, show_path=False)
# Create a logger directly
logger = logging.getLogger("b2_backup")

SYSLOG_SOCKET = "/dev/log"


def create_syslog_handler(tag: str, address: str = SYSLOG_SOCKET):
    """Return a syslog handler identifying messages with ``tag[pid]``.

    Returns None when no local syslog socket is available.
    """
    if not os.path.exists(address):
        return None
    try:
        handler = logging.handlers.SysLogHandler(
            address=address, facility=logging.handlers.SysLogHandler.LOG_USER
        )
    except OSError:
        return None
    handler.ident = f"{tag}[{os.getpid()}]: "
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.setLevel(logging.INFO)
    return handler


def create_logger(level: str = "INFO", syslog_tag: str | None = None) -> None:
    """Helper function to setup logging for interactive and cron runs."""
    # pylint: disable=global-statement
    global cons, rich_handler

    cons = Console(stderr=True)
    rich_handler = RichHandler(console=cons, show_path=False)

    handlers: list[logging.Handler] = [rich_handler]
    if syslog_tag:
        syslog_handler = create_syslog_handler(syslog_tag)
        if syslog_handler is not None:
            handlers.append(syslog_handler)

    logging.basicConfig(
        format="%(message)s",
        datefmt="%H:%M:%S",
        level=getattr(logging, level.upper(), logging.INFO),
        handlers=handlers,
        force=True,
    )
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
