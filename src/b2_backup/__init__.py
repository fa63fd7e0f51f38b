"""b2-backup: b2_backup/__init__.py."""

import socket
from datetime import datetime


__version__ = "0.3.0"


def job_date(moment: datetime) -> str:
    """Date stamp used for snapshot lookup and dump file names."""
    return moment.strftime("%Y-%m-%d")


def job_timestamp(moment: datetime) -> str:
    """Timestamp used for archive names and lock annotations"""
    return f"{job_date(moment)}-{moment.strftime('%H-%M-%S')}"


def hostname() -> str:
    return socket.gethostname()
