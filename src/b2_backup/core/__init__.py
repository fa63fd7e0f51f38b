"""Core backup operations for b2-backup.

Locking, credential lookup, snapshot handling, the sync/archive/dump
pipelines, notification, and the job template tying them together.
"""

from .result import JobResult, UnitOutcome

__all__ = [
    "JobResult",
    "UnitOutcome",
]
