"""Mirror a local directory tree to the bucket."""

import logging
from dataclasses import dataclass
from pathlib import Path

from ..__util__ import CommandError, SyncFailure
from .result import UnitOutcome

logger = logging.getLogger(__name__)


@dataclass
class SyncJob:
    """One directory mirror.

    Attributes:
        source: Local directory to mirror
        destination: Remote ``b2://bucket/path`` URL
        retention_days: Days to keep hidden or replaced revisions
        threads: Transfer threads used by the b2 tool
        label: Name used in log messages and the unit outcome
    """

    source: Path
    destination: str
    retention_days: int
    threads: int
    label: str = "sync"


class SyncPipeline:
    def __init__(self, client, log) -> None:
        self.client = client
        self.log = log

    def _sync(self, job: SyncJob) -> None:
        try:
            self.client.sync(
                job.source, job.destination, job.retention_days, threads=job.threads
            )
        except CommandError as e:
            raise SyncFailure(
                job.label,
                f"Sync of {job.source} to {job.destination} failed "
                f"(exit code {e.returncode}); additional logs may be "
                "available above this message",
            ) from e

    def run(self, job: SyncJob) -> UnitOutcome:
        """Run the mirror; a failure becomes a failed outcome, never an exception."""
        self.log.info(f"Running sync of {job.source} to {job.destination}")
        try:
            self._sync(job)
        except SyncFailure as e:
            self.log.error(e.detail)
            return UnitOutcome.failure(job.label, e.detail)
        self.log.info("Sync successful")
        return UnitOutcome.success(job.label)
