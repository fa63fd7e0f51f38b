"""Web root backup: daily mirror and weekly per-vhost archives of the
latest ObjectiveFS snapshot."""

import logging
import tempfile
from pathlib import Path

from .archive import ArchivePipeline, is_archive_day
from .job import BackupJob, JobCleanup
from .snapshot import SnapshotLocator
from .sync import SyncJob, SyncPipeline

logger = logging.getLogger(__name__)


class FilesBackupJob(BackupJob):
    name = "b2-backups"
    subject_prefix = "B2 backup failure"

    def __init__(self, config, *, locator=None, force_archive: bool = False, **kwargs) -> None:
        super().__init__(config, **kwargs)
        self.files = config.files
        self.force_archive = force_archive
        self._locator = locator

    @property
    def locator(self) -> SnapshotLocator:
        if self._locator is None:
            self._locator = SnapshotLocator(
                self.log,
                fstab=self.files.fstab,
                mount_root=self.files.mount_root,
                helper=self.files.mount_helper,
                sentinel=self.files.sentinel,
            )
        return self._locator

    @property
    def lock_path(self) -> Path:
        return Path(self.files.lock_file)

    def archive_due(self) -> bool:
        return self.force_archive or is_archive_day(
            self.files.archive_day, self.started.date()
        )

    def run_locked(self, cleanup: JobCleanup) -> None:
        self.authorize()

        cleanup.scratch_dir = Path(
            tempfile.mkdtemp(prefix="b2-backups.mount.", dir=self.files.tmp_dir)
        )
        snapshot = self.locator.locate(self.date)
        cleanup.mounted = self.locator.mount(snapshot, cleanup.scratch_dir)

        unit_root = cleanup.scratch_dir / self.files.unit_dir
        settings = self.config.global_config

        self.result.add(
            SyncPipeline(self.b2, self.log).run(
                SyncJob(
                    source=unit_root,
                    destination=f"b2://{self.bucket.name}/{self.files.remote_dir.strip('/')}/",
                    retention_days=settings.keep_days,
                    threads=settings.threads,
                    label="daily sync",
                )
            )
        )

        if not self.archive_due():
            self.log.info(
                f"Skipping weekly archive (scheduled for {self.files.archive_day})"
            )
            return

        archiver = ArchivePipeline(
            self.b2,
            self.log,
            self.bucket.name,
            self.files.archive_dir,
            tmp_dir=self.files.tmp_dir,
        )
        self.result.extend(archiver.run(unit_root, self.files.exclude, self.timestamp))
