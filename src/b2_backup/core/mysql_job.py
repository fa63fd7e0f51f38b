"""MySQL jobs: dump every database locally, optionally mirroring the dump
directory to the bucket."""

import logging
import os
from pathlib import Path

from .. import hostname
from ..__util__ import LockContention
from .database import DatabaseDumpPipeline, MysqlClient
from .job import BackupJob, JobCleanup
from .lock import LockGuard, annotation_for
from .result import UnitOutcome
from .sync import SyncJob, SyncPipeline

logger = logging.getLogger(__name__)


def create_dumper(mysql_config, log) -> DatabaseDumpPipeline:
    client = MysqlClient(
        mysql_config.host, mysql_config.port, mysql_config.defaults_file, log
    )
    return DatabaseDumpPipeline(
        client, log, mysql_config.backup_dir, mysql_config.prune_days
    )


class MysqlDumpJob(BackupJob):
    """Dump databases into the local backup directory only."""

    name = "mysql-backups"
    required_tools = ("mysql", "mysqldump")
    needs_credentials = False

    def __init__(self, config, *, dumper=None, **kwargs) -> None:
        self.mysql = config.mysql
        super().__init__(config, **kwargs)
        self._dumper = dumper

    @property
    def dumper(self) -> DatabaseDumpPipeline:
        if self._dumper is None:
            self._dumper = create_dumper(self.mysql, self.log)
        return self._dumper

    @property
    def lock_path(self) -> Path:
        return Path(self.mysql.dump_lock_file)

    def subject(self) -> str:
        return f"MySQL backup failure: {hostname()} ({self.mysql.host}:{self.mysql.port})"

    def startup_checks(self) -> list:
        return [*super().startup_checks(), self.dumper.preflight]

    def run_locked(self, cleanup: JobCleanup) -> None:
        self.result.extend(self.dumper.run(self.date))


class MysqlBackupJob(MysqlDumpJob):
    """Dump databases, then mirror the backup directory to the bucket.

    The dumps run under the same per-host lock as a standalone dump job, so
    the two never write or prune the dump directory at the same time. If a
    standalone dump holds it, the dumps are recorded as failed and whatever
    is already on disk is still mirrored.
    """

    name = "b2-mysql-backups"
    subject_prefix = "B2 MySQL backup sync failure"
    required_tools = ("aws", "b2", "mysql", "mysqldump")
    needs_credentials = True

    @property
    def lock_path(self) -> Path:
        return Path(self.mysql.lock_file)

    def subject(self) -> str:
        return f"{self.subject_prefix}: {hostname()}"

    def run_locked(self, cleanup: JobCleanup) -> None:
        try:
            dump_lock = LockGuard(self.mysql.dump_lock_file).acquire(
                annotation_for(os.getpid(), self.timestamp)
            )
        except (LockContention, OSError) as e:
            self.log.error(f"Skipping database dumps: {e}")
            self.result.add(UnitOutcome.failure("databases", str(e)))
        else:
            with dump_lock:
                super().run_locked(cleanup)

        self.authorize()
        settings = self.config.global_config
        self.result.add(
            SyncPipeline(self.b2, self.log).run(
                SyncJob(
                    source=Path(self.mysql.backup_dir),
                    destination=f"b2://{self.bucket.name}/{self.mysql.remote_dir.strip('/')}",
                    retention_days=settings.keep_days,
                    threads=settings.threads,
                    label="mysql sync",
                )
            )
        )
