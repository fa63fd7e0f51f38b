"""Job commands: files, mysql, dump."""

import argparse
import logging

from ..core.files_job import FilesBackupJob
from ..core.mysql_job import MysqlBackupJob, MysqlDumpJob
from .common import load_job_config, setup_job_logging

logger = logging.getLogger(__name__)


def _prepare(args: argparse.Namespace, section: str):
    """Load config and set up logging; None if the job cannot be configured."""
    setup_job_logging(args)
    config = load_job_config(args)
    if config is None:
        return None

    if getattr(config, section) is None:
        logger.error("No [%s] section configured", section)
        return None

    setup_job_logging(args, config)
    return config


def execute_files(args: argparse.Namespace) -> int:
    """Execute the files command.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    config = _prepare(args, "files")
    if config is None:
        return 1

    job = FilesBackupJob(config, force_archive=getattr(args, "force_archive", False))
    return job.execute()


def execute_mysql(args: argparse.Namespace) -> int:
    """Execute the mysql command: dump, then mirror the dump directory."""
    config = _prepare(args, "mysql")
    if config is None:
        return 1

    return MysqlBackupJob(config).execute()


def execute_dump(args: argparse.Namespace) -> int:
    """Execute the dump command: local dumps only."""
    config = _prepare(args, "mysql")
    if config is None:
        return 1

    return MysqlDumpJob(config).execute()
