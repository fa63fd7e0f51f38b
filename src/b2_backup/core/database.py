"""MySQL dumps into a locally retained directory.

Databases are dumped one at a time (to bound load on the server) with a
consistent, non-locking snapshot, and gzipped to
``<backup_dir>/<database>-<YYYY-MM-DD>.sql.gz``. Old dumps are rotated out
only when every dump of the run succeeded.
"""

import gzip
import logging
import shutil
import subprocess
import time
from pathlib import Path

from ..__util__ import (
    COMMAND_NOT_FOUND,
    CommandError,
    PreflightFailure,
    PruneFailure,
    UnitFailure,
    run_command,
)
from .result import UnitOutcome

logger = logging.getLogger(__name__)

# System-managed databases; restoring these is never wanted
SYSTEM_DATABASES = frozenset(
    {"information_schema", "performance_schema", "mysql", "sys", "tmp"}
)

DUMP_EXTENSION = "sql.gz"

SECONDS_PER_DAY = 24 * 60 * 60


def is_ignored_database(name: str) -> bool:
    return name in SYSTEM_DATABASES


def dump_path(backup_dir, database: str, date: str) -> Path:
    return Path(backup_dir) / f"{database}-{date}.{DUMP_EXTENSION}"


class MysqlClient:
    """Run ``mysql``/``mysqldump`` against one server."""

    def __init__(
        self,
        host: str,
        port: int,
        defaults_file: str,
        log=None,
        mysql: str = "mysql",
        mysqldump: str = "mysqldump",
    ) -> None:
        self.host = host
        self.port = port
        self.defaults_file = defaults_file
        self.log = log
        self.mysql = mysql
        self.mysqldump = mysqldump

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def connect_args(self) -> list[str]:
        # --defaults-file must come first
        return [
            f"--defaults-file={self.defaults_file}",
            f"--host={self.host}",
            f"--port={self.port}",
        ]

    def ping(self) -> None:
        """Open a connection with an empty query to validate credentials."""
        run_command([self.mysql, *self.connect_args, "--batch", "--execute", ""], self.log)

    def list_databases(self) -> list[str]:
        result = run_command(
            [
                self.mysql,
                *self.connect_args,
                "--batch",
                "--skip-column-names",
                "--execute",
                "SHOW DATABASES",
            ],
            self.log,
            capture=True,
        )
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def dump(self, database: str, outfile: Path) -> None:
        """Stream ``mysqldump`` output through gzip into ``outfile``."""
        cmd = [
            self.mysqldump,
            *self.connect_args,
            "--opt",
            "--single-transaction",
            database,
        ]
        stderr = None
        if self.log is not None:
            self.log.flush()
            stderr = self.log.stream

        logger.debug("Executing: %s > %s", " ".join(cmd), outfile)
        with gzip.open(outfile, "wb") as out:
            try:
                proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=stderr)
            except FileNotFoundError:
                raise CommandError(cmd, COMMAND_NOT_FOUND)
            try:
                shutil.copyfileobj(proc.stdout, out)
            finally:
                proc.stdout.close()
                returncode = proc.wait()
        if returncode != 0:
            raise CommandError(cmd, returncode)


def prune_old_files(directory, max_age_days: int, now: float | None = None) -> list[Path]:
    """Delete regular files whose ctime is more than ``max_age_days`` whole days old.

    Returns:
        The deleted paths

    Raises:
        PruneFailure: If any file could not be examined or removed
    """
    now = time.time() if now is None else now
    deleted = []
    errors = []
    for path in sorted(Path(directory).rglob("*")):
        try:
            if not path.is_file() or path.is_symlink():
                continue
            age_days = int((now - path.stat().st_ctime) // SECONDS_PER_DAY)
            if age_days > max_age_days:
                path.unlink()
                deleted.append(path)
        except OSError as e:
            errors.append(f"{path}: {e}")
    if errors:
        raise PruneFailure("; ".join(errors))
    return deleted


class DatabaseDumpPipeline:
    def __init__(self, client: MysqlClient, log, backup_dir, prune_days: int = 7) -> None:
        self.client = client
        self.log = log
        self.backup_dir = Path(backup_dir)
        self.prune_days = prune_days

    def preflight(self) -> None:
        """Ensure the dump directory exists and the server accepts us.

        Both checks run; failures are logged and reported together.
        """
        failed = False

        self.log.info(f"Ensuring {self.backup_dir} exists")
        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.log.error(f"Failed to create directory {self.backup_dir}: {e}")
            failed = True

        self.log.info(f"Pinging MySQL at {self.client}")
        try:
            self.client.ping()
        except CommandError as e:
            self.log.error(f"Failed to connect to MySQL (exit code {e.returncode})")
            failed = True

        if failed:
            raise PreflightFailure("MySQL preflight checks failed")

    def enumerate(self) -> list[str]:
        """Databases to back up, in server order, system databases removed.

        Raises:
            CommandError: If the server cannot be queried
        """
        self.log.info("Determining databases to back up")
        databases = []
        for name in self.client.list_databases():
            if is_ignored_database(name):
                self.log.info(f"Ignoring database {name}")
            else:
                databases.append(name)
        return databases

    def _dump_one(self, database: str, date: str) -> Path:
        outfile = dump_path(self.backup_dir, database, date)
        try:
            self.client.dump(database, outfile)
        except (CommandError, OSError) as e:
            outfile.unlink(missing_ok=True)
            code = e.returncode if isinstance(e, CommandError) else e.errno
            raise UnitFailure(
                database,
                f"Failed to dump {self.client}/{database} to {outfile} (exit code {code})",
            ) from e
        return outfile

    def prune(self) -> None:
        """Rotate old dumps; failures are logged only."""
        self.log.info(f"Rotating backups in {self.backup_dir}")
        try:
            deleted = prune_old_files(self.backup_dir, self.prune_days)
        except PruneFailure as e:
            self.log.error(f"Failed to rotate backups: {e}")
            return
        for path in deleted:
            self.log.info(f"Removed old backup {path}")

    def run(self, date: str) -> list[UnitOutcome]:
        """Dump every database serially; prune only if all succeeded."""
        try:
            databases = self.enumerate()
        except CommandError as e:
            detail = f"Failed to list databases on {self.client} (exit code {e.returncode})"
            self.log.error(detail)
            self.log.error("NOTE: Backups have not been rotated.")
            return [UnitOutcome.failure("databases", detail)]

        self.log.info(f"Databases to be backed up: {' '.join(databases)}")

        outcomes = []
        for database in databases:
            self.log.info(f"Dumping database {database}")
            try:
                outfile = self._dump_one(database, date)
            except UnitFailure as e:
                self.log.error(e.detail)
                outcomes.append(UnitOutcome.failure(f"database:{database}", e.detail))
                continue
            self.log.info(f"Backed up to {outfile}")
            outcomes.append(UnitOutcome.success(f"database:{database}"))

        if all(o.ok for o in outcomes):
            self.prune()
        else:
            self.log.error(
                "One or more databases failed to back up. "
                "Please see the log contents above this message."
            )
            self.log.error("NOTE: Backups have not been rotated.")
        return outcomes
