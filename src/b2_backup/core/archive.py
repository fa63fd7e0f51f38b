"""Weekly per-vhost archives.

Each vhost directory of the mounted snapshot is packed into a tar.gz on
local disk (the b2 tool cannot upload from a pipe) and uploaded under a
timestamped name. A failing vhost is recorded and the loop moves on.
"""

import logging
import os
import tarfile
import tempfile
from datetime import date
from pathlib import Path

from ..__util__ import CommandError, UnitFailure
from .result import UnitOutcome

logger = logging.getLogger(__name__)

ARCHIVE_EXTENSION = "tar.gz"

# Indexed by date.weekday(); calendar.day_name is locale dependent
WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


def is_archive_day(day_name: str, today: date) -> bool:
    """Whether ``today`` falls on the configured weekday (e.g. "saturday")."""
    return WEEKDAYS[today.weekday()] == day_name.lower()


def discover_units(root, exclude) -> list[str]:
    """Immediate subdirectories of ``root``, sorted, minus ``exclude``."""
    excluded = set(exclude)
    return sorted(
        entry.name
        for entry in Path(root).iterdir()
        if entry.is_dir() and entry.name not in excluded
    )


def remote_archive_name(remote_root: str, unit: str, timestamp: str) -> str:
    return f"{remote_root.strip('/')}/{unit}-{timestamp}.{ARCHIVE_EXTENSION}"


def create_archive(source_dir: Path, tmp_dir=None) -> Path:
    """Pack ``source_dir`` into a private temporary tar.gz and return its path."""
    fd, name = tempfile.mkstemp(
        prefix="b2-backups.", suffix=f".{ARCHIVE_EXTENSION}", dir=tmp_dir
    )
    os.close(fd)
    path = Path(name)
    try:
        with tarfile.open(path, "w:gz") as tar:
            tar.add(source_dir, arcname=".")
    except BaseException:
        path.unlink(missing_ok=True)
        raise
    return path


class ArchivePipeline:
    def __init__(self, client, log, bucket: str, remote_root: str, tmp_dir=None) -> None:
        self.client = client
        self.log = log
        self.bucket = bucket
        self.remote_root = remote_root
        self.tmp_dir = tmp_dir

    def _archive_unit(self, unit: str, source_dir: Path, timestamp: str) -> None:
        target = remote_archive_name(self.remote_root, unit, timestamp)
        self.log.info(
            f"Archiving vhost {unit} from {source_dir} to b2://{self.bucket}/{target}"
        )

        try:
            tarball = create_archive(source_dir, self.tmp_dir)
        except (OSError, tarfile.TarError) as e:
            raise UnitFailure(
                unit, f"[vhost {unit}] Failed to archive {source_dir}: {e}"
            ) from e

        try:
            self.client.upload_file(self.bucket, tarball, target)
        except CommandError as e:
            raise UnitFailure(
                unit,
                f"[vhost {unit}] Failed to upload temporary file {tarball} to "
                f"b2://{self.bucket}/{target} (exit code {e.returncode})",
            ) from e
        finally:
            tarball.unlink(missing_ok=True)

        self.log.info(f"Archived vhost {unit} to b2://{self.bucket}/{target}")

    def run(self, root, exclude, timestamp: str) -> list[UnitOutcome]:
        """Archive every unit under ``root``; one outcome per unit."""
        root = Path(root)
        self.log.info(f"Running weekly archive of {root}")
        try:
            units = discover_units(root, exclude)
        except OSError as e:
            detail = f"Failed to list vhosts in {root}: {e}"
            self.log.error(detail)
            return [UnitOutcome.failure("vhosts", detail)]

        self.log.info(f"Discovered vhosts: {' '.join(units)}")

        outcomes = []
        for unit in units:
            try:
                self._archive_unit(unit, root / unit, timestamp)
            except UnitFailure as e:
                self.log.error(e.detail)
                outcomes.append(UnitOutcome.failure(f"vhost:{unit}", e.detail))
                continue
            outcomes.append(UnitOutcome.success(f"vhost:{unit}"))
        return outcomes
