"""Locate and mount the day's ObjectiveFS snapshot of the web root.

The web root is an ObjectiveFS filesystem backed by an S3 bucket. Its fstab
entry names the bucket; ``mount.objectivefs list -sz <bucket>@<date>`` lists
that day's snapshots (UTC), and the last one listed is mounted on a scratch
directory. A mount only counts once the sentinel file is visible.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from ..__util__ import CommandError, MountFailure, run_command

logger = logging.getLogger(__name__)

SNAPSHOT_MARKER = "s3://"


@dataclass(frozen=True)
class Snapshot:
    identifier: str
    date: str

    def __str__(self) -> str:
        return self.identifier


def select_latest(candidates: list[str]) -> str | None:
    """Pick the last candidate in listed order.

    The listing tool already sorts snapshots chronologically; no further
    ordering is applied.
    """
    return candidates[-1] if candidates else None


def parse_snapshot_listing(output: str, date: str | None = None) -> list[str]:
    """Extract snapshot identifiers, skipping the header line.

    With ``date``, identifiers not carrying that date are dropped as well.
    """
    candidates = []
    for line in output.splitlines():
        if not line.startswith(SNAPSHOT_MARKER):
            continue
        identifier = line.split()[0]
        if date is not None and date not in identifier:
            logger.warning("Ignoring snapshot %s not taken on %s", identifier, date)
            continue
        candidates.append(identifier)
    return candidates


def find_fstab_source(fstab, mount_root: str) -> str | None:
    """Return the device field of the fstab entry mounted on ``mount_root``."""
    with open(fstab, encoding="utf-8") as f:
        for line in f:
            fields = line.split()
            if len(fields) < 2 or fields[0].startswith("#"):
                continue
            if fields[1] == mount_root:
                return fields[0]
    return None


class MountedSnapshot:
    """A snapshot mounted on a scratch directory."""

    def __init__(self, snapshot: Snapshot, mount_point: Path, sentinel: str, log) -> None:
        self.snapshot = snapshot
        self.mount_point = Path(mount_point)
        self.sentinel = sentinel
        self.log = log
        self.validated = False
        self.mounted = True

    @property
    def sentinel_path(self) -> Path:
        return self.mount_point / self.sentinel

    def validate(self) -> None:
        if not self.sentinel_path.is_file():
            raise MountFailure(
                f"Failed to validate mount of OFS snapshot {self.snapshot}: "
                f"no {self.sentinel} present"
            )
        self.validated = True

    def unmount(self) -> None:
        """Unmount if the mount was validated. Safe to call repeatedly."""
        if not (self.mounted and self.validated):
            return
        self.mounted = False
        run_command(["umount", self.mount_point], self.log)
        logger.debug("Unmounted %s", self.mount_point)


class SnapshotLocator:
    def __init__(
        self,
        log,
        fstab="/etc/fstab",
        mount_root: str = "/var/www",
        helper: str = "/sbin/mount.objectivefs",
        sentinel: str = "README",
    ) -> None:
        self.log = log
        self.fstab = fstab
        self.mount_root = mount_root
        self.helper = helper
        self.sentinel = sentinel

    def find_source_bucket(self) -> str:
        try:
            bucket = find_fstab_source(self.fstab, self.mount_root)
        except OSError as e:
            raise MountFailure(f"Could not read {self.fstab}: {e}") from e
        if not bucket:
            raise MountFailure(f"Failed to find OFS bucket mounted on {self.mount_root}")
        if not bucket.startswith(SNAPSHOT_MARKER):
            raise MountFailure(
                f"{self.mount_root} is mounted to {bucket} which is not an S3 bucket"
            )
        self.log.info(f"OFS bucket: {bucket}")
        return bucket

    def list_candidates(self, bucket: str, date: str) -> list[str]:
        try:
            result = run_command(
                [self.helper, "list", "-sz", f"{bucket}@{date}"], self.log, capture=True
            )
        except CommandError as e:
            raise MountFailure(
                f"Could not list OFS snapshots in {bucket} (exit code {e.returncode})"
            ) from e
        return parse_snapshot_listing(result.stdout, date)

    def locate(self, date: str) -> Snapshot:
        """Find the latest snapshot taken on ``date`` (YYYY-MM-DD)."""
        bucket = self.find_source_bucket()
        latest = select_latest(self.list_candidates(bucket, date))
        if latest is None:
            raise MountFailure(
                f"Could not find OFS snapshot in {bucket} matching date {date}"
            )
        return Snapshot(identifier=latest, date=date)

    def mount(self, snapshot: Snapshot, mount_point) -> MountedSnapshot:
        """Mount and validate ``snapshot``.

        Raises:
            MountFailure: If mounting fails or the sentinel is missing. An
                unvalidated mount is never unmounted by cleanup.
        """
        self.log.info(f"Mounting OFS snapshot {snapshot}")
        try:
            run_command([self.helper, snapshot.identifier, mount_point], self.log)
        except CommandError as e:
            raise MountFailure(
                f"Failed to mount OFS snapshot {snapshot} (exit code {e.returncode})"
            ) from e
        mounted = MountedSnapshot(snapshot, Path(mount_point), self.sentinel, self.log)
        mounted.validate()
        return mounted
