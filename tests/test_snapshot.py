"""Tests for snapshot discovery and mounting."""

import subprocess
from unittest.mock import patch

import pytest

from b2_backup.__util__ import MountFailure
from b2_backup.core.snapshot import (
    MountedSnapshot,
    Snapshot,
    SnapshotLocator,
    find_fstab_source,
    parse_snapshot_listing,
    select_latest,
)

LISTING = """\
NAME                                              SNAPSHOT  REGION     CREATED
s3://example-www@2024-01-06T00:00:05Z             auto      us-west-2  2024-01-06T00:00:05Z
s3://example-www@2024-01-06T01:00:07Z             auto      us-west-2  2024-01-06T01:00:07Z
"""

FSTAB = """\
# <file system> <mount point> <type> <options> <dump> <pass>
UUID=abcd / ext4 defaults 0 1
s3://example-www /var/www objectivefs auto,_netdev 0 0
"""


def completed(stdout="", returncode=0):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout)


@pytest.fixture
def fstab(tmp_path):
    path = tmp_path / "fstab"
    path.write_text(FSTAB)
    return path


class TestSelection:
    """Tests for listing parsing and selection."""

    def test_parse_listing(self):
        """Test that only s3:// lines are candidates."""
        assert parse_snapshot_listing(LISTING) == [
            "s3://example-www@2024-01-06T00:00:05Z",
            "s3://example-www@2024-01-06T01:00:07Z",
        ]

    def test_other_dates_dropped(self):
        """Test that snapshots from another day are never candidates."""
        listing = LISTING + (
            "s3://example-www@2024-01-05T23:00:02Z             auto      us-west-2  "
            "2024-01-05T23:00:02Z\n"
        )
        assert parse_snapshot_listing(listing, "2024-01-06") == [
            "s3://example-www@2024-01-06T00:00:05Z",
            "s3://example-www@2024-01-06T01:00:07Z",
        ]

    def test_latest_is_last_listed(self):
        """Test that the last listed snapshot is selected."""
        assert select_latest(parse_snapshot_listing(LISTING)) == (
            "s3://example-www@2024-01-06T01:00:07Z"
        )

    def test_last_of_day(self):
        """Test selection among two snapshots of the same day."""
        candidates = ["s3://x/2024-01-01T01", "s3://x/2024-01-01T02"]
        assert select_latest(candidates) == "s3://x/2024-01-01T02"

    def test_listed_order_is_kept(self):
        """Test that selection does not re-sort the listing."""
        assert select_latest(["s3://b@2", "s3://b@1"]) == "s3://b@1"

    def test_header_only(self):
        """Test that a listing with no snapshots selects nothing."""
        assert select_latest(parse_snapshot_listing("NAME SNAPSHOT\n")) is None


class TestFstab:
    """Tests for find_fstab_source."""

    def test_finds_bucket(self, fstab):
        """Test the device of the web root mount is returned."""
        assert find_fstab_source(fstab, "/var/www") == "s3://example-www"

    def test_comments_ignored(self, tmp_path):
        """Test that commented-out entries are skipped."""
        path = tmp_path / "fstab"
        path.write_text("#s3://old /var/www objectivefs auto 0 0\n")
        assert find_fstab_source(path, "/var/www") is None


class TestSnapshotLocator:
    """Tests for SnapshotLocator."""

    def test_locate_latest(self, fstab, diag_log):
        """Test locating the latest snapshot of the day."""
        locator = SnapshotLocator(diag_log, fstab=fstab, helper="mount.objectivefs")
        with patch(
            "b2_backup.__util__.subprocess.run", return_value=completed(LISTING)
        ) as mock_run:
            snapshot = locator.locate("2024-01-06")

        assert snapshot == Snapshot("s3://example-www@2024-01-06T01:00:07Z", "2024-01-06")
        assert mock_run.call_args.args[0] == [
            "mount.objectivefs",
            "list",
            "-sz",
            "s3://example-www@2024-01-06",
        ]
        assert "[INFO] OFS bucket: s3://example-www" in diag_log.entries

    def test_no_snapshot_for_date(self, fstab, diag_log):
        """Test that an empty listing is a mount failure."""
        locator = SnapshotLocator(diag_log, fstab=fstab)
        with patch(
            "b2_backup.__util__.subprocess.run", return_value=completed("NAME\n")
        ):
            with pytest.raises(MountFailure, match="matching date 2024-01-06"):
                locator.locate("2024-01-06")

    def test_stale_listing_is_not_mounted(self, fstab, diag_log):
        """Test that a listing with only older snapshots finds nothing."""
        stale = (
            "NAME                                  SNAPSHOT  REGION     CREATED\n"
            "s3://example-www@2024-01-05T23:00:02Z auto      us-west-2  2024-01-05T23:00:02Z\n"
        )
        locator = SnapshotLocator(diag_log, fstab=fstab)
        with patch("b2_backup.__util__.subprocess.run", return_value=completed(stale)):
            with pytest.raises(MountFailure, match="matching date 2024-01-06"):
                locator.locate("2024-01-06")

    def test_listing_failure(self, fstab, diag_log):
        """Test that a failing list command is a mount failure."""
        locator = SnapshotLocator(diag_log, fstab=fstab)
        with patch(
            "b2_backup.__util__.subprocess.run", return_value=completed(returncode=1)
        ):
            with pytest.raises(MountFailure, match="Could not list"):
                locator.locate("2024-01-06")

    def test_web_root_not_mounted(self, tmp_path, diag_log):
        """Test a missing fstab entry."""
        path = tmp_path / "fstab"
        path.write_text("UUID=abcd / ext4 defaults 0 1\n")
        locator = SnapshotLocator(diag_log, fstab=path)
        with pytest.raises(MountFailure, match="Failed to find OFS bucket"):
            locator.find_source_bucket()

    def test_web_root_not_s3(self, tmp_path, diag_log):
        """Test a web root backed by something other than S3."""
        path = tmp_path / "fstab"
        path.write_text("/dev/sdb1 /var/www ext4 defaults 0 2\n")
        locator = SnapshotLocator(diag_log, fstab=path)
        with pytest.raises(MountFailure, match="not an S3 bucket"):
            locator.find_source_bucket()

    def test_unreadable_fstab(self, tmp_path, diag_log):
        """Test that a missing fstab is a mount failure."""
        locator = SnapshotLocator(diag_log, fstab=tmp_path / "missing")
        with pytest.raises(MountFailure, match="Could not read"):
            locator.find_source_bucket()

    def test_mount_validates_sentinel(self, tmp_path, diag_log):
        """Test a successful mount with the sentinel present."""
        mount_point = tmp_path / "mnt"
        mount_point.mkdir()
        (mount_point / "README").write_text("objectivefs\n")
        snapshot = Snapshot("s3://example-www@2024-01-06T01:00:07Z", "2024-01-06")

        locator = SnapshotLocator(diag_log, helper="mount.objectivefs")
        with patch(
            "b2_backup.__util__.subprocess.run", return_value=completed()
        ) as mock_run:
            mounted = locator.mount(snapshot, mount_point)

        assert mounted.validated
        assert mock_run.call_args.args[0] == [
            "mount.objectivefs",
            snapshot.identifier,
            str(mount_point),
        ]

    def test_mount_without_sentinel(self, tmp_path, diag_log):
        """Test that a mount lacking the sentinel is rejected."""
        snapshot = Snapshot("s3://example-www@2024-01-06T01:00:07Z", "2024-01-06")
        locator = SnapshotLocator(diag_log)
        with patch("b2_backup.__util__.subprocess.run", return_value=completed()):
            with pytest.raises(MountFailure, match="no README present"):
                locator.mount(snapshot, tmp_path)

    def test_mount_command_failure(self, tmp_path, diag_log):
        """Test that a failing mount helper is a mount failure."""
        snapshot = Snapshot("s3://example-www@2024-01-06T01:00:07Z", "2024-01-06")
        locator = SnapshotLocator(diag_log)
        with patch(
            "b2_backup.__util__.subprocess.run", return_value=completed(returncode=32)
        ):
            with pytest.raises(MountFailure, match="exit code 32"):
                locator.mount(snapshot, tmp_path)


class TestMountedSnapshot:
    """Tests for MountedSnapshot.unmount."""

    def _mounted(self, tmp_path, diag_log, sentinel=True):
        if sentinel:
            (tmp_path / "README").write_text("")
        return MountedSnapshot(Snapshot("s3://b@1", "2024-01-06"), tmp_path, "README", diag_log)

    def test_unmount_once(self, tmp_path, diag_log):
        """Test that a validated mount is unmounted exactly once."""
        mounted = self._mounted(tmp_path, diag_log)
        mounted.validate()
        with patch(
            "b2_backup.__util__.subprocess.run", return_value=completed()
        ) as mock_run:
            mounted.unmount()
            mounted.unmount()

        mock_run.assert_called_once()
        assert mock_run.call_args.args[0] == ["umount", str(tmp_path)]

    def test_unvalidated_not_unmounted(self, tmp_path, diag_log):
        """Test that cleanup never unmounts an unvalidated mount."""
        mounted = self._mounted(tmp_path, diag_log, sentinel=False)
        with pytest.raises(MountFailure):
            mounted.validate()
        with patch("b2_backup.__util__.subprocess.run") as mock_run:
            mounted.unmount()
        mock_run.assert_not_called()
