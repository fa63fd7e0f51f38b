"""Wrapper around the ``b2`` command line tool.

Credentials are handed to the tool through its environment
(``B2_APPLICATION_KEY_ID``/``B2_APPLICATION_KEY``), never on the command line.
"""

import logging
import os

from ..__util__ import run_command

logger = logging.getLogger(__name__)


class B2Client:
    """Run ``b2`` subcommands with a shared credential set and thread pool."""

    def __init__(self, credentials, threads: int, log=None, b2: str = "b2") -> None:
        self.credentials = credentials
        self.threads = threads
        self.log = log
        self.b2 = b2

    def _env(self) -> dict[str, str]:
        env = os.environ.copy()
        env.update(self.credentials.as_env())
        return env

    def _global_args(self, threads: int | None = None) -> list[str]:
        return ["--no-progress", "--threads", str(threads or self.threads)]

    def _run(self, *args) -> None:
        run_command([self.b2, *args], self.log, env=self._env())

    def authorize(self) -> None:
        """Log in to B2 with the configured application key."""
        self._run("account", "authorize")

    def sync(
        self, source, destination: str, keep_days: int, threads: int | None = None
    ) -> None:
        """Mirror ``source`` to ``destination`` (a ``b2://`` URL).

        Symlinks are skipped, a newer remote copy is replaced, and files
        missing locally are hidden remotely, with revisions older than
        ``keep_days`` purged.
        """
        self._run(
            "sync",
            *self._global_args(threads),
            "--exclude-all-symlinks",
            "--replace-newer",
            "--keep-days",
            str(keep_days),
            str(source),
            destination,
        )

    def upload_file(self, bucket: str, local_path, remote_name: str) -> None:
        # Positional order: bucket, local file, remote file name
        self._run(
            "file",
            "upload",
            *self._global_args(),
            bucket,
            str(local_path),
            remote_name,
        )
