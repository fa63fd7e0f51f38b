"""Backup job template: preflight, lock, run, report, clean up.

Every job follows the same discipline:

1. Preflight: required tools, then credentials and job-specific checks.
   Failures are all logged, mailed, and the job exits 1 without locking.
2. Lock: a second instance fails immediately; the holder's annotation is
   logged and mailed. Cleanup is not armed since the lock is not ours.
3. Locked phase: units of work record outcomes in a JobResult. Fatal
   errors (AbortError) and unexpected exceptions end the phase early, as
   does SIGTERM or SIGHUP (exit status 128 plus the signal number).
4. Cleanup, exactly once: mail the log on failure, unmount, remove the
   scratch directory, release the lock, delete the log.
"""

import logging
import os
import shutil
import signal
import threading
import traceback
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from .. import hostname, job_date, job_timestamp
from ..__util__ import (
    AbortError,
    CommandError,
    LockContention,
    PreflightFailure,
    Terminated,
    log_heading,
)
from .b2 import B2Client
from .credentials import CredentialResolver, ParameterStore, check_tools, preflight
from .diaglog import DiagnosticLog
from .lock import LockGuard, annotation_for
from .notify import create_notifier
from .result import JobResult

logger = logging.getLogger(__name__)

# Signals that stop a job the way cron and systemd timeouts do
TERMINATION_SIGNALS = (signal.SIGTERM, signal.SIGHUP)


def ignore_termination() -> None:
    """Ignore SIGTERM and SIGHUP until ``terminate_on_signals`` exits."""
    if threading.current_thread() is not threading.main_thread():
        return
    for sig in TERMINATION_SIGNALS:
        if signal.getsignal(sig) is _raise_terminated:
            signal.signal(sig, signal.SIG_IGN)


def _raise_terminated(signum, frame) -> None:
    # Cleanup itself must not be cut short by a repeated signal.
    ignore_termination()
    raise Terminated(signum)


@contextmanager
def terminate_on_signals():
    """Turn SIGTERM and SIGHUP into ``Terminated`` for the enclosed block.

    Previous handlers are restored on exit. Signal handlers can only be set
    from the main thread; elsewhere this does nothing.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    previous = {sig: signal.getsignal(sig) for sig in TERMINATION_SIGNALS}
    for sig in TERMINATION_SIGNALS:
        signal.signal(sig, _raise_terminated)
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


class JobCleanup:
    """Release everything a locked run acquired.

    Resources are attached as they are acquired; any of them may be missing
    when cleanup runs. ``run`` only acts the first time it is called.
    """

    def __init__(self, log, lock, notifier) -> None:
        self.log = log
        self.lock = lock
        self.notifier = notifier
        self.mounted = None
        self.scratch_dir: Path | None = None
        self.ran = False

    def _step(self, name: str, action) -> None:
        try:
            action()
        except Exception as e:
            # Keep going: the remaining resources still need releasing.
            logger.error("Cleanup: failed to %s: %s", name, e)

    def _remove_scratch_dir(self) -> None:
        if self.scratch_dir is not None and self.scratch_dir.exists():
            self.scratch_dir.rmdir()

    def _notify(self) -> None:
        self.notifier.notify(self.log.read())

    def run(self, failed: bool) -> None:
        if self.ran:
            return
        self.ran = True

        # Mail first: the log is deleted last.
        if failed and self.log is not None and self.notifier is not None:
            self._step("send failure notification", self._notify)
        if self.mounted is not None:
            self._step("unmount snapshot", self.mounted.unmount)
        if self.scratch_dir is not None:
            self._step("remove mount point", self._remove_scratch_dir)
        if self.lock is not None:
            self._step("release lock", self.lock.release)
        if self.log is not None:
            self._step("delete log", self.log.close)


class BackupJob:
    """Base class of the backup jobs; subclasses implement ``run_locked``."""

    name = "b2-backups"
    subject_prefix = "B2 backup failure"
    required_tools: tuple[str, ...] = ("aws", "b2")
    needs_credentials = True

    def __init__(
        self,
        config,
        *,
        log: DiagnosticLog | None = None,
        notifier=None,
        store=None,
        b2=None,
        now: datetime | None = None,
        which=shutil.which,
    ) -> None:
        self.config = config
        self.started = now or datetime.now()
        self._log = log
        self.notifier = notifier or create_notifier(config.notify, self.subject())
        self.store = store
        self.b2 = b2
        self.which = which
        self.credentials = None
        self.bucket = None
        self.result = JobResult()

    @property
    def log(self) -> DiagnosticLog:
        """The run's diagnostic log, created on first use."""
        if self._log is None:
            self._log = DiagnosticLog.create(prefix=f"{self.name}.log.")
        return self._log

    @property
    def lock_path(self) -> Path:
        raise NotImplementedError

    @property
    def date(self) -> str:
        return job_date(self.started)

    @property
    def timestamp(self) -> str:
        return job_timestamp(self.started)

    def subject(self) -> str:
        return f"{self.subject_prefix}: {hostname()}"

    def _resolve_credentials(self) -> None:
        resolver = CredentialResolver(self.store or ParameterStore(self.log), self.log)
        self.credentials, self.bucket = preflight(
            resolver, self.config.global_config.ssm_prefix
        )
        if self.b2 is None:
            self.b2 = B2Client(
                self.credentials, self.config.global_config.threads, self.log
            )

    def startup_checks(self) -> list:
        """Checks run after the tool check; all run even if one fails."""
        return [self._resolve_credentials] if self.needs_credentials else []

    def preflight(self) -> None:
        """Raise PreflightFailure unless the job can start."""
        if check_tools(self.required_tools, self.log, self.which):
            raise PreflightFailure("Required tools are missing")

        failed = False
        for check in self.startup_checks():
            try:
                check()
            except PreflightFailure:
                failed = True
        if failed:
            raise PreflightFailure("Startup checks failed")

    def authorize(self) -> None:
        self.log.info("Logging in to B2")
        try:
            self.b2.authorize()
        except CommandError as e:
            raise AbortError(f"Could not log in to B2 (exit code {e.returncode})") from e

    def run_locked(self, cleanup: JobCleanup) -> None:
        """Do the work, recording outcomes in ``self.result``."""
        raise NotImplementedError

    def _fail_startup(self) -> int:
        self.notifier.notify(self.log.read())
        return 1

    def execute(self) -> int:
        """Run the job; returns the process exit code.

        SIGTERM and SIGHUP end the run early, with the same cleanup as any
        other failure, and exit with 128 plus the signal number.
        """
        log = self.log
        try:
            with terminate_on_signals():
                try:
                    return self._execute(log)
                except Terminated as e:
                    log.error(str(e))
                    self._fail_startup()
                    return e.exit_code
        finally:
            log.close()

    def _execute(self, log: DiagnosticLog) -> int:
        log.info(log_heading(f"{self.name} started at {self.started.ctime()}"))

        try:
            self.preflight()
        except PreflightFailure:
            log.error("Refusing to proceed due to failed startup")
            return self._fail_startup()
        except Exception as e:
            log.error(f"Unexpected error during startup: {e!r}")
            log.error(traceback.format_exc().rstrip())
            return self._fail_startup()

        try:
            lock = LockGuard(self.lock_path).acquire(
                annotation_for(os.getpid(), self.timestamp)
            )
        except LockContention as e:
            log.error(str(e))
            return self._fail_startup()
        except OSError as e:
            log.error(f"Could not open lock file {self.lock_path}: {e}")
            return self._fail_startup()

        return self._execute_locked(JobCleanup(log, lock, self.notifier))

    def _execute_locked(self, cleanup: JobCleanup) -> int:
        log = self.log
        exit_code = 1
        try:
            self.run_locked(cleanup)
            if self.result.success:
                log.info(f"Backup successful: {self.result.summary()}")
                exit_code = 0
            else:
                log.error(
                    "One or more backup operations failed. "
                    "Please see the log contents above this message."
                )
                log.error(self.result.summary())
        except AbortError as e:
            log.error(str(e))
        except Terminated as e:
            log.error(str(e))
            exit_code = e.exit_code
        except Exception as e:
            log.error(f"Unexpected error: {e!r}")
            log.error(traceback.format_exc().rstrip())
        finally:
            ignore_termination()
            cleanup.run(exit_code != 0)
        return exit_code
