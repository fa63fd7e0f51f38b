# pyright: standard

"""b2-backup: b2_backup/__util__.py
Common errors and helpers shared by the backup phases.
"""

import logging
import shlex
import signal
import subprocess

logger = logging.getLogger(__name__)

# Exit status reported for tools that could not be started at all
COMMAND_NOT_FOUND = 127


class AbortError(Exception):
    """Fatal error: the running job cannot continue."""


class PreflightFailure(AbortError):
    """A required tool, credential or setting is unavailable before locking."""


class LockContention(AbortError):
    """Another process holds the job lock."""

    def __init__(self, path, annotation: str = "") -> None:
        self.path = path
        self.annotation = annotation
        super().__init__(
            f"Could not obtain lock for {path} (lock contents: {annotation})"
        )


class MountFailure(AbortError):
    """The snapshot could not be located, mounted or validated."""


class UnitFailure(Exception):
    """One unit of work (a vhost archive, a database dump) failed."""

    def __init__(self, unit: str, detail: str) -> None:
        self.unit = unit
        self.detail = detail
        super().__init__(f"[{unit}] {detail}")


class SyncFailure(UnitFailure):
    """The mirror of a directory to the bucket failed."""


class PruneFailure(Exception):
    """Retention pruning failed; never fatal."""


class Terminated(BaseException):
    """The job received a termination signal.

    Derives from BaseException so that only the job runner catches it; every
    ``finally`` on the way still runs.
    """

    def __init__(self, signum: int) -> None:
        self.signum = signum
        self.exit_code = 128 + signum
        super().__init__(f"Terminated by {signal.Signals(signum).name}")


class CommandError(Exception):
    """An external tool exited with a non-zero status."""

    def __init__(self, cmd, returncode: int) -> None:
        self.cmd = [str(c) for c in cmd]
        self.returncode = returncode
        super().__init__(
            f"Command '{self.cmd[0]}' failed with exit code {returncode}"
        )


def log_heading(caption: str) -> str:
    """Formatted heading for logging output sections."""
    return f"--[ {caption} ]--"


def run_command(
    cmd,
    log=None,
    *,
    env=None,
    capture: bool = False,
    input_text: str | None = None,
) -> subprocess.CompletedProcess:
    """Run an external tool, sending its stderr to the diagnostic log.

    Args:
        cmd: Command and arguments
        log: DiagnosticLog receiving the tool's stderr (None: inherit stderr)
        env: Environment for the child process
        capture: Capture stdout as text instead of inheriting it
        input_text: Text written to the tool's stdin

    Returns:
        The completed process

    Raises:
        CommandError: If the tool cannot be started or exits non-zero
    """
    cmd = [str(c) for c in cmd]
    logger.debug("Executing: %s", shlex.join(cmd))

    stderr = None
    if log is not None:
        log.flush()
        stderr = log.stream

    try:
        result = subprocess.run(
            cmd,
            stdout=subprocess.PIPE if capture else None,
            stderr=stderr,
            input=input_text,
            env=env,
            text=True,
            check=False,
        )
    except FileNotFoundError:
        logger.debug("Command not found: %s", cmd[0])
        raise CommandError(cmd, COMMAND_NOT_FOUND)

    if result.returncode != 0:
        raise CommandError(cmd, result.returncode)
    return result
