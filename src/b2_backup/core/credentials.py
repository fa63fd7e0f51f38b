"""Startup checks: required tools, B2 credentials and the bucket name.

Credentials live in AWS SSM Parameter Store under a per-project prefix:

- ``<prefix>/application-key``: SecureString holding a JSON object with
  ``B2_APPLICATION_KEY_ID`` and ``B2_APPLICATION_KEY``
- ``<prefix>/bucket-name``: plain String with the bucket name

All failures are collected so that a single report lists every problem.
"""

import json
import logging
import os
import shutil
from dataclasses import dataclass, field
from typing import Callable

from ..__util__ import CommandError, PreflightFailure, run_command

logger = logging.getLogger(__name__)

KEY_ID_FIELD = "B2_APPLICATION_KEY_ID"
KEY_FIELD = "B2_APPLICATION_KEY"


class CredentialError(PreflightFailure):
    """Credentials could not be obtained."""


class SecretFetchError(CredentialError):
    """The parameter store could not be read."""


class SecretParseError(CredentialError):
    """The secret payload is not the expected JSON object."""


class MissingCredentialError(CredentialError):
    """One or more required fields of the secret are empty."""

    def __init__(self, path: str, fields: list[str]) -> None:
        self.fields = fields
        super().__init__(
            f"Received empty {', '.join(fields)} from SSM parameter {path}"
        )


@dataclass(frozen=True)
class CredentialBundle:
    """B2 application key. Never log the key itself."""

    key_id: str
    key: str = field(repr=False)

    def as_env(self) -> dict[str, str]:
        return {KEY_ID_FIELD: self.key_id, KEY_FIELD: self.key}


@dataclass(frozen=True)
class BucketTarget:
    name: str


class ParameterStore:
    """Thin wrapper around ``aws ssm get-parameter``."""

    def __init__(self, log=None, aws: str = "aws") -> None:
        self.log = log
        self.aws = aws

    def get(self, name: str, decrypt: bool = False) -> str:
        """Return the value of parameter ``name``.

        Raises:
            SecretFetchError: If the CLI fails or its output is unusable
        """
        cmd = [self.aws, "ssm", "get-parameter", "--name", name, "--output", "json"]
        if decrypt:
            cmd.append("--with-decryption")
        try:
            result = run_command(cmd, self.log, capture=True)
            return json.loads(result.stdout)["Parameter"]["Value"]
        except CommandError as e:
            raise SecretFetchError(
                f"Could not read SSM parameter {name} (exit code {e.returncode})"
            ) from e
        except (ValueError, KeyError, TypeError) as e:
            raise SecretFetchError(
                f"Unexpected response reading SSM parameter {name}: {e}"
            ) from e


class CredentialResolver:
    """Fetch and validate the credential bundle and bucket target."""

    def __init__(self, store: ParameterStore, log) -> None:
        self.store = store
        self.log = log

    def resolve(self, path: str) -> CredentialBundle:
        """Fetch (decrypted) and validate the credential bundle at ``path``."""
        try:
            payload = self.store.get(path, decrypt=True)
        except SecretFetchError as e:
            raise SecretFetchError(
                f"Could not read B2 API credentials from {path}"
            ) from e

        try:
            data = json.loads(payload)
        except ValueError as e:
            raise SecretParseError(
                f"SSM parameter {path} does not contain valid JSON: {e.msg}"
            ) from e
        if not isinstance(data, dict):
            raise SecretParseError(f"SSM parameter {path} is not a JSON object")

        values = {}
        missing = []
        for name in (KEY_ID_FIELD, KEY_FIELD):
            value = data.get(name)
            if not isinstance(value, str) or not value:
                missing.append(name)
            values[name] = value
        if missing:
            raise MissingCredentialError(path, missing)

        return CredentialBundle(key_id=values[KEY_ID_FIELD], key=values[KEY_FIELD])

    def resolve_bucket(self, path: str) -> BucketTarget:
        try:
            name = self.store.get(path)
        except SecretFetchError as e:
            raise SecretFetchError(
                f"Could not read B2 bucket name from SSM parameter {path}"
            ) from e
        name = (name or "").strip()
        if not name:
            raise MissingCredentialError(path, ["bucket name"])
        return BucketTarget(name=name)


def check_tools(
    tools, log, which: Callable[[str], str | None] = shutil.which
) -> list[str]:
    """Log and return every tool missing from $PATH."""
    missing = []
    for tool in tools:
        if which(tool) is None:
            log.error(
                f"Preflight check failed: '{tool}' is not available in "
                f"$PATH={os.environ.get('PATH', '')}"
            )
            missing.append(tool)
    return missing


def preflight(
    resolver: CredentialResolver, prefix: str
) -> tuple[CredentialBundle, BucketTarget]:
    """Resolve credentials and bucket, reporting all failures together.

    Raises:
        PreflightFailure: If either lookup failed
    """
    prefix = prefix.rstrip("/")
    log = resolver.log
    credentials = bucket = None
    failed = False

    try:
        credentials = resolver.resolve(f"{prefix}/application-key")
    except CredentialError as e:
        log.error(str(e))
        failed = True

    try:
        bucket = resolver.resolve_bucket(f"{prefix}/bucket-name")
    except CredentialError as e:
        log.error(str(e))
        failed = True

    if failed or credentials is None or bucket is None:
        raise PreflightFailure("Could not resolve B2 credentials")
    return credentials, bucket
