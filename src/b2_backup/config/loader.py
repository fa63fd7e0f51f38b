"""TOML configuration loading and validation.

Handles config file discovery, parsing, and validation with helpful error messages.
"""

import tomllib
from pathlib import Path
from typing import Any

from ..core.archive import WEEKDAYS
from ..core.notify import TRANSPORTS
from .schema import (
    Config,
    FilesConfig,
    GlobalConfig,
    MysqlConfig,
    NotifyConfig,
)


class ConfigError(Exception):
    """Configuration loading or validation error."""

    pass


# Config file search paths in priority order
CONFIG_PATHS = [
    Path.home() / ".config" / "b2-backup" / "config.toml",
    Path("/etc/b2-backup/config.toml"),
]


def find_config_file(explicit_path: str | None = None) -> Path | None:
    """Find configuration file.

    Args:
        explicit_path: Explicitly specified config path (highest priority)

    Returns:
        Path to config file, or None if not found
    """
    if explicit_path:
        path = Path(explicit_path)
        if path.exists():
            return path
        raise ConfigError(f"Config file not found: {explicit_path}")

    for path in CONFIG_PATHS:
        if path.exists():
            return path

    return None


def _positive_int(data: dict[str, Any], key: str, default: int, section: str) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"[{section}] {key} must be a positive integer, got {value!r}")
    return value


def _parse_global(data: dict[str, Any]) -> GlobalConfig:
    """Parse global configuration from dict."""
    return GlobalConfig(
        ssm_prefix=data.get("ssm_prefix", "/b2"),
        threads=_positive_int(data, "threads", 4, "global"),
        keep_days=_positive_int(data, "keep_days", 30, "global"),
        log_tag=data.get("log_tag", "b2"),
        syslog=data.get("syslog", True),
    )


def _parse_notify(data: dict[str, Any]) -> NotifyConfig:
    """Parse notification configuration from dict."""
    transport = data.get("transport", "mailx")
    if transport not in TRANSPORTS:
        raise ConfigError(
            f"Invalid notification transport '{transport}'. "
            f"Valid transports: {', '.join(TRANSPORTS)}"
        )

    return NotifyConfig(
        mail_to=data.get("mail_to"),
        mail_from=data.get("mail_from"),
        transport=transport,
        smtp_host=data.get("smtp_host", "localhost"),
        smtp_port=_positive_int(data, "smtp_port", 25, "notify"),
    )


def _parse_files(data: dict[str, Any]) -> FilesConfig:
    """Parse web root job configuration from dict."""
    defaults = FilesConfig()

    archive_day = str(data.get("archive_day", defaults.archive_day)).lower()
    if archive_day not in WEEKDAYS:
        raise ConfigError(
            f"Invalid archive_day '{archive_day}'. Valid days: {', '.join(WEEKDAYS)}"
        )

    exclude = data.get("exclude", defaults.exclude)
    if not isinstance(exclude, list):
        raise ConfigError("[files] exclude must be a list of vhost names")

    return FilesConfig(
        lock_file=data.get("lock_file", defaults.lock_file),
        fstab=data.get("fstab", defaults.fstab),
        mount_root=data.get("mount_root", defaults.mount_root),
        mount_helper=data.get("mount_helper", defaults.mount_helper),
        sentinel=data.get("sentinel", defaults.sentinel),
        unit_dir=data.get("unit_dir", defaults.unit_dir),
        remote_dir=data.get("remote_dir", defaults.remote_dir),
        archive_dir=data.get("archive_dir", defaults.archive_dir),
        archive_day=archive_day,
        exclude=[str(e) for e in exclude],
        tmp_dir=data.get("tmp_dir"),
    )


def _parse_mysql(data: dict[str, Any]) -> MysqlConfig:
    """Parse MySQL job configuration from dict."""
    return MysqlConfig(
        host=data.get("host", "localhost"),
        port=_positive_int(data, "port", 3306, "mysql"),
        defaults_file=data.get("defaults_file", "/root/.my.cnf"),
        backup_dir=data.get("backup_dir", "/var/backups/mysql"),
        remote_dir=data.get("remote_dir", "mysql"),
        prune_days=_positive_int(data, "prune_days", 7, "mysql"),
        lock_file=data.get("lock_file", "/var/run/b2-mysql-backup.lock"),
        dump_lock_file=data.get("dump_lock_file", ""),
    )


def _validate_config(config: Config) -> list[str]:
    """Validate configuration and return list of warnings."""
    warnings = []

    if config.files is None and config.mysql is None:
        warnings.append("No jobs configured (add a [files] or [mysql] section)")

    if not config.notify.mail_to:
        warnings.append("No notification recipient (notify.mail_to) configured")
    elif not config.notify.mail_from:
        warnings.append("No notification sender configured, mail_to will be used")

    if not config.global_config.ssm_prefix.startswith("/"):
        warnings.append(
            f"SSM prefix '{config.global_config.ssm_prefix}' should start with '/'"
        )

    if config.files is not None and config.files.archive_dir == config.files.remote_dir:
        warnings.append("Archives share a directory with the daily mirror")

    if config.files is not None and config.mysql is not None:
        if config.files.lock_file == config.mysql.lock_file:
            warnings.append("Files and MySQL jobs share a lock file")

    return warnings


def load_config(path: Path | str) -> tuple[Config, list[str]]:
    """Load and validate configuration from TOML file.

    Args:
        path: Path to configuration file

    Returns:
        Tuple of (Config object, list of warnings)

    Raises:
        ConfigError: If config is invalid or cannot be parsed
    """
    path = Path(path)

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML syntax: {e}")
    except OSError as e:
        raise ConfigError(f"Cannot read config file: {e}")

    config = Config(
        global_config=_parse_global(data.get("global", {})),
        notify=_parse_notify(data.get("notify", {})),
        files=_parse_files(data["files"]) if "files" in data else None,
        mysql=_parse_mysql(data["mysql"]) if "mysql" in data else None,
    )

    # Validate and collect warnings
    warnings = _validate_config(config)

    return config, warnings


def generate_example_config() -> str:
    """Generate example configuration file content."""
    return """# b2-backup configuration
# See documentation for full options

[global]
ssm_prefix = "/b2/production"   # <prefix>/application-key, <prefix>/bucket-name
threads = 4                     # b2 transfer threads; contributes to system load
keep_days = 30                  # Keep hidden/replaced revisions this long
log_tag = "b2"
syslog = true

[notify]
mail_to = "ops@example.com"
mail_from = "backups@example.com"
transport = "mailx"             # or "smtp"
# smtp_host = "localhost"
# smtp_port = 25

# Web root (ObjectiveFS snapshot) backup
[files]
mount_root = "/var/www"
sentinel = "README"
unit_dir = "vhosts"
remote_dir = "vhosts"
archive_dir = "vhosts-weekly"
archive_day = "saturday"
exclude = ["healthcheck"]
# lock_file = "/var/run/b2-files-backup.lock"

# MySQL dumps, mirrored to the bucket
[mysql]
host = "localhost"
port = 3306
defaults_file = "/root/.my.cnf"
backup_dir = "/var/backups/mysql"
remote_dir = "mysql"
prune_days = 7
# lock_file = "/var/run/b2-mysql-backup.lock"
# dump_lock_file = "/var/run/mysql-localhost-backup.lock"
"""
