"""Pytest configuration and shared fixtures."""

from datetime import datetime
from unittest.mock import MagicMock

import pytest

from b2_backup.config.loader import load_config
from b2_backup.core.credentials import BucketTarget, CredentialBundle
from b2_backup.core.diaglog import DiagnosticLog


@pytest.fixture
def tmp_config_dir(tmp_path):
    """Create a temporary config directory."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def sample_config_toml():
    """Return a sample valid TOML configuration string."""
    return """
[global]
ssm_prefix = "/b2/production"
threads = 8
keep_days = 14
log_tag = "b2"
syslog = false

[notify]
mail_to = "ops@example.com"
mail_from = "backups@example.com"
transport = "mailx"

[files]
mount_root = "/var/www"
sentinel = "README"
archive_day = "Saturday"
exclude = ["healthcheck"]

[mysql]
host = "db.internal"
port = 3307
backup_dir = "/var/backups/mysql"
prune_days = 7
"""


@pytest.fixture
def minimal_config_toml():
    """Return a minimal valid TOML configuration string."""
    return """
[notify]
mail_to = "ops@example.com"

[files]
"""


@pytest.fixture
def config_file(tmp_config_dir, sample_config_toml):
    """Create a temporary config file with sample content."""
    config_path = tmp_config_dir / "config.toml"
    config_path.write_text(sample_config_toml)
    return config_path


@pytest.fixture
def minimal_config_file(tmp_config_dir, minimal_config_toml):
    """Create a temporary config file with minimal content."""
    config_path = tmp_config_dir / "minimal.toml"
    config_path.write_text(minimal_config_toml)
    return config_path


@pytest.fixture
def diag_log(tmp_path):
    """A diagnostic log backed by a file in tmp_path."""
    log = DiagnosticLog.create(directory=tmp_path)
    yield log
    log.close()


@pytest.fixture
def job_config(tmp_path, config_file):
    """Loaded sample config with every path pointed into tmp_path."""
    config, _ = load_config(config_file)
    config.files.lock_file = str(tmp_path / "files.lock")
    config.files.tmp_dir = str(tmp_path)
    config.mysql.lock_file = str(tmp_path / "mysql.lock")
    config.mysql.dump_lock_file = str(tmp_path / "dump.lock")
    config.mysql.backup_dir = str(tmp_path / "dumps")
    return config


@pytest.fixture
def credentials():
    return CredentialBundle(key_id="0012345", key="K001secret")


@pytest.fixture
def bucket():
    return BucketTarget(name="example-backups")


@pytest.fixture
def notifier():
    notifier = MagicMock()
    notifier.notify.return_value = True
    return notifier


@pytest.fixture
def saturday():
    return datetime(2024, 1, 6, 3, 15, 0)


@pytest.fixture
def monday():
    return datetime(2024, 1, 8, 3, 15, 0)

