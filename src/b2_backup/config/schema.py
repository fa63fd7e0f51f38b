"""Configuration schema definitions using dataclasses.

Defines the structure for TOML configuration with sensible defaults.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class GlobalConfig:
    """Global configuration settings.

    Attributes:
        ssm_prefix: SSM parameter prefix holding application-key and bucket-name
        threads: Transfer threads used by the b2 tool
        keep_days: Days to keep hidden/replaced revisions in the bucket
        log_tag: Syslog tag for job messages
        syslog: Mirror job messages to the local syslog
    """

    ssm_prefix: str = "/b2"
    threads: int = 4
    keep_days: int = 30
    log_tag: str = "b2"
    syslog: bool = True


@dataclass
class NotifyConfig:
    """Failure notification settings.

    Attributes:
        mail_to: Operator address receiving failure reports
        mail_from: Sender address of failure reports
        transport: "mailx" (local command) or "smtp"
        smtp_host: SMTP relay host for the smtp transport
        smtp_port: SMTP relay port for the smtp transport
    """

    mail_to: Optional[str] = None
    mail_from: Optional[str] = None
    transport: str = "mailx"
    smtp_host: str = "localhost"
    smtp_port: int = 25


@dataclass
class FilesConfig:
    """Web root snapshot backup settings.

    Attributes:
        lock_file: Lock preventing overlapping runs
        fstab: fstab used to find the bucket behind mount_root
        mount_root: Mount point of the ObjectiveFS web root
        mount_helper: ObjectiveFS mount/list tool
        sentinel: File that must exist at the root of a mounted snapshot
        unit_dir: Directory of the snapshot holding one directory per vhost
        remote_dir: Bucket directory receiving the daily mirror
        archive_dir: Bucket directory receiving weekly archives
        archive_day: Weekday on which archives are made
        exclude: Vhosts never archived
        tmp_dir: Directory for temporary archives (None: system default)
    """

    lock_file: str = "/var/run/b2-files-backup.lock"
    fstab: str = "/etc/fstab"
    mount_root: str = "/var/www"
    mount_helper: str = "/sbin/mount.objectivefs"
    sentinel: str = "README"
    unit_dir: str = "vhosts"
    remote_dir: str = "vhosts"
    archive_dir: str = "vhosts-weekly"
    archive_day: str = "saturday"
    exclude: list[str] = field(default_factory=lambda: ["healthcheck"])
    tmp_dir: Optional[str] = None


@dataclass
class MysqlConfig:
    """MySQL dump and mirror settings.

    Attributes:
        host: Server host
        port: Server port
        defaults_file: Client option file holding the credentials
        backup_dir: Local directory receiving dumps
        remote_dir: Bucket directory mirroring backup_dir
        prune_days: Age in days after which local dumps are removed
        lock_file: Lock for the dump-and-mirror job
        dump_lock_file: Lock for the dump-only job (default derived from host)
    """

    host: str = "localhost"
    port: int = 3306
    defaults_file: str = "/root/.my.cnf"
    backup_dir: str = "/var/backups/mysql"
    remote_dir: str = "mysql"
    prune_days: int = 7
    lock_file: str = "/var/run/b2-mysql-backup.lock"
    dump_lock_file: str = ""

    def __post_init__(self):
        if not self.dump_lock_file:
            self.dump_lock_file = f"/var/run/mysql-{self.host}-backup.lock"


@dataclass
class Config:
    """Root configuration object.

    Attributes:
        global_config: Settings shared by all jobs
        notify: Failure notification settings
        files: Web root job settings (None if not configured)
        mysql: MySQL job settings (None if not configured)
    """

    global_config: GlobalConfig = field(default_factory=GlobalConfig)
    notify: NotifyConfig = field(default_factory=NotifyConfig)
    files: Optional[FilesConfig] = None
    mysql: Optional[MysqlConfig] = None
