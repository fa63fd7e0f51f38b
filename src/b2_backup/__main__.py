# pyright: standard

"""b2-backup: b2_backup/__main__.py.

Unattended backups of an ObjectiveFS web root and a MySQL server to
Backblaze B2, one locked instance per job, with failure reports by mail.
"""

import sys

from .cli.dispatcher import main

if __name__ == "__main__":
    sys.exit(main())
