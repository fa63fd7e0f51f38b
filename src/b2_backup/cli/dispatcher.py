"""CLI dispatcher.

Builds the subcommand parser and routes each command to its handler.
"""

import argparse
import sys
from typing import Callable

from .common import add_verbosity_args


def create_subcommand_parser() -> argparse.ArgumentParser:
    """Create the main argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="b2-backup",
        description="Unattended web root and MySQL backups to Backblaze B2",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    add_verbosity_args(parser)

    parser.add_argument(
        "-V",
        "--version",
        action="store_true",
        help="Show version and exit",
    )

    parser.add_argument(
        "-c",
        "--config",
        metavar="FILE",
        help="Path to configuration file",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        description="Available commands (use 'command --help' for details)",
    )

    # files command
    files_parser = subparsers.add_parser(
        "files",
        help="Back up the web root snapshot",
        description=(
            "Mount the day's latest ObjectiveFS snapshot, mirror its vhosts to "
            "B2 and, on the archive day, upload one archive per vhost"
        ),
    )
    files_parser.add_argument(
        "--force-archive",
        action="store_true",
        help="Run the weekly archive regardless of the day",
    )

    # mysql command
    subparsers.add_parser(
        "mysql",
        help="Dump MySQL databases and mirror them to B2",
        description="Dump every database, rotate old dumps, and sync the dump directory",
    )

    # dump command
    subparsers.add_parser(
        "dump",
        help="Dump MySQL databases locally",
        description="Dump every database and rotate old dumps, without uploading",
    )

    # config command with subcommands
    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
        description="Validate or initialize configuration",
    )
    config_subs = config_parser.add_subparsers(dest="config_action")

    config_subs.add_parser(
        "validate",
        help="Validate configuration file",
    )

    init_parser = config_subs.add_parser(
        "init",
        help="Generate example configuration",
    )
    init_parser.add_argument(
        "-o",
        "--output",
        metavar="FILE",
        help="Output file (default: stdout)",
    )

    return parser


def run_subcommand(args: argparse.Namespace) -> int:
    """Run the specified subcommand.

    Args:
        args: Parsed arguments

    Returns:
        Exit code
    """
    from .. import __version__

    if args.version:
        print(f"b2-backup {__version__}")
        return 0

    if not args.command:
        print("No command specified. Use --help for usage information.")
        return 1

    # Route to appropriate command handler
    handlers: dict[str, Callable] = {
        "files": cmd_files,
        "mysql": cmd_mysql,
        "dump": cmd_dump,
        "config": cmd_config,
    }

    handler = handlers.get(args.command)
    if handler:
        return handler(args)
    else:
        print(f"Unknown command: {args.command}")
        return 1


def cmd_files(args: argparse.Namespace) -> int:
    """Execute files command."""
    from .jobs import execute_files

    return execute_files(args)


def cmd_mysql(args: argparse.Namespace) -> int:
    """Execute mysql command."""
    from .jobs import execute_mysql

    return execute_mysql(args)


def cmd_dump(args: argparse.Namespace) -> int:
    """Execute dump command."""
    from .jobs import execute_dump

    return execute_dump(args)


def cmd_config(args: argparse.Namespace) -> int:
    """Execute config command."""
    from .config_cmd import execute_config

    return execute_config(args)


def main(argv: list[str] | None = None) -> int:
    """Main entry point for b2-backup CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = create_subcommand_parser()
    args = parser.parse_args(argv)

    return run_subcommand(args)
