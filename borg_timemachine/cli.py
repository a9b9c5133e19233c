#!/usr/bin/env python3

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .commands.factory import CommandFactory
from .commands.generate_config_command import GenerateConfigCommand
from .core.config_template import DEFAULT_CONFIG_PATH
from .core.errors import BorgTimeMachineError, ConfigError
from .core.log_setup import configure_logging

logger = logging.getLogger(__name__)

_ALIASES = {"run": "backup"}


def _common_options(parser: argparse.ArgumentParser, default: object) -> None:
    parser.add_argument(
        "-c",
        "--config",
        default=default,
        metavar="FILE",
        help=f"Path to configuration file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=default if default is argparse.SUPPRESS else False,
        help="Log engine invocations and debug details",
    )


class CliApplication:
    def __init__(self, factory: CommandFactory | None = None) -> None:
        self._factory = factory or CommandFactory()

    def build_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog="borg-timemachine",
            description="Time Machine-style backups using Borg",
        )
        _common_options(parser, None)
        # options repeated after the subcommand must not reset the ones given before it
        common = argparse.ArgumentParser(add_help=False)
        _common_options(common, argparse.SUPPRESS)

        subparsers = parser.add_subparsers(dest="command", required=False)
        subparsers.add_parser(
            "init", parents=[common], help="Initialize a new Borg repository"
        )
        subparsers.add_parser(
            "backup",
            aliases=["run"],
            parents=[common],
            help="Run a backup cycle (create, prune, compact); the default command",
        )

        prune_parser = subparsers.add_parser(
            "prune", parents=[common], help="Apply the retention policy to every enabled job"
        )
        prune_parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what borg would delete without deleting anything",
        )

        subparsers.add_parser(
            "plan", parents=[common], help="Preview which archives the retention policy keeps"
        )

        list_parser = subparsers.add_parser(
            "list", parents=[common], help="List all archives in the repository"
        )
        list_parser.add_argument("--job", default=None, help="Only list archives of this job")

        subparsers.add_parser("info", parents=[common], help="Show repository info")
        subparsers.add_parser("check", parents=[common], help="Check repository integrity")

        mount_parser = subparsers.add_parser(
            "mount", parents=[common], help="Mount the repository for browsing"
        )
        mount_parser.add_argument(
            "mount_point", metavar="MOUNT_POINT", help="Mount point directory"
        )
        mount_parser.add_argument("--archive", default=None, help="Mount a single archive")
        mount_parser.add_argument(
            "--foreground",
            action="store_true",
            help="Stay in the foreground until unmounted",
        )

        umount_parser = subparsers.add_parser(
            "umount", parents=[common], help="Unmount a mounted repository"
        )
        umount_parser.add_argument(
            "mount_point", metavar="MOUNT_POINT", help="Mount point directory"
        )

        generate_parser = subparsers.add_parser(
            "generate-config", parents=[common], help="Generate an example configuration file"
        )
        generate_parser.add_argument(
            "output",
            nargs="?",
            default="borg-config.yaml",
            metavar="OUTPUT",
            help="Output path for the example config (default: borg-config.yaml)",
        )
        generate_parser.add_argument(
            "--force", action="store_true", help="Overwrite an existing file"
        )
        return parser

    def run(self, argv: list[str] | None = None) -> int:
        args = self.build_parser().parse_args(argv)
        action = _ALIASES.get(args.command, args.command) or "backup"

        if action == "generate-config":
            return GenerateConfigCommand(Path(args.output).expanduser(), force=args.force).run()

        try:
            config = self._factory.load_config(args.config)
        except ConfigError as exc:
            print(f"Error loading configuration: {exc}", file=sys.stderr)
            print("\nGenerate an example config with:", file=sys.stderr)
            print("  borg-timemachine generate-config", file=sys.stderr)
            return exc.exit_code

        configure_logging(config.logging, verbose=args.verbose)
        try:
            command = self._factory.create(action, config, args)
            return int(command.run())
        except BorgTimeMachineError as exc:
            logger.error("Error: %s", exc)
            return exc.exit_code


def main(argv: list[str] | None = None) -> int:
    app = CliApplication()
    return app.run(argv)


if __name__ == "__main__":
    raise SystemExit(main())
