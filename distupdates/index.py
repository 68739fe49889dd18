#!/usr/bin/env python3
"""
Distribution Update Management System
Copyright (C) 2024 HOMESERVER LLC

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU General Public License for more details.

You should have received a copy of the GNU General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

"""
Command line entry point.

    distupdates [--root DIR] [--config PATH] [--manifest PATH|URL] [--debug] COMMAND

Commands:
    update        Audit only: show which components have updates available
    update:code   Download and install core, module and theme updates
    update:db     Apply pending database updates after update:code

update:code and update:db accept -y/--yes to answer every prompt with yes.
Exit status is 0 on success (including "succeeded with warnings") and 1
when the core update or a precondition failed.
"""

import argparse
import os
import sys
from typing import List, Optional

from .collaborators import (
    AutoConfirmer, ConsoleConfirmer, FilesystemInventory, HttpAuthenticator, StaticAuthenticator,
)
from .config import UpdaterConfig, load_config, load_manifest
from .db_update import CommandMigrationRunner, run_db_update
from .errors import ConfigInvalid, PreconditionError, UpdateError
from .models import OUTCOME_PARTIAL, RunSummary
from .orchestrator import UpdateOrchestrator
from .utils.fetcher import ArchiveFetcher
from .utils.index import log_message, setup_update_logging
from .utils.lock import RunLock

COMMAND_AUDIT = "update"
COMMAND_CODE = "update:code"
COMMAND_DB = "update:db"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="distupdates", description="Distribution Update Orchestrator")
    parser.add_argument("--root", default=os.getcwd(),
                        help="Distribution root containing distribution.json, config/ and public/")
    parser.add_argument("--config", default=None,
                        help="Path to config.json (default: <root>/config/config.json)")
    parser.add_argument("--manifest", default=None,
                        help="Manifest file or URL (default: from config, else <root>/distribution.json)")
    parser.add_argument("--debug", action="store_true",
                        help="Verbose logging")

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True
    subparsers.add_parser(COMMAND_AUDIT, help="Check for available updates without applying them")
    for name, help_text in ((COMMAND_CODE, "Update the distribution code"),
                            (COMMAND_DB, "Apply pending database updates after the code update")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("-y", "--yes", action="store_true",
                         help='Automatic yes to prompts; assume "yes" as answer to all prompts '
                              'and run non-interactively.')
    return parser


def _authenticator_for(config: UpdaterConfig):
    if config.auth_url:
        return HttpAuthenticator(config.auth_url, timeout=config.timeout)
    return StaticAuthenticator()


def _build_orchestrator(config: UpdaterConfig, manifest_source: Optional[str],
                        assume_yes: bool) -> UpdateOrchestrator:
    manifest = load_manifest(manifest_source or config.manifest, timeout=config.timeout)
    credentials = config.credentials()
    return UpdateOrchestrator(
        public_dir=config.public_dir,
        manifest=manifest,
        installed_state=FilesystemInventory(config.public_dir),
        confirmer=AutoConfirmer() if assume_yes else ConsoleConfirmer(),
        authenticator=_authenticator_for(config),
        credentials=credentials,
        fetcher=ArchiveFetcher(timeout=config.timeout, scratch_dir=config.scratch_dir),
        preserved=config.preserved,
        lock=RunLock(config.root_dir),
    )


def _log_summary(summary: RunSummary) -> None:
    if summary.results:
        log_message(f"Update summary: {summary.installed_count} of {len(summary.results)} component(s) installed")
        for result in summary.results:
            log_message(f"  {result.summary_line()}", "INFO" if result.succeeded else "ERROR")
    if summary.outcome == OUTCOME_PARTIAL:
        log_message("Completed with warnings", "WARNING")


def run_audit(config: UpdaterConfig, manifest_source: Optional[str]) -> int:
    orchestrator = _build_orchestrator(config, manifest_source, assume_yes=True)
    orchestrator.check_session()
    log_message("Checking for updates...")
    plan = orchestrator.audit()
    for line in plan.format_lines():
        log_message(line)
    if plan.is_empty():
        log_message("No updates available. The distribution is up to date.")
    else:
        log_message(f"{plan.count()} update(s) available - run '{COMMAND_CODE}' to apply them")
    return 0


def run_code_update(config: UpdaterConfig, manifest_source: Optional[str], assume_yes: bool) -> int:
    orchestrator = _build_orchestrator(config, manifest_source, assume_yes)
    summary = orchestrator.run()
    _log_summary(summary)
    return 0 if summary.succeeded else 1


def run_database_update(config: UpdaterConfig, assume_yes: bool) -> int:
    credentials = config.credentials()
    if not config.migration_command:
        raise ConfigInvalid("No migration command configured ('updater.migration_command' in config.json).")
    authenticator = _authenticator_for(config)
    if not authenticator.authenticate(credentials):
        log_message(f"Authentication failed for {credentials.email}.", "ERROR")
        return 1
    runner = CommandMigrationRunner(config.migration_command, cwd=config.public_dir)
    with RunLock(config.root_dir):
        summary = run_db_update(runner, AutoConfirmer() if assume_yes else ConsoleConfirmer())
    _log_summary(summary)
    return 0 if summary.succeeded else 1


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the update orchestrator.

    Returns:
        int: Process exit status
    """
    args = build_parser().parse_args(argv)
    setup_update_logging(debug=args.debug)

    try:
        config = load_config(args.root, args.config)
        if config.debug and not args.debug:
            setup_update_logging(debug=True)

        log_message("=" * 80)
        log_message(f"DISTRIBUTION UPDATE SESSION STARTED: {args.command}")
        log_message(f"Root: {config.root_dir}", "DEBUG")
        log_message(f"Production directory: {config.public_dir}", "DEBUG")
        log_message("=" * 80)

        if args.command == COMMAND_AUDIT:
            return run_audit(config, args.manifest)
        if args.command == COMMAND_CODE:
            return run_code_update(config, args.manifest, args.yes)
        return run_database_update(config, args.yes)

    except PreconditionError as e:
        log_message(str(e), "ERROR")
        return 1
    except UpdateError as e:
        log_message(f"Update failed: {e}", "ERROR")
        return 1
    except KeyboardInterrupt:
        log_message("Update process interrupted by user", "WARNING")
        return 130


if __name__ == "__main__":
    sys.exit(main())
