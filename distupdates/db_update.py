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
Database update step, run after the code update has replaced the files.

Schema and data migrations belong to the host application. This module
asks a MigrationRunner what is pending and applies it: the core migration
first, then each module (install when the module has never been installed,
upgrade otherwise). A failing migration is reported and the remaining ones
still run.
"""

import json
import subprocess
from typing import List, Optional, Protocol

from .collaborators import AutoConfirmer, Confirmer
from .errors import MigrationFailed
from .models import (
    CORE_ID, KIND_CORE, KIND_MODULE,
    OUTCOME_PARTIAL, OUTCOME_SUCCESS, STATUS_FAILED, STATUS_SUCCESS,
    ComponentResult, RunSummary, UpdateEntry, UpdatePlan,
)
from .utils.index import log_message

DB_CAUTION_MESSAGE = ('CAUTION: Updating the DB may disrupt your current installation. Before '
                      'proceeding, please ensure you have a complete backup of the database.')
DB_MESSAGE_UP_TO_DATE = "No updates available. The database is up to date."
DB_MESSAGE_SUCCESS = "The database has been updated successfully."
DB_MESSAGE_PARTIAL = "The database has been updated with some errors. Please check the messages above."


class MigrationRunner(Protocol):
    def pending(self) -> UpdatePlan:
        """Core and module migrations waiting to run; themes are always empty."""
        ...

    def upgrade_core(self) -> None:
        ...

    def install_module(self, module_id: str) -> None:
        ...

    def upgrade_module(self, module_id: str) -> None:
        ...


class CommandMigrationRunner:
    """
    Delegates migrations to an external command.

    The command is invoked as:

        <command> status --json
        <command> upgrade core
        <command> install module <id>
        <command> upgrade module <id>

    status must print {"core": {"from": "1.0", "to": "2.0"} | null,
    "modules": [{"name": "...", "from": "..." | null, "to": "..."}]}.
    """

    def __init__(self, command: List[str], cwd: Optional[str] = None, timeout: Optional[float] = None):
        if not command:
            raise ValueError("A migration command is required")
        self.command = list(command)
        self.cwd = cwd
        self.timeout = timeout

    def _run(self, args: List[str], component: Optional[str] = None) -> str:
        cmd = self.command + args
        log_message(f"Running: {' '.join(cmd)}", "DEBUG")
        try:
            result = subprocess.run(cmd, cwd=self.cwd, capture_output=True, text=True,
                                    timeout=self.timeout, check=False)
        except (OSError, subprocess.SubprocessError) as e:
            raise MigrationFailed(f"Could not run migration command: {e}", component=component)
        if result.returncode != 0:
            detail = (result.stderr or result.stdout).strip() or f"exit status {result.returncode}"
            raise MigrationFailed(detail, component=component)
        return result.stdout

    def pending(self) -> UpdatePlan:
        output = self._run(["status", "--json"])
        try:
            data = json.loads(output)
        except ValueError as e:
            raise MigrationFailed(f"Migration status is not valid JSON: {e}")
        if not isinstance(data, dict):
            raise MigrationFailed("Migration status must be a JSON object")

        plan = UpdatePlan()
        core = data.get("core")
        if core:
            plan.core = UpdateEntry(component_id=CORE_ID, from_version=core.get("from"),
                                    to_version=str(core.get("to")))
        for module in data.get("modules") or []:
            module_id = module.get("name")
            if not module_id:
                continue
            plan.modules[module_id] = UpdateEntry(component_id=module_id,
                                                  from_version=module.get("from"),
                                                  to_version=str(module.get("to")))
        return plan

    def upgrade_core(self) -> None:
        self._run(["upgrade", "core"], component=CORE_ID)

    def install_module(self, module_id: str) -> None:
        self._run(["install", "module", module_id], component=module_id)

    def upgrade_module(self, module_id: str) -> None:
        self._run(["upgrade", "module", module_id], component=module_id)


def _result(kind: str, entry: UpdateEntry, status: str, error: Optional[str] = None) -> ComponentResult:
    return ComponentResult(kind=kind, component_id=entry.component_id, from_version=entry.from_version,
                           to_version=entry.to_version, status=status, error=error)


def run_db_update(runner: MigrationRunner, confirmer: Optional[Confirmer] = None) -> RunSummary:
    """
    Apply pending core and module migrations.

    Raises:
        MigrationFailed: If the pending migrations cannot be determined
    """
    confirmer = confirmer or AutoConfirmer()
    log_message("Checking for database updates...")
    plan = runner.pending()

    if plan.core is not None:
        log_message(f"Core update available: {plan.core.describe()}")
    else:
        log_message("Core is up to date.")
    if plan.modules:
        log_message("Module updates available:")
        for module_id, entry in plan.modules.items():
            log_message(f"{module_id}: {entry.describe()}")
    else:
        log_message("All modules are up to date.")

    results: List[ComponentResult] = []
    if plan.core is None and not plan.modules:
        log_message(DB_MESSAGE_UP_TO_DATE)
        return RunSummary(outcome=OUTCOME_SUCCESS, plan=plan, message=DB_MESSAGE_UP_TO_DATE)

    log_message(DB_CAUTION_MESSAGE, "WARNING")
    if not confirmer.confirm("Would you like to continue?"):
        return RunSummary(outcome=OUTCOME_SUCCESS, plan=plan, aborted=True,
                          message="Database update cancelled.")

    if plan.core is not None:
        log_message("Applying core updates...")
        try:
            runner.upgrade_core()
        except MigrationFailed as e:
            log_message(f"Migration failed: {e} Please try to run the core migration through the UI.", "ERROR")
            results.append(_result(KIND_CORE, plan.core, STATUS_FAILED, str(e)))
        else:
            log_message("✓ Core update applied successfully.")
            results.append(_result(KIND_CORE, plan.core, STATUS_SUCCESS))

    module_errors = False
    for module_id, entry in plan.modules.items():
        log_message(f"Applying update for module {module_id}...")
        try:
            if entry.is_fresh_install:
                runner.install_module(module_id)
            else:
                runner.upgrade_module(module_id)
        except MigrationFailed as e:
            action = "installation" if entry.is_fresh_install else "update"
            log_message(f"Module {action} failed: {e}", "ERROR")
            results.append(_result(KIND_MODULE, entry, STATUS_FAILED, str(e)))
            module_errors = True
            continue
        results.append(_result(KIND_MODULE, entry, STATUS_SUCCESS))

    if plan.modules:
        if module_errors:
            log_message("Some module updates failed. Please try to manually update the module via the UI.",
                        "WARNING")
        else:
            log_message("✓ All module updates applied successfully.")

    if any(not r.succeeded for r in results):
        log_message(DB_MESSAGE_PARTIAL, "WARNING")
        return RunSummary(outcome=OUTCOME_PARTIAL, plan=plan, results=results, message=DB_MESSAGE_PARTIAL)
    log_message(DB_MESSAGE_SUCCESS)
    return RunSummary(outcome=OUTCOME_SUCCESS, plan=plan, results=results, message=DB_MESSAGE_SUCCESS)
