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
Update orchestration for the core distribution, its modules and its themes.

Run sequence:

    idle -> auditing -> awaiting_confirmation -> installing_core
         -> installing_modules -> installing_themes -> done

The core is installed with a selective wipe of the production root, keeping a
fixed allow-list of preserved subtrees. A core failure ends the run because
modules and themes are expected to match the core version being installed.
Modules and themes are each wrapped in a BackupSwapper, and a failure in one
of them is recorded and the run moves on to the next component.

The run is not resumable. After a crash, running again recomputes the plan
from whatever is on disk.
"""

import os
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from .auditor import Auditor
from .collaborators import AutoConfirmer, Authenticator, Confirmer, Credentials, InstalledState
from .config import DEFAULT_PRESERVED
from .errors import (
    AuthenticationFailed, ArchiveError, ComponentError, CredentialsMissing,
    FilesystemError, RestoreFailedError,
)
from .models import (
    CORE_ID, KIND_CORE, KIND_MODULE, KIND_THEME,
    OUTCOME_FAILED, OUTCOME_PARTIAL, OUTCOME_SUCCESS,
    STATUS_FAILED, STATUS_RESTORE_FAILED, STATUS_SUCCESS,
    ComponentResult, ComponentSpec, DistributionManifest, RunSummary, UpdateEntry, UpdatePlan,
)
from .utils.archive import ArchiveInstaller
from .utils.backup_swap import BackupSwapper
from .utils.fetcher import ArchiveFetcher
from .utils.index import discard_file, log_message, remove_path
from .utils.lock import RunLock

STATE_IDLE = "idle"
STATE_AUDITING = "auditing"
STATE_AWAITING_CONFIRMATION = "awaiting_confirmation"
STATE_INSTALLING_CORE = "installing_core"
STATE_INSTALLING_MODULES = "installing_modules"
STATE_INSTALLING_THEMES = "installing_themes"
STATE_DONE = "done"

CORE_STAGING_DIR = "update_temp"

CAUTION_MESSAGE = (
    'CAUTION: Updating may disrupt your current installation. Before proceeding, '
    'please ensure you have a complete backup of both the codebase '
    '(especially the "public" directory) and the database.'
)
CONFIRM_PROMPT = "Would you like to continue?"

MESSAGE_UP_TO_DATE = "No updates available. The distribution is up to date."
MESSAGE_CANCELLED = "Update cancelled. Nothing was installed."
MESSAGE_SUCCESS = ('The distribution code has been updated successfully. '
                   'Please run the "update:db" command to finish the update.')
MESSAGE_PARTIAL = ('The distribution code has been updated with some errors. Please check the '
                   'messages above. Please run the "update:db" command to finish the update.')
MESSAGE_CORE_FAILED = "Core update failed. Modules and themes were not updated."
MESSAGE_RESTORE_FAILED = ("At least one component could not be restored after a failed update and "
                          "may be left in neither the old nor the new state. Check the messages above.")

_KIND_TAGS = {KIND_CORE: "[CORE]", KIND_MODULE: "[MODULE]", KIND_THEME: "[THEME]"}
_OUTCOME_LEVELS = {OUTCOME_SUCCESS: "INFO", OUTCOME_PARTIAL: "WARNING", OUTCOME_FAILED: "ERROR"}

TransitionCallback = Callable[[str, str], None]


class UpdateOrchestrator:
    """
    Plans and applies a code update of the distribution.

    Collaborators are injected; nothing is looked up globally. The
    orchestrator is single-threaded and installs one component at a time.
    """

    def __init__(self, public_dir: str, manifest: DistributionManifest,
                 installed_state: InstalledState,
                 confirmer: Optional[Confirmer] = None,
                 authenticator: Optional[Authenticator] = None,
                 credentials: Optional[Credentials] = None,
                 fetcher: Optional[ArchiveFetcher] = None,
                 installer: Optional[ArchiveInstaller] = None,
                 swapper: Optional[BackupSwapper] = None,
                 auditor: Optional[Auditor] = None,
                 preserved: Sequence[str] = DEFAULT_PRESERVED,
                 lock: Optional[RunLock] = None,
                 on_transition: Optional[TransitionCallback] = None):
        self.public_dir = Path(public_dir)
        self.manifest = manifest
        self.installed_state = installed_state
        self.confirmer = confirmer or AutoConfirmer()
        self.authenticator = authenticator
        self.credentials = credentials
        self.fetcher = fetcher or ArchiveFetcher()
        self.installer = installer or ArchiveInstaller()
        self.swapper = swapper or BackupSwapper()
        self.auditor = auditor or Auditor()
        self.preserved = frozenset(preserved)
        self.lock = lock
        self.on_transition = on_transition
        self.state = STATE_IDLE
        self.plan: Optional[UpdatePlan] = None

    # State machine ---------------------------------------------------------

    def _transition(self, new_state: str) -> None:
        old_state = self.state
        self.state = new_state
        log_message(f"State: {old_state} -> {new_state}", "DEBUG")
        if self.on_transition is not None:
            self.on_transition(old_state, new_state)

    def _finish(self, outcome: str, plan: UpdatePlan, results: List[ComponentResult],
                message: str, aborted: bool = False) -> RunSummary:
        self._transition(STATE_DONE)
        return RunSummary(outcome=outcome, plan=plan, results=results, aborted=aborted, message=message)

    def check_session(self) -> None:
        """
        Validate the admin session before anything else happens.

        Raises:
            CredentialsMissing: An authenticator is configured but no credentials were given
            AuthenticationFailed: The authenticator rejected the credentials
        """
        if self.authenticator is None:
            return
        if self.credentials is None:
            raise CredentialsMissing("Admin credentials not found in config.json.")
        if not self.authenticator.authenticate(self.credentials):
            raise AuthenticationFailed(f"Authentication failed for {self.credentials.email}.")

    def run(self) -> RunSummary:
        """
        Run a full audit and install cycle.

        Returns:
            RunSummary: outcome success, partial or failed plus per-component results

        Raises:
            PreconditionError: Authentication failed, credentials missing, or
                another session holds the run lock; nothing was installed
        """
        if self.lock is not None:
            with self.lock:
                return self._run()
        return self._run()

    def _run(self) -> RunSummary:
        self.state = STATE_IDLE
        try:
            self.check_session()
        except Exception:
            self._transition(STATE_DONE)
            raise

        self._transition(STATE_AUDITING)
        log_message("Checking for updates...")
        plan = self.audit()
        for line in plan.format_lines():
            log_message(line)

        results: List[ComponentResult] = []
        if plan.is_empty():
            log_message(MESSAGE_UP_TO_DATE)
            return self._finish(OUTCOME_SUCCESS, plan, results, MESSAGE_UP_TO_DATE)

        self._transition(STATE_AWAITING_CONFIRMATION)
        log_message(CAUTION_MESSAGE, "WARNING")
        if not self.confirmer.confirm(CONFIRM_PROMPT):
            log_message(MESSAGE_CANCELLED)
            return self._finish(OUTCOME_SUCCESS, plan, results, MESSAGE_CANCELLED, aborted=True)

        if plan.core is not None:
            self._transition(STATE_INSTALLING_CORE)
            core_result = self.install_core(plan.core, self.manifest.core)
            results.append(core_result)
            if not core_result.succeeded:
                log_message(MESSAGE_CORE_FAILED, "ERROR")
                return self._finish(OUTCOME_FAILED, plan, results, MESSAGE_CORE_FAILED)

        self._transition(STATE_INSTALLING_MODULES)
        results.extend(self._install_group(KIND_MODULE, plan.modules, self.manifest.module,
                                           self.public_dir / "modules"))

        self._transition(STATE_INSTALLING_THEMES)
        results.extend(self._install_group(KIND_THEME, plan.themes, self.manifest.theme,
                                           self.public_dir / "themes"))

        outcome, message = self._classify(results)
        log_message(message, _OUTCOME_LEVELS[outcome])
        return self._finish(outcome, plan, results, message)

    def audit(self) -> UpdatePlan:
        """Compute the plan once for this run and keep it on the orchestrator."""
        def warn_fallback(kind: str, component_id: str, installed: Optional[str], latest: str) -> None:
            log_message(f"{_KIND_TAGS[kind]} Could not parse versions for {component_id} "
                        f"('{installed}' vs '{latest}'); compared lexically", "WARNING")

        self.plan = self.auditor.audit(self.manifest, self.installed_state, on_fallback=warn_fallback)
        return self.plan

    @staticmethod
    def _classify(results: List[ComponentResult]):
        if any(r.status == STATUS_RESTORE_FAILED for r in results):
            return OUTCOME_FAILED, MESSAGE_RESTORE_FAILED
        if any(not r.succeeded for r in results):
            return OUTCOME_PARTIAL, MESSAGE_PARTIAL
        return OUTCOME_SUCCESS, MESSAGE_SUCCESS

    # Core ------------------------------------------------------------------

    def install_core(self, entry: UpdateEntry, spec: ComponentSpec) -> ComponentResult:
        """
        Install the core with the selective-wipe strategy.

        The new core is first extracted into a staging directory under the
        root. Only then is every top-level entry of the production root except
        the preserved subtrees (and the staging directory) deleted, and the
        staged top-level entries are moved into the root, skipping preserved
        names so an archive can never overwrite them.
        """
        log_message(f"[CORE] Downloading core {spec.version}...")
        archive = None
        staging = self.public_dir / CORE_STAGING_DIR
        try:
            archive = self.fetcher.fetch(spec.download_url, component=CORE_ID, kind=KIND_CORE)

            log_message("[CORE] Extracting the package...")
            # The new tree is fully staged before anything in the root is deleted.
            self.installer.install_rooted(archive, staging, component=CORE_ID)
            self._wipe_production_root()
            self._promote_core(staging)
        except ComponentError as e:
            e.for_component(CORE_ID)
            log_message(f"[CORE] ✗ Core update failed: {e}", "ERROR")
            return self._result(KIND_CORE, entry, STATUS_FAILED, str(e))
        except OSError as e:
            log_message(f"[CORE] ✗ Core update failed: {e}", "ERROR")
            return self._result(KIND_CORE, entry, STATUS_FAILED, str(e))
        finally:
            if archive is not None:
                discard_file(archive)
            if os.path.lexists(staging):
                try:
                    remove_path(staging)
                except OSError as e:
                    log_message(f"[CORE] Failed to remove staging directory {staging}: {e}", "WARNING")

        entry.mark_downloaded()
        log_message("[CORE] ✓ Core update has been unpacked successfully.")
        return self._result(KIND_CORE, entry, STATUS_SUCCESS)

    def _wipe_production_root(self) -> None:
        try:
            self.public_dir.mkdir(parents=True, exist_ok=True)
            for item in sorted(os.listdir(self.public_dir)):
                if item in self.preserved or item == CORE_STAGING_DIR:
                    continue
                remove_path(self.public_dir / item)
                log_message(f"[CORE] Removed {item}", "DEBUG")
        except OSError as e:
            raise FilesystemError(f"Failed to clear {self.public_dir}", component=CORE_ID, cause=e) from e

    def _promote_core(self, staging: Path) -> None:
        try:
            for item in sorted(os.listdir(staging)):
                if item in self.preserved:
                    log_message(f"[CORE] Keeping existing {item}/", "DEBUG")
                    continue
                destination = self.public_dir / item
                if os.path.lexists(destination):
                    remove_path(destination)
                os.rename(staging / item, destination)
        except OSError as e:
            raise FilesystemError(f"Failed to move new core files into {self.public_dir}",
                                  component=CORE_ID, cause=e) from e

    # Modules and themes ----------------------------------------------------

    def _install_group(self, kind: str, entries: Dict[str, UpdateEntry],
                       lookup: Callable[[str], Optional[ComponentSpec]],
                       parent_dir: Path) -> List[ComponentResult]:
        results = []
        for component_id, entry in entries.items():
            spec = lookup(component_id)
            if spec is None:
                # The plan is derived from the manifest, so this only happens with a hand-built plan.
                log_message(f"{_KIND_TAGS[kind]} {component_id} is not in the manifest, skipping", "WARNING")
                results.append(self._result(kind, entry, STATUS_FAILED, "not in manifest"))
                continue
            results.append(self.install_component(kind, entry, spec, parent_dir))
        return results

    def install_component(self, kind: str, entry: UpdateEntry, spec: ComponentSpec,
                          parent_dir: Path) -> ComponentResult:
        """
        Fetch and merge-install one module or theme under parent_dir/<id>.

        Any failure is contained to this component and reported in the result.
        """
        tag = _KIND_TAGS[kind]
        component_id = spec.id
        target = parent_dir / component_id
        log_message(f"{tag} Downloading {kind}: {component_id} ({spec.version})...")
        archive = None
        try:
            archive = self.fetcher.fetch(spec.download_url, component=component_id, kind=kind)
            log_message(f"{tag} Extracting {kind} {component_id}...")

            def install() -> None:
                self.installer.install_merged(archive, parent_dir, component=component_id,
                                              expected_root=component_id)
                if not target.is_dir():
                    raise ArchiveError(f"Archive did not produce {component_id}/", component=component_id)

            self.swapper.swap(target, install, component=component_id)
        except RestoreFailedError as e:
            log_message(f"{tag} ✗ {component_id}: {e}", "CRITICAL")
            return self._result(kind, entry, STATUS_RESTORE_FAILED, str(e))
        except ComponentError as e:
            e.for_component(component_id)
            log_message(f"{tag} ✗ Failed to update {kind} {component_id}: {e}", "ERROR")
            return self._result(kind, entry, STATUS_FAILED, str(e))
        except Exception as e:
            log_message(f"{tag} ✗ Unexpected error updating {kind} {component_id}: {e}", "ERROR")
            return self._result(kind, entry, STATUS_FAILED, str(e))
        finally:
            if archive is not None:
                discard_file(archive)

        entry.mark_downloaded()
        log_message(f"{tag} ✓ {kind.capitalize()} {component_id} update has been unpacked successfully.")
        return self._result(kind, entry, STATUS_SUCCESS)

    @staticmethod
    def _result(kind: str, entry: UpdateEntry, status: str, error: Optional[str] = None) -> ComponentResult:
        return ComponentResult(kind=kind, component_id=entry.component_id,
                               from_version=entry.from_version, to_version=entry.to_version,
                               status=status, error=error)
