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
Backup, apply, then commit or restore a single directory.

The existing directory is moved aside with one rename, the caller-supplied
install function materializes the new content, and the backup is either
deleted (success) or renamed back (failure). A hard crash between the two
renames can leave the directory absent; the backup stays on disk under
<target>_bkp and the next swap of the same target moves it back into place
before backing it up again, so it is either restored or discarded.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from ..errors import FilesystemError, RestoreFailedError
from .index import PathLike, log_message, remove_path

BACKUP_SUFFIX = "_bkp"


@dataclass
class SwapResult:
    """What a successful swap did."""
    target: Path
    backed_up: bool
    value: Any = None


class BackupSwapper:
    """Wraps a directory replacement in backup -> apply -> commit-or-restore."""

    def __init__(self, suffix: str = BACKUP_SUFFIX):
        self.suffix = suffix

    def backup_path(self, target_dir: PathLike) -> Path:
        target = Path(target_dir)
        return target.with_name(target.name + self.suffix)

    def swap(self, target_dir: PathLike, install_fn: Callable[[], Any],
             component: Optional[str] = None) -> SwapResult:
        """
        Replace target_dir with whatever install_fn produces.

        Args:
            target_dir: Directory being replaced; may not exist yet
            install_fn: Zero-argument callable that writes the new content at target_dir
            component: Component id used in log lines and errors

        Returns:
            SwapResult: backed_up tells whether a previous directory existed;
            value holds install_fn's return value

        Raises:
            FilesystemError: The backup could not be created (target untouched)
            RestoreFailedError: install_fn failed and the backup could not be put back
            Exception: Whatever install_fn raised, after the previous state was restored
        """
        target = Path(target_dir)
        backup = self.backup_path(target)
        label = component or target.name
        backed_up = False

        if not os.path.lexists(target) and os.path.lexists(backup):
            # Left behind by a crash between the two renames: it is the last good state.
            log_message(f"[BACKUP] Found {backup} without {target}, recovering it first", "WARNING")
            try:
                os.rename(backup, target)
            except OSError as e:
                raise FilesystemError(f"Failed to recover {backup}", component=component, cause=e) from e

        if os.path.lexists(target):
            try:
                if os.path.lexists(backup):
                    log_message(f"[BACKUP] Removing stale backup {backup}", "WARNING")
                    remove_path(backup)
                os.rename(target, backup)
            except OSError as e:
                raise FilesystemError(f"Failed to back up {target}", component=component, cause=e) from e
            backed_up = True
            log_message(f"[BACKUP] Backed up {label} to {backup}", "DEBUG")

        try:
            value = install_fn()
        except Exception as install_error:
            log_message(f"[BACKUP] Install of {label} failed, restoring previous state", "WARNING")
            self._restore(target, backup if backed_up else None, component, install_error)
            raise

        if backed_up:
            try:
                remove_path(backup)
            except OSError as e:
                # The new content is committed; a leftover backup is only clutter.
                log_message(f"[BACKUP] Failed to remove backup {backup}: {e}", "WARNING")
        return SwapResult(target=target, backed_up=backed_up, value=value)

    def _restore(self, target: Path, backup: Optional[Path], component: Optional[str],
                 install_error: BaseException) -> None:
        try:
            if os.path.lexists(target):
                remove_path(target)
            if backup is not None:
                os.rename(backup, target)
        except OSError as e:
            where = f" Backup kept at {backup}." if backup is not None and os.path.lexists(backup) else ""
            raise RestoreFailedError(
                f"Restore failed after install error ({install_error}); "
                f"{target} may be left in neither the old nor the new state.{where}",
                component=component, cause=e,
                backup_path=str(backup) if backup is not None else None,
                install_error=install_error) from e
        if backup is not None:
            log_message(f"[BACKUP] ✓ Restored {component or target.name} from backup")
