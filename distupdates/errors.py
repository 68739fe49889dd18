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
Error kinds raised by the distribution updater.

Precondition errors stop a run before anything is touched. Component errors
carry the id of the component that failed and the underlying cause so the
orchestrator can decide whether the failure is fatal (core) or isolated
(module/theme).
"""

from typing import Optional


class UpdateError(Exception):
    """Base class for every updater failure."""
    pass


class PreconditionError(UpdateError):
    """A run precondition was not met; nothing has been installed."""
    pass


class ManifestMissing(PreconditionError):
    pass


class ManifestInvalid(PreconditionError):
    pass


class ConfigMissing(PreconditionError):
    pass


class ConfigInvalid(PreconditionError):
    pass


class CredentialsMissing(PreconditionError):
    pass


class AuthenticationFailed(PreconditionError):
    pass


class LockError(PreconditionError):
    """Another update session holds the run lock."""
    pass


class ComponentError(UpdateError):
    """A failure scoped to a single component install step."""

    kind = "component"

    def __init__(self, message: str, component: Optional[str] = None,
                 cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.component = component
        self.cause = cause

    def for_component(self, component: str) -> "ComponentError":
        """Attach a component id if none was recorded yet."""
        if self.component is None:
            self.component = component
        return self

    def __str__(self) -> str:
        text = self.message
        if self.cause is not None and str(self.cause) and str(self.cause) not in text:
            text = f"{text} ({self.cause})"
        return text


class FetchError(ComponentError):
    kind = "fetch"


class ArchiveError(ComponentError):
    kind = "archive"


class FilesystemError(ComponentError):
    kind = "filesystem"


class RestoreFailedError(FilesystemError):
    """
    The backup could not be put back after a failed install.

    The component directory may be left in neither the old nor the new state.
    """

    kind = "restore"

    def __init__(self, message: str, component: Optional[str] = None,
                 cause: Optional[BaseException] = None,
                 backup_path: Optional[str] = None,
                 install_error: Optional[BaseException] = None):
        super().__init__(message, component=component, cause=cause)
        self.backup_path = backup_path
        self.install_error = install_error


class MigrationFailed(UpdateError):
    def __init__(self, message: str, component: Optional[str] = None):
        super().__init__(message)
        self.component = component
