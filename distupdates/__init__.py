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
Distribution update orchestrator.

Audits the installed core, modules and themes against a distribution
manifest, downloads what is out of date and installs it into the production
tree while keeping configuration, user files and logs in place.
"""

from .auditor import Auditor, audit
from .collaborators import (
    AutoConfirmer, ConsoleConfirmer, Credentials, FilesystemInventory,
    HttpAuthenticator, StaticAuthenticator, StaticInstalledState,
)
from .config import UpdaterConfig, load_config, load_manifest, parse_manifest
from .errors import (
    ArchiveError, AuthenticationFailed, ComponentError, ConfigInvalid, ConfigMissing,
    CredentialsMissing, FetchError, FilesystemError, LockError, ManifestInvalid,
    ManifestMissing, MigrationFailed, PreconditionError, RestoreFailedError, UpdateError,
)
from .models import (
    ComponentResult, ComponentSpec, DistributionManifest, RunSummary, UpdateEntry, UpdatePlan,
)
from .orchestrator import UpdateOrchestrator
from .utils.archive import ArchiveInstaller
from .utils.backup_swap import BackupSwapper
from .utils.fetcher import ArchiveFetcher
from .utils.index import log_message
from .utils.version import compare, compare_schema_versions

__version__ = "1.0.0"

__all__ = [
    'Auditor',
    'audit',
    'AutoConfirmer',
    'ConsoleConfirmer',
    'Credentials',
    'FilesystemInventory',
    'HttpAuthenticator',
    'StaticAuthenticator',
    'StaticInstalledState',
    'UpdaterConfig',
    'load_config',
    'load_manifest',
    'parse_manifest',
    'ArchiveError',
    'AuthenticationFailed',
    'ComponentError',
    'ConfigInvalid',
    'ConfigMissing',
    'CredentialsMissing',
    'FetchError',
    'FilesystemError',
    'LockError',
    'ManifestInvalid',
    'ManifestMissing',
    'MigrationFailed',
    'PreconditionError',
    'RestoreFailedError',
    'UpdateError',
    'ComponentResult',
    'ComponentSpec',
    'DistributionManifest',
    'RunSummary',
    'UpdateEntry',
    'UpdatePlan',
    'UpdateOrchestrator',
    'ArchiveInstaller',
    'BackupSwapper',
    'ArchiveFetcher',
    'log_message',
    'compare',
    'compare_schema_versions',
]
