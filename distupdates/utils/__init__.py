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
Utilities for the distribution update orchestrator: logging, version
comparison, archive download and installation, directory swaps and the run lock.
"""

from .index import log_message, setup_update_logging, remove_path
from .version import VersionComparison, compare, compare_schema_versions
from .fetcher import ArchiveFetcher
from .archive import ArchiveInstaller
from .backup_swap import BackupSwapper, SwapResult
from .lock import RunLock

__all__ = [
    'log_message',
    'setup_update_logging',
    'remove_path',
    'VersionComparison',
    'compare',
    'compare_schema_versions',
    'ArchiveFetcher',
    'ArchiveInstaller',
    'BackupSwapper',
    'SwapResult',
    'RunLock',
]
