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
ZIP archive installation.

Two modes are supported:

- rooted replace: the archive wraps everything in one top-level directory and
  that directory becomes the destination (used for the core distribution)
- merge: the archive is extracted as-is under a parent directory (used for
  modules and themes, whose archives already contain a directory named after
  the component)

Archives are opened and checked before anything is written, so a corrupt or
unsafe archive never leaves partial content in the destination tree.
"""

import os
import shutil
import tempfile
import zipfile
import zlib
from pathlib import Path, PurePosixPath
from typing import List, Optional

from ..errors import ArchiveError
from .index import PathLike, log_message, remove_path

_ZIP_ERRORS = (zipfile.BadZipFile, zipfile.LargeZipFile, RuntimeError,
               NotImplementedError, EOFError, zlib.error, OSError)

# Written by the macOS archiver next to the real content.
METADATA_ROOTS = frozenset({"__MACOSX"})


class ArchiveInstaller:
    """Extracts validated ZIP archives into the production tree."""

    def open_archive(self, archive_path: PathLike, component: Optional[str] = None) -> zipfile.ZipFile:
        """
        Open an archive and check it before use.

        Raises:
            ArchiveError: If the file is not a readable ZIP, a member fails its
                CRC check, or a member path would escape the extraction root
        """
        try:
            archive = zipfile.ZipFile(archive_path)
        except _ZIP_ERRORS as e:
            raise ArchiveError("Failed to open archive", component=component, cause=e) from e

        try:
            bad_member = archive.testzip()
        except _ZIP_ERRORS as e:
            archive.close()
            raise ArchiveError("Archive is corrupt", component=component, cause=e) from e
        if bad_member is not None:
            archive.close()
            raise ArchiveError(f"Archive member failed CRC check: {bad_member}", component=component)

        for name in archive.namelist():
            member_path = PurePosixPath(name)
            if member_path.is_absolute() or ".." in member_path.parts:
                archive.close()
                raise ArchiveError(f"Unsafe path in archive: {name}", component=component)
        return archive

    @staticmethod
    def _find_top_level_directory(names: List[str]) -> Optional[str]:
        # The first entry with more than one path segment names the wrapper.
        for name in names:
            parts = name.split("/")
            if len(parts) > 1 and parts[0] and parts[0] not in METADATA_ROOTS:
                return parts[0]
        return None

    def install_rooted(self, archive_path: PathLike, destination_dir: PathLike,
                       component: Optional[str] = None) -> Path:
        """
        Make the archive's single top-level directory become destination_dir.

        The archive is extracted into a sibling scratch directory, the wrapper
        directory is located and renamed onto destination_dir (which is removed
        first if present). The scratch directory never survives this call.

        Returns:
            Path: destination_dir

        Raises:
            ArchiveError: No discoverable top-level directory, extraction
                failure, or failure moving the extracted tree into place
        """
        destination = Path(destination_dir)
        parent = destination.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ArchiveError(f"Cannot create {parent}", component=component, cause=e) from e

        with self.open_archive(archive_path, component) as archive:
            top_dir = self._find_top_level_directory(archive.namelist())
            if not top_dir:
                raise ArchiveError("Could not determine top-level directory in archive",
                                   component=component)

            try:
                scratch = Path(tempfile.mkdtemp(prefix=f".{destination.name}.extract-", dir=parent))
            except OSError as e:
                raise ArchiveError(f"Cannot create scratch directory in {parent}",
                                   component=component, cause=e) from e
            try:
                log_message(f"[ARCHIVE] Extracting {archive_path} (top-level '{top_dir}')", "DEBUG")
                try:
                    archive.extractall(scratch)
                except _ZIP_ERRORS as e:
                    raise ArchiveError("Failed to extract archive", component=component, cause=e) from e

                extracted = scratch / top_dir
                if not extracted.is_dir():
                    raise ArchiveError("Extracted directory not found", component=component)

                try:
                    if os.path.lexists(destination):
                        remove_path(destination)
                    os.rename(extracted, destination)
                except OSError as e:
                    raise ArchiveError(f"Failed to move extracted directory to {destination}",
                                       component=component, cause=e) from e
            finally:
                shutil.rmtree(scratch, ignore_errors=True)

        log_message(f"[ARCHIVE] ✓ Installed {top_dir}/ as {destination}", "DEBUG")
        return destination

    def install_merged(self, archive_path: PathLike, destination_parent_dir: PathLike,
                       component: Optional[str] = None,
                       expected_root: Optional[str] = None) -> List[str]:
        """
        Extract the archive directly under destination_parent_dir.

        Metadata roots such as __MACOSX/ are neither checked nor extracted.

        Args:
            archive_path: Previously fetched archive
            destination_parent_dir: Directory receiving the archive contents
            component: Component id recorded on errors
            expected_root: When given, every member must live under this
                top-level name; checked before anything is extracted

        Returns:
            list: Sorted top-level names the archive wrote

        Raises:
            ArchiveError: On open, validation or extraction failure
        """
        parent = Path(destination_parent_dir)
        with self.open_archive(archive_path, component) as archive:
            names = [n for n in archive.namelist() if n.split("/")[0] not in METADATA_ROOTS]
            roots = sorted({n.split("/")[0] for n in names if n.split("/")[0]})
            if expected_root is not None and roots != [expected_root]:
                raise ArchiveError(
                    f"Archive must contain only '{expected_root}/', found: {', '.join(roots) or 'nothing'}",
                    component=component)
            try:
                parent.mkdir(parents=True, exist_ok=True)
                archive.extractall(parent, members=names)
            except _ZIP_ERRORS as e:
                raise ArchiveError("Failed to extract archive", component=component, cause=e) from e

        log_message(f"[ARCHIVE] ✓ Extracted {len(names)} entries under {parent}", "DEBUG")
        return roots
