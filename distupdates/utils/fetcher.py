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
Archive download into private scratch files.

A fetch never retries: any transport failure surfaces as a FetchError and the
caller decides what a failure means for the component being installed.
"""

import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

import requests

from ..errors import FetchError
from .index import discard_file, log_message

DEFAULT_TIMEOUT = 60
CHUNK_SIZE = 64 * 1024


class ArchiveFetcher:
    """Downloads component archives to uniquely named scratch files."""

    def __init__(self, timeout: Optional[float] = DEFAULT_TIMEOUT,
                 scratch_dir: Optional[str] = None,
                 session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.scratch_dir = scratch_dir
        self.session = session

    def _new_scratch_file(self, kind: str) -> Path:
        if self.scratch_dir:
            os.makedirs(self.scratch_dir, exist_ok=True)
        fd, name = tempfile.mkstemp(prefix=f"distupdates_{kind}_", suffix=".zip",
                                    dir=self.scratch_dir)
        os.close(fd)
        return Path(name)

    def fetch(self, url: str, component: Optional[str] = None, kind: str = "archive") -> Path:
        """
        Download url to a private temporary file.

        Args:
            url: http(s) or file:// URL, or a plain local path
            component: Component id recorded on a FetchError
            kind: Used in the scratch file prefix (core, module, theme)

        Returns:
            Path: The scratch file; the caller owns deleting it

        Raises:
            FetchError: On any transport failure or non-2xx final status
        """
        if not url:
            raise FetchError("No download URL", component=component)

        target = self._new_scratch_file(kind)
        log_message(f"[FETCH] Downloading {url}", "DEBUG")
        try:
            scheme = urlparse(url).scheme.lower()
            if scheme in ("http", "https"):
                self._download(url, target)
            elif scheme in ("file", ""):
                self._copy_local(url, target)
            else:
                raise FetchError(f"Unsupported URL scheme '{scheme}'", component=component)
        except FetchError as e:
            discard_file(target)
            if component:
                e.for_component(component)
            raise
        except requests.RequestException as e:
            discard_file(target)
            raise FetchError(f"Download failed: {e}", component=component, cause=e) from e
        except OSError as e:
            discard_file(target)
            raise FetchError(f"Could not write archive: {e}", component=component, cause=e) from e

        log_message(f"[FETCH] ✓ Saved {target.stat().st_size} bytes to {target}", "DEBUG")
        return target

    def _download(self, url: str, target: Path) -> None:
        getter = self.session.get if self.session is not None else requests.get
        with getter(url, stream=True, timeout=self.timeout, allow_redirects=True) as response:
            response.raise_for_status()
            with open(target, "wb") as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)

    def _copy_local(self, url: str, target: Path) -> None:
        parsed = urlparse(url)
        source = Path(unquote(parsed.path)) if parsed.scheme == "file" else Path(url)
        if not source.is_file():
            raise FetchError(f"Archive not found: {source}")
        shutil.copyfile(source, target)
