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
Interfaces to the collaborators the updater depends on, plus the default
implementations used by the command line.

The orchestrator only relies on the capability each interface names; it never
looks collaborators up by name or through process-wide state.
"""

import configparser
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Optional, Protocol

import requests

from .models import KIND_CORE, KIND_MODULE, KIND_THEME
from .utils.index import log_message


@dataclass(frozen=True)
class Credentials:
    """Admin session credentials, passed explicitly to whoever needs them."""
    email: str
    password: str = field(repr=False)


class InstalledState(Protocol):
    def get_installed_version(self, kind: str, component_id: str) -> Optional[str]:
        """Installed version, or None when the component is not installed."""
        ...


class Authenticator(Protocol):
    def authenticate(self, credentials: Credentials) -> bool:
        ...


class Confirmer(Protocol):
    def confirm(self, prompt: str) -> bool:
        ...


class StaticInstalledState:
    """In-memory inventory, e.g. built from a status report or for tests."""

    def __init__(self, core: Optional[str] = None,
                 modules: Optional[Dict[str, Optional[str]]] = None,
                 themes: Optional[Dict[str, Optional[str]]] = None):
        self.core = core
        self.modules = dict(modules or {})
        self.themes = dict(themes or {})

    def get_installed_version(self, kind: str, component_id: str) -> Optional[str]:
        if kind == KIND_CORE:
            return self.core
        if kind == KIND_MODULE:
            return self.modules.get(component_id)
        if kind == KIND_THEME:
            return self.themes.get(component_id)
        return None


_CORE_VERSION_PATTERN = re.compile(r"const\s+VERSION\s*=\s*['\"]([^'\"]+)['\"]")


class FilesystemInventory:
    """
    Reads installed versions straight from the production tree.

    - core: VERSION constant in application/Module.php
    - modules: [info] version in modules/<id>/config/module.ini
    - themes: [info] version in themes/<id>/config/theme.ini

    A component without a readable version file counts as not installed.
    """

    def __init__(self, public_dir: str):
        self.public_dir = Path(public_dir)

    def get_installed_version(self, kind: str, component_id: str) -> Optional[str]:
        if kind == KIND_CORE:
            return self._core_version()
        if kind == KIND_MODULE:
            return self._ini_version(self.public_dir / "modules" / component_id / "config" / "module.ini")
        if kind == KIND_THEME:
            return self._ini_version(self.public_dir / "themes" / component_id / "config" / "theme.ini")
        return None

    def _core_version(self) -> Optional[str]:
        module_file = self.public_dir / "application" / "Module.php"
        try:
            match = _CORE_VERSION_PATTERN.search(module_file.read_text(encoding="utf-8", errors="replace"))
        except OSError:
            return None
        return match.group(1) if match else None

    @staticmethod
    def _ini_version(ini_path: Path) -> Optional[str]:
        if not ini_path.is_file():
            return None
        parser = configparser.ConfigParser(interpolation=None, strict=False)
        try:
            parser.read(ini_path, encoding="utf-8")
        except (configparser.Error, OSError, UnicodeDecodeError) as e:
            log_message(f"Failed to read {ini_path}: {e}", "WARNING")
            return None
        version = parser.get("info", "version", fallback=None)
        if version is None:
            return None
        return version.strip().strip('"\'') or None


class StaticAuthenticator:
    """Accepts any credentials with a non-empty email and password."""

    def authenticate(self, credentials: Credentials) -> bool:
        return bool(credentials.email and credentials.password)


class HttpAuthenticator:
    """Validates credentials against the host application's login endpoint."""

    def __init__(self, url: str, timeout: float = 30, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def authenticate(self, credentials: Credentials) -> bool:
        try:
            response = self.session.post(
                self.url,
                data={"email": credentials.email, "password": credentials.password},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            log_message(f"Authentication request failed: {e}", "ERROR")
            return False
        if not response.ok:
            log_message(f"Authentication rejected with HTTP {response.status_code}", "DEBUG")
        return response.ok


class AutoConfirmer:
    """Assume "yes" to every prompt (the --yes flag)."""

    def confirm(self, prompt: str) -> bool:
        return True


class ConsoleConfirmer:
    """Ask on the console; anything but y/yes, including EOF, means no."""

    def __init__(self, input_fn: Optional[Callable[[str], str]] = None):
        self.input_fn = input_fn or input

    def confirm(self, prompt: str) -> bool:
        try:
            answer = self.input_fn(f"{prompt} (y|n) ")
        except EOFError:
            return False
        return answer.strip().lower() in ("y", "yes")
