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
Configuration and manifest loading.

Layout of a distribution root:

    <root>/distribution.json      manifest (or a URL given on the command line)
    <root>/config/config.json     admin credentials and updater settings
    <root>/public/                production tree

config.json:

    {
        "admin": {"email": "...", "password": "..."},
        "updater": {
            "public_dir": "public",
            "manifest": "distribution.json",
            "preserved": ["config", "files", "modules", "themes", "logs"],
            "timeout": 60,
            "scratch_dir": null,
            "debug": false,
            "auth_url": null,
            "migration_command": null
        }
    }
"""

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import requests

from .collaborators import Credentials
from .errors import ConfigInvalid, ConfigMissing, CredentialsMissing, ManifestInvalid, ManifestMissing
from .models import CORE_ID, ComponentSpec, DistributionManifest
from .utils.index import log_message

DEFAULT_CONFIG_PATH = os.path.join("config", "config.json")
DEFAULT_MANIFEST = "distribution.json"
DEFAULT_PUBLIC_DIR = "public"
DEFAULT_PRESERVED = ("config", "files", "modules", "themes", "logs")
DEFAULT_TIMEOUT = 60


@dataclass
class UpdaterConfig:
    """Resolved updater settings; every path is absolute."""
    root_dir: str
    public_dir: str
    manifest: str
    preserved: Tuple[str, ...] = DEFAULT_PRESERVED
    timeout: float = DEFAULT_TIMEOUT
    scratch_dir: Optional[str] = None
    debug: bool = False
    auth_url: Optional[str] = None
    migration_command: Optional[List[str]] = None
    admin: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], root_dir: str) -> 'UpdaterConfig':
        if not isinstance(data, dict):
            raise ConfigInvalid("config.json must contain a JSON object.")
        root_dir = os.path.abspath(root_dir)
        updater = data.get("updater") or {}
        if not isinstance(updater, dict):
            raise ConfigInvalid("'updater' in config.json must be an object.")

        def resolve(value: Optional[str]) -> Optional[str]:
            if not value:
                return None
            if "://" in value:
                return value
            return os.path.normpath(os.path.join(root_dir, value))

        preserved = updater.get("preserved", DEFAULT_PRESERVED)
        if not isinstance(preserved, (list, tuple)) or not all(isinstance(p, str) for p in preserved):
            raise ConfigInvalid("'updater.preserved' must be a list of directory names.")

        migration_command = updater.get("migration_command")
        if isinstance(migration_command, str):
            migration_command = migration_command.split()
        if migration_command is not None and not isinstance(migration_command, list):
            raise ConfigInvalid("'updater.migration_command' must be a list or a string.")

        try:
            timeout = float(updater.get("timeout", DEFAULT_TIMEOUT))
        except (TypeError, ValueError):
            raise ConfigInvalid("'updater.timeout' must be a number.")

        return cls(
            root_dir=root_dir,
            public_dir=resolve(updater.get("public_dir", DEFAULT_PUBLIC_DIR)),
            manifest=resolve(updater.get("manifest", DEFAULT_MANIFEST)),
            preserved=tuple(preserved),
            timeout=timeout,
            scratch_dir=resolve(updater.get("scratch_dir")),
            debug=bool(updater.get("debug", False)),
            auth_url=updater.get("auth_url"),
            migration_command=migration_command,
            admin=data.get("admin") or {},
        )

    def credentials(self) -> Credentials:
        """
        Admin credentials from config.json.

        Raises:
            CredentialsMissing: If email or password is absent
        """
        email = self.admin.get("email") if isinstance(self.admin, dict) else None
        password = self.admin.get("password") if isinstance(self.admin, dict) else None
        if not email or not password:
            raise CredentialsMissing("Admin credentials not found in config.json.")
        return Credentials(email=email, password=password)


def load_config(root_dir: str, config_path: Optional[str] = None) -> UpdaterConfig:
    """
    Load config.json for a distribution root.

    Raises:
        ConfigMissing: The file does not exist
        ConfigInvalid: The file is not valid JSON or has the wrong shape
    """
    path = config_path or os.path.join(root_dir, DEFAULT_CONFIG_PATH)
    if not os.path.exists(path):
        raise ConfigMissing("config.json not found.")
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigInvalid(f"Failed to read {path}: {e}")
    return UpdaterConfig.from_dict(data, root_dir)


def _component_from_dict(data: Any, where: str, component_id: Optional[str] = None) -> ComponentSpec:
    if not isinstance(data, dict):
        raise ManifestInvalid(f"{where} must be an object.")
    cid = component_id if component_id is not None else data.get("name")
    version = data.get("version")
    url = data.get("url")
    if not cid or not isinstance(cid, str):
        raise ManifestInvalid(f"{where} has no name.")
    if version is None or isinstance(version, bool) or not isinstance(version, (str, int, float)):
        raise ManifestInvalid(f"{where} has no valid version.")
    if not url or not isinstance(url, str):
        raise ManifestInvalid(f"{where} has no url.")
    return ComponentSpec(id=cid, version=str(version), download_url=url)


def _component_list(data: Dict[str, Any], key: str) -> Tuple[ComponentSpec, ...]:
    items = data.get(key)
    if items is None:
        return ()
    if not isinstance(items, list):
        raise ManifestInvalid(f"'{key}' must be a list.")
    specs = []
    seen = set()
    for index, item in enumerate(items):
        spec = _component_from_dict(item, f"{key}[{index}]")
        if spec.id in seen:
            raise ManifestInvalid(f"Duplicate id '{spec.id}' in '{key}'.")
        seen.add(spec.id)
        specs.append(spec)
    return tuple(specs)


def parse_manifest(data: Any) -> DistributionManifest:
    """
    Build a DistributionManifest from decoded distribution.json content.

    Raises:
        ManifestInvalid: On any shape error or duplicate module/theme id
    """
    if not isinstance(data, dict):
        raise ManifestInvalid("distribution.json must contain a JSON object.")
    if "core" not in data:
        raise ManifestInvalid("distribution.json has no 'core' entry.")
    return DistributionManifest(
        core=_component_from_dict(data["core"], "core", component_id=CORE_ID),
        modules=_component_list(data, "modules"),
        themes=_component_list(data, "themes"),
    )


def load_manifest(source: str, timeout: float = DEFAULT_TIMEOUT) -> DistributionManifest:
    """
    Load the distribution manifest from a local file or an http(s) URL.

    Raises:
        ManifestMissing: The file does not exist or the URL could not be retrieved
        ManifestInvalid: The content is not a valid manifest
    """
    if source.startswith(("http://", "https://")):
        log_message(f"Fetching manifest from {source}", "DEBUG")
        try:
            response = requests.get(source, timeout=timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise ManifestMissing(f"distribution.json could not be retrieved: {e}")
        try:
            data = response.json()
        except ValueError as e:
            raise ManifestInvalid(f"distribution.json is not valid JSON: {e}")
        return parse_manifest(data)

    if not os.path.exists(source):
        raise ManifestMissing("distribution.json not found.")
    try:
        with open(source, 'r') as f:
            data = json.load(f)
    except ValueError as e:
        raise ManifestInvalid(f"distribution.json is not valid JSON: {e}")
    except OSError as e:
        raise ManifestMissing(f"distribution.json could not be read: {e}")
    return parse_manifest(data)
