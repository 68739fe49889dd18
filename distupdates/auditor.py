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
Update auditing: installed state versus the distribution manifest.

The auditor is a pure function of its two inputs. It performs no I/O of its
own beyond asking the inventory for versions, and returns a fresh plan whose
module and theme entries follow manifest order.
"""

from typing import Callable, Dict, Iterable, Optional

from .collaborators import InstalledState
from .models import (
    KIND_CORE, KIND_MODULE, KIND_THEME,
    ComponentSpec, DistributionManifest, UpdateEntry, UpdatePlan,
)
from .utils.version import VersionComparison, compare

FallbackCallback = Callable[[str, str, Optional[str], str], None]


class Auditor:
    """Builds an UpdatePlan from a manifest and an installed-state inventory."""

    def __init__(self, comparator: Callable[[Optional[str], str], VersionComparison] = compare):
        self.comparator = comparator

    def _entry_for(self, kind: str, spec: ComponentSpec, installed: Optional[str],
                   on_fallback: Optional[FallbackCallback]) -> Optional[UpdateEntry]:
        result = self.comparator(installed, spec.version)
        if result.fallback and on_fallback is not None:
            on_fallback(kind, spec.id, installed, spec.version)
        if not result.needs_update:
            return None
        return UpdateEntry(component_id=spec.id, from_version=installed, to_version=spec.version)

    def _audit_group(self, kind: str, specs: Iterable[ComponentSpec], installed_state: InstalledState,
                     on_fallback: Optional[FallbackCallback]) -> Dict[str, UpdateEntry]:
        entries = {}
        for spec in specs:
            installed = installed_state.get_installed_version(kind, spec.id)
            entry = self._entry_for(kind, spec, installed, on_fallback)
            if entry is not None:
                entries[spec.id] = entry
        return entries

    def audit(self, manifest: DistributionManifest, installed_state: InstalledState,
              on_fallback: Optional[FallbackCallback] = None) -> UpdatePlan:
        """
        Compute what needs updating.

        Args:
            manifest: Latest versions and download locations
            installed_state: Inventory of what is installed now
            on_fallback: Called with (kind, id, installed, latest) whenever a
                version pair could not be parsed and the lexical fallback decided

        Returns:
            UpdatePlan: Entries only for components that are missing or older
        """
        core_installed = installed_state.get_installed_version(KIND_CORE, manifest.core.id)
        return UpdatePlan(
            core=self._entry_for(KIND_CORE, manifest.core, core_installed, on_fallback),
            modules=self._audit_group(KIND_MODULE, manifest.modules, installed_state, on_fallback),
            themes=self._audit_group(KIND_THEME, manifest.themes, installed_state, on_fallback),
        )


def audit(manifest: DistributionManifest, installed_state: InstalledState,
          on_fallback: Optional[FallbackCallback] = None) -> UpdatePlan:
    return Auditor().audit(manifest, installed_state, on_fallback)
