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
Data model shared by the auditor, the orchestrator and the CLI.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Iterator, List, Optional, Tuple

CORE_ID = "core"

KIND_CORE = "core"
KIND_MODULE = "module"
KIND_THEME = "theme"

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"
STATUS_RESTORE_FAILED = "restore_failed"

OUTCOME_SUCCESS = "success"
OUTCOME_PARTIAL = "partial"
OUTCOME_FAILED = "failed"


@dataclass(frozen=True)
class ComponentSpec:
    """One manifest entry: the core, a module or a theme."""
    id: str
    version: str
    download_url: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DistributionManifest:
    """Latest available version and download location for every component."""
    core: ComponentSpec
    modules: Tuple[ComponentSpec, ...] = ()
    themes: Tuple[ComponentSpec, ...] = ()

    def module(self, component_id: str) -> Optional[ComponentSpec]:
        return next((m for m in self.modules if m.id == component_id), None)

    def theme(self, component_id: str) -> Optional[ComponentSpec]:
        return next((t for t in self.themes if t.id == component_id), None)


@dataclass
class UpdateEntry:
    """
    A planned update for one component.

    from_version is None when the component is not installed yet. downloaded
    only flips to True once the new version is committed on disk.
    """
    component_id: str
    from_version: Optional[str]
    to_version: str
    downloaded: bool = False

    @property
    def is_fresh_install(self) -> bool:
        return self.from_version is None

    def mark_downloaded(self) -> None:
        self.downloaded = True

    def describe(self) -> str:
        source = self.from_version if self.from_version is not None else "none"
        return f"{source} => {self.to_version}"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class UpdatePlan:
    """Components whose installed version is older than, or absent from, the manifest."""
    core: Optional[UpdateEntry] = None
    modules: Dict[str, UpdateEntry] = field(default_factory=dict)
    themes: Dict[str, UpdateEntry] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return self.core is None and not self.modules and not self.themes

    def entries(self) -> Iterator[Tuple[str, UpdateEntry]]:
        """Yield (kind, entry) pairs: core first, then modules, then themes."""
        if self.core is not None:
            yield KIND_CORE, self.core
        for entry in self.modules.values():
            yield KIND_MODULE, entry
        for entry in self.themes.values():
            yield KIND_THEME, entry

    def count(self) -> int:
        return sum(1 for _ in self.entries())

    def format_lines(self) -> List[str]:
        """Human-readable audit report, in the order components will be installed."""
        lines = []
        if self.core is not None:
            lines.append(f"Core update available: {self.core.describe()}")
        else:
            lines.append("Core is up to date.")
        if self.modules:
            lines.append("Module updates available:")
            lines.extend(f"{cid}: {entry.describe()}" for cid, entry in self.modules.items())
        else:
            lines.append("All modules are up to date.")
        if self.themes:
            lines.append("Theme updates available:")
            lines.extend(f"{cid}: {entry.describe()}" for cid, entry in self.themes.items())
        else:
            lines.append("All themes are up to date.")
        return lines

    def to_dict(self) -> Dict[str, Any]:
        return {
            "core": self.core.to_dict() if self.core else None,
            "modules": {cid: e.to_dict() for cid, e in self.modules.items()},
            "themes": {cid: e.to_dict() for cid, e in self.themes.items()},
        }


@dataclass
class ComponentResult:
    """Outcome of one component install step."""
    kind: str
    component_id: str
    from_version: Optional[str]
    to_version: str
    status: str
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == STATUS_SUCCESS

    def summary_line(self) -> str:
        source = self.from_version if self.from_version is not None else "none"
        line = f"{self.kind} {self.component_id}: from {source} to {self.to_version}: {self.status}"
        if self.error:
            line += f" ({self.error})"
        return line

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RunSummary:
    """Terminal report of an orchestration run."""
    outcome: str
    plan: UpdatePlan
    results: List[ComponentResult] = field(default_factory=list)
    aborted: bool = False
    message: str = ""

    @property
    def succeeded(self) -> bool:
        """True unless the run failed; partial runs still count as completed."""
        return self.outcome != OUTCOME_FAILED

    @property
    def installed_count(self) -> int:
        return sum(1 for r in self.results if r.succeeded)

    def result_for(self, kind: str, component_id: str) -> Optional[ComponentResult]:
        return next((r for r in self.results
                     if r.kind == kind and r.component_id == component_id), None)

    def format_lines(self) -> List[str]:
        lines = [r.summary_line() for r in self.results]
        if self.message:
            lines.append(self.message)
        return lines

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome,
            "aborted": self.aborted,
            "message": self.message,
            "plan": self.plan.to_dict(),
            "results": [r.to_dict() for r in self.results],
        }
