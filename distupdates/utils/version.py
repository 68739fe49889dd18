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
Version comparison for installed versus manifest versions.

Well-formed versions are parsed with packaging; anything else falls back to a
segment-wise comparison so an odd version string never stalls an update run.
"""

import re
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from packaging.version import InvalidVersion, Version

_SEGMENT_SPLIT = re.compile(r"[.\-+_]")


@dataclass(frozen=True)
class VersionComparison:
    """Outcome of comparing an installed version against the latest one."""
    needs_update: bool
    fallback: bool = False


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


def _segment_key(segment: str) -> Tuple[int, Union[int, str]]:
    # Numeric segments sort before textual ones at the same position.
    if segment.isdigit():
        return (0, int(segment))
    return (1, segment)


def _fallback_compare(version1: str, version2: str) -> int:
    v1_parts = [_segment_key(p) for p in _SEGMENT_SPLIT.split(version1.strip()) if p != ""]
    v2_parts = [_segment_key(p) for p in _SEGMENT_SPLIT.split(version2.strip()) if p != ""]
    if v1_parts != v2_parts:
        return -1 if v1_parts < v2_parts else 1
    return _sign((version1 > version2) - (version1 < version2))


def compare_schema_versions(version1: str, version2: str) -> Tuple[int, bool]:
    """
    Compare two version strings.

    Dotted segments are compared left to right, numerically where possible.
    A shorter version with a matching prefix is the lesser one, so "2.0" sorts
    before "2.0.0" and "2.0.1".

    Args:
        version1: First version string (e.g., "1.9.0")
        version2: Second version string (e.g., "1.10.0")

    Returns:
        tuple: (-1, 0 or 1, fallback) where fallback is True when at least one
        string could not be parsed and the lexical fallback decided the result
    """
    version1 = str(version1)
    version2 = str(version2)
    try:
        parsed1 = Version(version1)
        parsed2 = Version(version2)
    except InvalidVersion:
        return _fallback_compare(version1, version2), True

    if parsed1 != parsed2:
        return (-1 if parsed1 < parsed2 else 1), False

    # packaging treats trailing zeros as insignificant; the longer form wins here
    return _sign(len(parsed1.release) - len(parsed2.release)), False


def compare(installed: Optional[str], latest: str) -> VersionComparison:
    """
    Decide whether the installed version needs updating to latest.

    An absent installed version always needs an update (fresh install).
    Never raises.
    """
    if installed is None:
        return VersionComparison(needs_update=True)
    result, fallback = compare_schema_versions(installed, latest)
    return VersionComparison(needs_update=result < 0, fallback=fallback)
