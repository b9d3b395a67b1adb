"""
Release selection for the mod portal.

A release is compatible only when its declared Factorio version equals the
target version exactly; among compatible releases the numerically greatest
``major.minor.patch`` wins.
"""

import re
from typing import Iterable, Optional

from ..models import ModRelease

VERSION_COMPONENTS = 3

_LEADING_DIGITS = re.compile(r"\s*(\d+)")


def parse_version(value: str) -> tuple[int, ...]:
    """Parse ``"1.10.2"`` into ``(1, 10, 2)``.

    Missing or non-numeric components count as zero, so ``"2.0"`` becomes
    ``(2, 0, 0)``. Components past the third are ignored.
    """
    parts = (value or "").split(".")
    numbers: list[int] = []
    for idx in range(VERSION_COMPONENTS):
        number = 0
        if idx < len(parts):
            match = _LEADING_DIGITS.match(parts[idx])
            if match:
                number = int(match.group(1))
        numbers.append(number)
    return tuple(numbers)


def select_release(
    releases: Iterable[ModRelease], factorio_version: str
) -> Optional[ModRelease]:
    best: Optional[ModRelease] = None
    best_version: tuple[int, ...] = ()
    for release in releases:
        if release.engine_version != factorio_version:
            continue
        candidate = parse_version(release.version)
        # strictly greater keeps the first release on ties
        if best is None or candidate > best_version:
            best = release
            best_version = candidate
    return best
