"""Ordering of dotted numeric version strings."""

import re
from enum import IntEnum
from itertools import zip_longest

from obsync.models.repository import VersionChange

_LEADING_DIGITS = re.compile(r"\d+")


class VersionOrder(IntEnum):
    """Result of comparing two versions; negating swaps the direction."""

    LESS = -1
    EQUAL = 0
    GREATER = 1


def _segments(version: str) -> list[int]:
    """Split a version into integer segments.

    A leading ``v`` is ignored and each segment counts by its leading digits,
    so ``"v7.1-rc"`` becomes ``[7, 1]`` and ``"x"`` becomes ``[0]``.
    """
    text = version.strip()
    if text[:1] in ("v", "V"):
        text = text[1:]
    if not text:
        return [0]

    segments = []
    for part in text.split("."):
        match = _LEADING_DIGITS.match(part.strip())
        segments.append(int(match.group()) if match else 0)
    return segments


def compare_versions(a: str, b: str) -> VersionOrder:
    """Compare two dotted versions segment by segment.

    Missing trailing segments count as zero: ``compare_versions("1.2", "1.2.0")``
    is ``VersionOrder.EQUAL``.
    """
    for left, right in zip_longest(_segments(a), _segments(b), fillvalue=0):
        if left < right:
            return VersionOrder.LESS
        if left > right:
            return VersionOrder.GREATER
    return VersionOrder.EQUAL


def is_newer(remote: str, local: str) -> bool:
    """Return True when ``remote`` is strictly greater than ``local``."""
    return compare_versions(remote, local) is VersionOrder.GREATER


def classify_version_change(local: str | None, remote: str) -> VersionChange:
    """Classify a fetched version against the stored one (None means nothing stored)."""
    if local is None:
        return VersionChange.NEW

    order = compare_versions(remote, local)
    if order is VersionOrder.GREATER:
        return VersionChange.UPGRADE
    if order is VersionOrder.LESS:
        return VersionChange.DOWNGRADE
    return VersionChange.SAME
