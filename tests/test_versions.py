import itertools

import pytest

from obsync.core.versions import VersionOrder, classify_version_change, compare_versions, is_newer
from obsync.models.repository import VersionChange

SAMPLES = ["1.0.0", "1.2", "1.2.0", "1.10", "2.0.0", "1.9.9", "v7.1", "7.1.0", "0", "", "abc", "3.x.1"]


@pytest.mark.parametrize(
    ("a", "b", "expected"),
    [
        ("1.2", "1.2.0", VersionOrder.EQUAL),
        ("2.0.0", "1.9.9", VersionOrder.GREATER),
        ("1.9", "1.10", VersionOrder.LESS),
        ("v7.1", "7.1", VersionOrder.EQUAL),
        ("7.1-rc", "7.1", VersionOrder.EQUAL),
        ("x.2", "0.2", VersionOrder.EQUAL),
        ("", "0.0.0", VersionOrder.EQUAL),
        ("1.0.1", "1.0", VersionOrder.GREATER),
    ],
)
def test_compare_versions(a: str, b: str, expected: VersionOrder) -> None:
    assert compare_versions(a, b) is expected


def test_compare_versions_is_antisymmetric() -> None:
    for a, b in itertools.product(SAMPLES, repeat=2):
        assert compare_versions(a, b) == -compare_versions(b, a), (a, b)


def test_compare_versions_is_reflexive() -> None:
    for a in SAMPLES:
        assert compare_versions(a, a) is VersionOrder.EQUAL


def test_is_newer() -> None:
    assert is_newer("7.1", "7.0") is True
    assert is_newer("7.0", "7.0.0") is False
    assert is_newer("6.9", "7.0") is False


def test_classify_version_change() -> None:
    assert classify_version_change(None, "1.0") is VersionChange.NEW
    assert classify_version_change("1.0", "1.0.0") is VersionChange.SAME
    assert classify_version_change("1.0", "1.1") is VersionChange.UPGRADE
    assert classify_version_change("1.1", "1.0") is VersionChange.DOWNGRADE
