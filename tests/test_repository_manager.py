# ruff: noqa: ANN201, ANN001
import asyncio
import json
from pathlib import Path

import pydantic
import pytest

from obsync.exceptions import HttpError, IoError, NotFoundError, OfflineError, ParseError, ValidationError
from obsync.models.repository import DeleteOutcome, Repository, RepositoryKey, UpdateStatus, VersionChange
from obsync.services.adapters import LocalFileSystem
from obsync.services.repositories import RepositoryManager
from tests.fakes import CatalogServer, Harness, make_zip

KEY = "unfoldingword/en/obs"
CONTENT = "/docs/obs-app/unfoldingword/en/obs"


@pytest.fixture
def harness() -> Harness:
    h = Harness()
    h.publish("unfoldingword", "en", "obs", "7.0")
    return h


@pytest.fixture
def manager(harness: Harness) -> RepositoryManager:
    return RepositoryManager(harness.context)


@pytest.mark.asyncio
async def test_initialize_loads_persisted_index(harness):
    harness.storage._data["@obs_downloaded_repos"] = json.dumps([KEY, "bad-key", "door43/fr/obs"])
    manager = RepositoryManager(harness.context)

    await manager.initialize()
    await manager.initialize()

    assert list(manager._index) == [KEY, "door43/fr/obs"]


@pytest.mark.asyncio
async def test_initialize_tolerates_corrupt_index(harness):
    harness.storage._data["@obs_downloaded_repos"] = "{not json"
    manager = RepositoryManager(harness.context)

    assert await manager.get_downloaded_repositories() == []


@pytest.mark.asyncio
async def test_get_repository_offline_uncached_returns_none(harness, manager):
    harness.network.online = False

    assert await manager.get_repository(KEY) is None
    assert harness.network.calls == []


@pytest.mark.asyncio
async def test_get_repository_online_returns_catalog_record(manager):
    repo = await manager.get_repository(KEY)

    assert repo is not None
    assert repo.display_name == "OBS"
    assert repo.version == "7.0"
    assert repo.description == "obs in en"
    assert repo.is_downloaded is False


@pytest.mark.asyncio
async def test_get_repository_catalog_miss_returns_none(manager):
    assert await manager.get_repository("unfoldingword/en/missing") is None


@pytest.mark.asyncio
async def test_get_repository_offline_falls_back_to_downloaded_record(harness, manager):
    await manager.download_repository(KEY)
    harness.network.online = False

    repo = await manager.get_repository(KEY)

    assert repo is not None
    assert repo.version == "7.0"
    assert repo.is_downloaded is True


@pytest.mark.asyncio
async def test_get_repository_catalog_failure_falls_back(harness, manager):
    await manager.download_repository(KEY)
    harness.server.failures = [500, 500]

    repo = await manager.get_repository(KEY)

    assert repo is not None
    assert repo.is_downloaded is True


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "key",
    ["unfoldingword/obs", "../en/obs", "a/../b", "a/./b", "a/en/b\\c", "a/en/b\x00", "../../victim", "a//b"],
)
async def test_invalid_key_is_rejected(harness, manager, key):
    with pytest.raises(ValidationError):
        await manager.get_repository(key)
    with pytest.raises(ValidationError):
        await manager.download_repository(key)
    with pytest.raises(ValidationError):
        await manager.delete_repository(key)
    assert harness.network.calls == []


def test_key_constructor_rejects_path_segments():
    with pytest.raises(pydantic.ValidationError):
        RepositoryKey(owner="..", language="en", id="obs")
    with pytest.raises(pydantic.ValidationError):
        RepositoryKey(owner="unfoldingword", language="en", id="a/b")


@pytest.mark.asyncio
async def test_key_whitespace_is_trimmed_but_case_is_kept(manager):
    assert str(RepositoryKey.parse(" unfoldingword / en / obs ")) == KEY

    await manager.download_repository(" unfoldingword / en / obs ")

    assert await manager.is_repository_downloaded(KEY) is True
    assert await manager.is_repository_downloaded("UnfoldingWord/en/obs") is False


@pytest.mark.asyncio
async def test_traversal_key_cannot_delete_outside_content_root(tmp_path: Path):
    victim = tmp_path / "victim"
    victim.mkdir()
    (victim / "precious.txt").write_text("keep", encoding="utf-8")
    (tmp_path / "docs" / "obs-app").mkdir(parents=True)

    h = Harness()
    h.context.filesystem = LocalFileSystem(tmp_path / "docs")
    manager = RepositoryManager(h.context)

    with pytest.raises(ValidationError):
        await manager.delete_repository("../../victim")
    with pytest.raises(ValidationError):
        await manager.download_repository("../../victim")

    assert (victim / "precious.txt").read_text(encoding="utf-8") == "keep"
    assert sorted(p.name for p in tmp_path.iterdir()) == ["docs", "victim"]


@pytest.mark.asyncio
async def test_search_repositories_filters_by_language(harness, manager):
    harness.publish("unfoldingword", "fr", "obs", "3.0")

    results = await manager.search_repositories("fr")

    assert [r.key.language for r in results] == ["fr"]
    assert harness.network.calls[-1][1]["lang"] == "fr"


@pytest.mark.asyncio
async def test_search_repositories_no_match_is_empty(manager):
    assert await manager.search_repositories("xx") == []


@pytest.mark.asyncio
async def test_search_repositories_marks_downloaded(manager):
    await manager.download_repository(KEY)

    results = await manager.search_repositories("en")

    assert [r.is_downloaded for r in results] == [True]


@pytest.mark.asyncio
async def test_search_repositories_offline_uses_downloaded(harness, manager):
    harness.publish("unfoldingword", "fr", "obs", "3.0")
    await manager.download_repository(KEY)
    await manager.download_repository("unfoldingword/fr/obs")
    harness.network.online = False

    results = await manager.search_repositories("fr")

    assert [str(r.key) for r in results] == ["unfoldingword/fr/obs"]


@pytest.mark.asyncio
async def test_download_then_downloaded(harness, manager):
    result = await manager.download_repository(KEY)

    assert result.change is VersionChange.NEW
    assert result.previous_version is None
    assert await manager.is_repository_downloaded(KEY) is True
    assert [str(r.key) for r in await manager.get_downloaded_repositories()] == [KEY]

    # Archive root folder is stripped and metadata written beside the content
    assert harness.fs.files[f"{CONTENT}/content/01.md"] == b"# Story 1"
    metadata = json.loads(harness.fs.files[f"{CONTENT}/metadata.json"])
    assert metadata["version"] == "7.0"

    # Index and metadata are persisted
    assert json.loads(harness.storage._data["@obs_downloaded_repos"]) == [KEY]
    stored = Repository.model_validate_json(harness.storage._data[f"@obs_downloaded_repos:{KEY}"])
    assert stored.version == "7.0"

    # No temporary files are left behind
    assert not [p for p in harness.fs.files if ".partial" in p or ".previous" in p]


@pytest.mark.asyncio
async def test_download_unknown_repository_raises_not_found(harness, manager):
    before = await manager.get_downloaded_repositories()

    with pytest.raises(NotFoundError):
        await manager.download_repository("unfoldingword/en/missing")

    assert await manager.get_downloaded_repositories() == before
    assert harness.fs.download_calls == []


@pytest.mark.asyncio
async def test_download_offline_raises(harness, manager):
    harness.network.online = False

    with pytest.raises(OfflineError):
        await manager.download_repository(KEY)


@pytest.mark.asyncio
async def test_failed_download_leaves_prior_state(harness, manager):
    await manager.download_repository(KEY)
    harness.server.publish("unfoldingword", "en", "obs", "7.1")
    del harness.fs.remote[CatalogServer.archive_url("unfoldingword", "obs", "master")]

    with pytest.raises(HttpError):
        await manager.download_repository(KEY)

    repos = await manager.get_downloaded_repositories()
    assert [r.version for r in repos] == ["7.0"]
    assert f"{CONTENT}/content/01.md" in harness.fs.files
    assert not [p for p in harness.fs.files if ".partial" in p]


@pytest.mark.asyncio
async def test_corrupt_archive_is_not_committed(harness, manager):
    harness.fs.remote[CatalogServer.archive_url("unfoldingword", "obs", "master")] = b"not a zip"

    with pytest.raises(ParseError):
        await manager.download_repository(KEY)

    assert await manager.is_repository_downloaded(KEY) is False
    assert "@obs_downloaded_repos" not in harness.storage._data


@pytest.mark.asyncio
async def test_commit_failure_rolls_back_content(harness, manager):
    await manager.download_repository(KEY)
    harness.publish("unfoldingword", "en", "obs", "7.1", files={"manifest.yaml": "version: 7.1"})
    harness.fs.fail_moves_to.add(CONTENT)

    with pytest.raises(IoError):
        await manager.download_repository(KEY)

    assert harness.fs.files[f"{CONTENT}/content/01.md"] == b"# Story 1"
    repo = await manager.get_local_repository(KEY)
    assert repo.version == "7.0"


@pytest.mark.asyncio
async def test_enumeration_during_commit_keeps_index_entry(harness, manager):
    await manager.download_repository(KEY)
    harness.publish("unfoldingword", "en", "obs", "7.1")
    gate = harness.fs.move_gates[CONTENT] = asyncio.Event()
    harness.fs.fail_moves_to.add(CONTENT)

    download = asyncio.create_task(manager.download_repository(KEY))
    await asyncio.sleep(0.01)
    assert CONTENT in harness.fs.moves_waiting

    # The old content sits in the backup path until the swap finishes
    assert await manager.get_downloaded_repositories() == []
    assert json.loads(harness.storage._data["@obs_downloaded_repos"]) == [KEY]

    gate.set()
    with pytest.raises(IoError):
        await download

    assert json.loads(harness.storage._data["@obs_downloaded_repos"]) == [KEY]
    assert [r.version for r in await manager.get_downloaded_repositories()] == ["7.0"]
    assert harness.fs.files[f"{CONTENT}/content/01.md"] == b"# Story 1"


@pytest.mark.asyncio
async def test_concurrent_downloads_share_one_fetch(harness, manager):
    harness.fs.download_gate = asyncio.Event()

    first = asyncio.create_task(manager.download_repository(KEY))
    second = asyncio.create_task(manager.download_repository(KEY))
    await asyncio.sleep(0.01)
    harness.fs.download_gate.set()
    results = await asyncio.gather(first, second)

    assert len(harness.fs.download_calls) == 1
    assert len(harness.fs.extract_calls) == 1
    assert results[0] == results[1]
    assert results[0].repository.version == "7.0"


@pytest.mark.asyncio
async def test_concurrent_download_failure_is_shared(harness, manager):
    del harness.fs.remote[CatalogServer.archive_url("unfoldingword", "obs", "master")]
    harness.fs.download_gate = asyncio.Event()

    first = asyncio.create_task(manager.download_repository(KEY))
    second = asyncio.create_task(manager.download_repository(KEY))
    await asyncio.sleep(0.01)
    harness.fs.download_gate.set()
    results = await asyncio.gather(first, second, return_exceptions=True)

    assert all(isinstance(r, HttpError) for r in results)
    # A 404 is not retried and the second caller does not fetch again
    assert len(harness.fs.download_calls) == 1


@pytest.mark.asyncio
async def test_concurrent_downloads_of_different_keys_both_commit(harness, manager):
    harness.publish("door43", "fr", "obs", "2.0")

    await asyncio.gather(
        manager.download_repository(KEY),
        manager.download_repository("door43/fr/obs"),
    )

    keys = sorted(str(r.key) for r in await manager.get_downloaded_repositories())
    assert keys == ["door43/fr/obs", KEY]
    assert sorted(json.loads(harness.storage._data["@obs_downloaded_repos"])) == keys


@pytest.mark.asyncio
async def test_delete_twice_is_idempotent(harness, manager):
    await manager.download_repository(KEY)

    first = await manager.delete_repository(KEY)
    second = await manager.delete_repository(KEY)

    assert first.outcome is DeleteOutcome.DELETED
    assert second.outcome is DeleteOutcome.NOT_PRESENT
    assert await manager.is_repository_downloaded(KEY) is False
    assert await manager.get_downloaded_repositories() == []
    assert not [p for p in harness.fs.files if p.startswith(CONTENT)]
    assert f"@obs_downloaded_repos:{KEY}" not in harness.storage._data
    assert json.loads(harness.storage._data["@obs_downloaded_repos"]) == []


@pytest.mark.asyncio
async def test_delete_never_downloaded(manager):
    result = await manager.delete_repository(KEY)

    assert result.outcome is DeleteOutcome.NOT_PRESENT


@pytest.mark.asyncio
async def test_delete_waits_for_in_flight_download(harness, manager):
    harness.fs.download_gate = asyncio.Event()
    download = asyncio.create_task(manager.download_repository(KEY))
    await asyncio.sleep(0.01)

    delete = asyncio.create_task(manager.delete_repository(KEY))
    await asyncio.sleep(0.01)
    assert not delete.done()

    harness.fs.download_gate.set()
    await download
    result = await delete

    assert result.outcome is DeleteOutcome.DELETED
    assert await manager.is_repository_downloaded(KEY) is False


@pytest.mark.asyncio
async def test_enumeration_drops_entries_without_content(harness, manager):
    await manager.download_repository(KEY)
    await harness.fs.delete(CONTENT)

    assert await manager.is_repository_downloaded(KEY) is False
    assert await manager.get_downloaded_repositories() == []
    assert json.loads(harness.storage._data["@obs_downloaded_repos"]) == []
    assert f"@obs_downloaded_repos:{KEY}" not in harness.storage._data


@pytest.mark.asyncio
async def test_enumeration_recovers_metadata_from_content(harness, manager):
    await manager.download_repository(KEY)
    del harness.storage._data[f"@obs_downloaded_repos:{KEY}"]

    repos = await manager.get_downloaded_repositories()

    assert [r.version for r in repos] == ["7.0"]


@pytest.mark.asyncio
async def test_enumeration_without_any_metadata_uses_minimal_record(harness, manager):
    await manager.download_repository(KEY)
    del harness.storage._data[f"@obs_downloaded_repos:{KEY}"]
    del harness.fs.files[f"{CONTENT}/metadata.json"]

    repos = await manager.get_downloaded_repositories()

    assert len(repos) == 1
    assert repos[0].display_name == "obs"
    assert repos[0].version == "0.0.0"
    assert repos[0].is_downloaded is True


@pytest.mark.asyncio
async def test_thumbnail_is_cached_with_download(harness):
    harness.publish("unfoldingword", "en", "obs", "7.0", avatar_url="https://img.test/obs.jpg")
    harness.fs.remote["https://img.test/obs.jpg"] = b"jpeg"
    manager = RepositoryManager(harness.context)

    result = await manager.download_repository(KEY)

    thumbnail = manager.get_thumbnail_path(KEY)
    assert thumbnail == "/docs/obs-app/thumbnails/unfoldingword_en_obs.jpg"
    assert harness.fs.files[thumbnail] == b"jpeg"
    assert result.repository.local_thumbnail == thumbnail

    await manager.delete_repository(KEY)
    assert thumbnail not in harness.fs.files


@pytest.mark.asyncio
async def test_missing_thumbnail_does_not_fail_download(harness):
    harness.publish("unfoldingword", "en", "obs", "7.0", avatar_url="https://img.test/missing.jpg")
    manager = RepositoryManager(harness.context)

    result = await manager.download_repository(KEY)

    assert result.repository.local_thumbnail is None
    assert await manager.is_repository_downloaded(KEY) is True


@pytest.mark.asyncio
async def test_has_updates_false_when_not_downloaded(manager):
    assert await manager.has_repository_updates(KEY) is False
    check = await manager.check_for_updates(KEY)
    assert check.status is UpdateStatus.NOT_DOWNLOADED


@pytest.mark.asyncio
async def test_has_updates_false_when_offline(harness, manager):
    await manager.download_repository(KEY)
    harness.server.publish("unfoldingword", "en", "obs", "8.0")
    harness.network.online = False

    assert await manager.has_repository_updates(KEY) is False
    check = await manager.check_for_updates(KEY)
    assert check.status is UpdateStatus.UNKNOWN
    assert check.local_version == "7.0"


@pytest.mark.asyncio
async def test_has_updates_false_for_older_remote(harness, manager):
    await manager.download_repository(KEY)
    harness.server.publish("unfoldingword", "en", "obs", "6.9")

    assert await manager.has_repository_updates(KEY) is False


@pytest.mark.asyncio
async def test_downgrade_is_classified(harness, manager):
    await manager.download_repository(KEY)
    harness.publish("unfoldingword", "en", "obs", "6.0")

    result = await manager.download_repository(KEY)

    assert result.change is VersionChange.DOWNGRADE
    assert result.previous_version == "7.0"


@pytest.mark.asyncio
async def test_end_to_end_update_cycle(harness, manager):
    await manager.download_repository(KEY)
    assert await manager.has_repository_updates(KEY) is False

    harness.publish(
        "unfoldingword", "en", "obs", "7.1", files={"manifest.yaml": "version: 7.1", "content/01.md": "# New"}
    )
    assert await manager.has_repository_updates(KEY) is True

    result = await manager.download_repository(KEY)
    assert result.change is VersionChange.UPGRADE
    assert result.previous_version == "7.0"
    assert (await manager.get_local_repository(KEY)).version == "7.1"
    assert harness.fs.files[f"{CONTENT}/content/01.md"] == b"# New"
    assert await manager.has_repository_updates(KEY) is False


@pytest.mark.asyncio
async def test_redownload_replaces_stale_files(harness, manager):
    await manager.download_repository(KEY)
    harness.fs.remote[CatalogServer.archive_url("unfoldingword", "obs", "master")] = make_zip(
        {"manifest.yaml": "version: 7.0"}
    )

    await manager.download_repository(KEY)

    assert f"{CONTENT}/content/01.md" not in harness.fs.files
    assert f"{CONTENT}/manifest.yaml" in harness.fs.files


@pytest.mark.asyncio
async def test_download_uses_requested_branch(harness, manager):
    harness.fs.remote[CatalogServer.archive_url("unfoldingword", "obs", "v7")] = make_zip({"a.md": "a"})

    await manager.download_repository(KEY, branch="v7")

    assert harness.fs.download_calls[0][0] == "https://archive.test/unfoldingword/obs/v7.zip"


@pytest.mark.asyncio
async def test_get_local_repository_requires_download(manager):
    with pytest.raises(NotFoundError):
        await manager.get_local_repository(KEY)
