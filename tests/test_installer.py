# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Unit Tests for the Library Installer

Tests the install state machine: fresh install, upgrade, skip, rollback on
failure, lock handling and removal.
"""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio

from conftest import library_json, snapshot
from libregistry.core.errors import (
    AggregateValidationError,
    InstallLockTimeout,
    LibraryInUseError,
    LibraryNotFoundError,
    MissingRequiredFile,
    RepositoryInconsistentError
)
from libregistry.models.library_models import InstallResultType, LibraryMetadata, LibraryName
from libregistry.services.installer import LibraryInstaller

FOO_BAR = LibraryName(machine_name="Foo.Bar", major_version=1, minor_version=0)


class TestFreshInstall:
    """Test suite for installing a library that is not present"""

    @pytest.mark.asyncio
    async def test_fresh_install(self, installer, repository, stage_library, libraries_dir):
        """Files and metadata end up in the repository"""
        directory = stage_library(
            "Foo.Bar", 1, 0, 2,
            files={"bar.js": "var bar;", "styles/bar.css": "body{}"},
            preloaded_js=["bar.js"],
            preloaded_css=["styles/bar.css"]
        )

        result = await installer.install_from_directory(directory)

        assert result.type == InstallResultType.NEW
        assert result.new_version.version == "1.0.2"
        assert result.old_version is None

        installed = await repository.get_library(FOO_BAR)
        assert installed.patch_version == 2
        assert installed.restricted is False
        assert await repository.list_files(FOO_BAR) == ["bar.js", "styles/bar.css"]
        assert (libraries_dir / "Foo.Bar-1.0" / "bar.js").read_text() == "var bar;"

    @pytest.mark.asyncio
    async def test_metadata_written_last(self, installer, storage, stage_library):
        """write_metadata is called only after every file was written"""
        directory = stage_library("Foo.Bar", files={"a.js": "a", "b.js": "b"})
        calls = []
        original_write = storage.write_file
        original_metadata = storage.write_metadata

        async def record_write(library, path, data):
            calls.append(path)
            await original_write(library, path, data)

        async def record_metadata(library, metadata):
            calls.append("library.json")
            await original_metadata(library, metadata)

        with patch.object(storage, "write_file", new=record_write), \
                patch.object(storage, "write_metadata", new=record_metadata):
            await installer.install_from_directory(directory)

        assert calls == ["a.js", "b.js", "library.json"]

    @pytest.mark.asyncio
    async def test_restricted_flag_stored(self, installer, repository, stage_library):
        """restricted=True is kept in the metadata record"""
        directory = stage_library("Foo.Bar")

        await installer.install_from_directory(directory, restricted=True)

        assert (await repository.get_library(FOO_BAR)).restricted is True

    @pytest.mark.asyncio
    async def test_unknown_metadata_keys_survive(self, installer, libraries_dir, stage_library):
        """Keys the model does not know about are written back"""
        directory = stage_library("Foo.Bar", requiredExtensions={"sharedState": 1})

        await installer.install_from_directory(directory)

        stored = json.loads((libraries_dir / "Foo.Bar-1.0" / "library.json").read_text())
        assert stored["requiredExtensions"] == {"sharedState": 1}
        assert stored["machineName"] == "Foo.Bar"

    @pytest.mark.asyncio
    async def test_invalid_metadata(self, installer, stage_library):
        """Broken library.json raises the aggregate validation error"""
        directory = stage_library("Foo.Bar")
        (directory / "library.json").write_text("{not json")

        with pytest.raises(AggregateValidationError) as exc_info:
            await installer.install_from_directory(directory)

        assert exc_info.value.errors[0][0] == "invalid-library-metadata"

    @pytest.mark.asyncio
    async def test_machine_name_with_trailing_newline(self, installer, stage_library, libraries_dir):
        """A machine name ending in a newline is invalid metadata, not a new directory"""
        directory = stage_library("Foo.Bar")
        (directory / "library.json").write_text(json.dumps(library_json("Foo.Bar\n")))

        with pytest.raises(AggregateValidationError) as exc_info:
            await installer.install_from_directory(directory)

        assert exc_info.value.errors[0][0] == "invalid-library-metadata"
        assert snapshot(libraries_dir) == {}

    @pytest.mark.asyncio
    async def test_leftovers_of_interrupted_install_removed(self, installer, repository, stage_library, libraries_dir):
        """Files in a library directory without library.json do not survive a fresh install"""
        leftover = libraries_dir / "Foo.Bar-1.0" / "language"
        leftover.mkdir(parents=True)
        (leftover / "xx.json").write_text("{}")
        (libraries_dir / "Foo.Bar-1.0" / "stale.js").write_text("old")
        directory = stage_library("Foo.Bar", files={"bar.js": "var bar;"}, preloaded_js=["bar.js"])

        result = await installer.install_from_directory(directory)

        assert result.type == InstallResultType.NEW
        assert await repository.list_files(FOO_BAR) == ["bar.js"]
        assert await repository.list_languages(FOO_BAR) == []

    @pytest.mark.asyncio
    async def test_missing_required_file_aborts_before_writes(self, installer, storage, repository, stage_library):
        """A declared preloaded file missing from staging fails before any write"""
        directory = stage_library("Foo.Bar", files={"bar.js": "x"}, preloaded_js=["bar.js", "missing.js"])

        with patch.object(storage, "write_file", new=AsyncMock()) as write_file:
            with pytest.raises(MissingRequiredFile) as exc_info:
                await installer.install_from_directory(directory)

        write_file.assert_not_called()
        assert exc_info.value.files == ["missing.js"]
        assert not await repository.library_exists(FOO_BAR)


class TestUpgradeAndSkip:
    """Test suite for installing over an existing installation"""

    @pytest_asyncio.fixture
    async def installed_patch_2(self, installer, stage_library, tmp_path):
        """Foo.Bar 1.0.2 installed with bar.js and old.js"""
        directory = stage_library(
            "Foo.Bar", 1, 0, 2,
            files={"bar.js": "v2", "old.js": "only in v2"},
            preloaded_js=["bar.js", "old.js"],
            root=tmp_path / "v2"
        )
        await installer.install_from_directory(directory)

    @pytest.mark.asyncio
    async def test_upgrade_to_higher_patch(self, installer, repository, stage_library, installed_patch_2, tmp_path):
        """Patch 3 over patch 2 replaces metadata and removes old-only files"""
        directory = stage_library(
            "Foo.Bar", 1, 0, 3,
            files={"bar.js": "v3", "new.css": "x"},
            preloaded_js=["bar.js"],
            preloaded_css=["new.css"],
            root=tmp_path / "v3"
        )

        result = await installer.install_from_directory(directory)

        assert result.type == InstallResultType.PATCH
        assert result.old_version.version == "1.0.2"
        assert result.new_version.version == "1.0.3"

        installed = await repository.get_library(FOO_BAR)
        assert installed.patch_version == 3
        assert [f.path for f in installed.preloaded_js] == ["bar.js"]
        assert await repository.list_files(FOO_BAR) == ["bar.js", "new.css"]
        assert await repository.read_file(FOO_BAR, "bar.js") == b"v3"

    @pytest.mark.asyncio
    async def test_old_files_removed_after_new_files_written(
        self, installer, storage, stage_library, installed_patch_2, tmp_path
    ):
        """Deletes of old-only files happen after all new files are in place"""
        directory = stage_library("Foo.Bar", 1, 0, 3, files={"bar.js": "v3", "z.js": "z"}, root=tmp_path / "v3")
        calls = []
        original_write = storage.write_file
        original_delete = storage.delete_file

        async def record_write(library, path, data):
            calls.append(("write", path))
            await original_write(library, path, data)

        async def record_delete(library, path):
            calls.append(("delete", path))
            await original_delete(library, path)

        with patch.object(storage, "write_file", new=record_write), \
                patch.object(storage, "delete_file", new=record_delete):
            await installer.install_from_directory(directory)

        assert calls == [("write", "bar.js"), ("write", "z.js"), ("delete", "old.js")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("patch_version", [1, 2])
    async def test_equal_or_lower_patch_is_noop(
        self, installer, stage_library, installed_patch_2, libraries_dir, tmp_path, patch_version
    ):
        """Re-installing an equal or lower patch leaves bytes and metadata untouched"""
        before = snapshot(libraries_dir)
        directory = stage_library(
            "Foo.Bar", 1, 0, patch_version,
            files={"bar.js": "changed", "extra.js": "x"},
            root=tmp_path / "again"
        )

        result = await installer.install_from_directory(directory)

        assert result.type == InstallResultType.NONE
        assert result.new_version is None
        assert snapshot(libraries_dir) == before

    @pytest.mark.asyncio
    async def test_other_minor_version_is_fresh_install(self, installer, repository, stage_library, installed_patch_2, tmp_path):
        """A different minor version installs side by side"""
        directory = stage_library("Foo.Bar", 1, 1, 0, root=tmp_path / "v11")

        result = await installer.install_from_directory(directory)

        assert result.type == InstallResultType.NEW
        versions = (await repository.list_installed_libraries("Foo.Bar"))["Foo.Bar"]
        assert [lib.version for lib in versions] == ["1.0.2", "1.1.0"]


class TestRollback:
    """Test suite for failures during the commit"""

    @pytest.mark.asyncio
    async def test_failure_on_second_write_leaves_repository_unchanged(
        self, installer, storage, repository, stage_library, libraries_dir, transaction_logger
    ):
        """A fresh install failing mid-copy leaves no trace"""
        directory = stage_library("Foo.Bar", files={"a.js": "a", "b.js": "b", "c.js": "c"})
        before = snapshot(libraries_dir)
        original_write = storage.write_file
        calls = 0

        async def flaky_write(library, path, data):
            nonlocal calls
            calls += 1
            if calls == 2:
                raise OSError("disk full")
            await original_write(library, path, data)

        with patch.object(storage, "write_file", new=flaky_write):
            with pytest.raises(OSError, match="disk full") as exc_info:
                await installer.install_from_directory(directory)

        assert snapshot(libraries_dir) == before
        assert not (libraries_dir / "Foo.Bar-1.0").exists()
        assert not await repository.library_exists(FOO_BAR)
        assert transaction_logger.list_transactions()[0]["status"] == "rolled_back"
        assert "Installation of Foo.Bar-1.0 failed; rolled back" in exc_info.value.__notes__

    @pytest.mark.asyncio
    async def test_failed_upgrade_removes_library(self, installer, storage, repository, stage_library, tmp_path):
        """A failed upgrade deletes the library instead of restoring the old version"""
        await installer.install_from_directory(stage_library("Foo.Bar", 1, 0, 1, files={"a.js": "1"}, root=tmp_path / "v1"))
        directory = stage_library("Foo.Bar", 1, 0, 2, files={"a.js": "2"}, root=tmp_path / "v2")

        with patch.object(storage, "write_metadata", new=AsyncMock(side_effect=OSError("read-only"))):
            with pytest.raises(OSError):
                await installer.install_from_directory(directory)

        assert not await repository.library_exists(FOO_BAR)
        assert await repository.list_files(FOO_BAR) == []

    @pytest.mark.asyncio
    async def test_rollback_failure_raises_inconsistent(self, installer, storage, stage_library, transaction_logger):
        """If the rollback fails too, RepositoryInconsistentError is raised"""
        directory = stage_library("Foo.Bar", files={"a.js": "a"})

        with patch.object(storage, "write_metadata", new=AsyncMock(side_effect=OSError("write failed"))), \
                patch.object(storage, "delete_library", new=AsyncMock(side_effect=OSError("delete failed"))):
            with pytest.raises(RepositoryInconsistentError) as exc_info:
                await installer.install_from_directory(directory)

        assert exc_info.value.library == "Foo.Bar-1.0"
        assert str(exc_info.value.cause) == "write failed"
        assert transaction_logger.list_transactions()[0]["status"] == "rollback_failed"

    @pytest.mark.asyncio
    async def test_lock_released_after_failure(self, installer, storage, lock_provider, stage_library):
        """The install lock is free again after a failed install"""
        directory = stage_library("Foo.Bar", files={"a.js": "a"})

        with patch.object(storage, "write_file", new=AsyncMock(side_effect=OSError("boom"))):
            with pytest.raises(OSError):
                await installer.install_from_directory(directory)

        assert not lock_provider.is_locked("Foo.Bar")


class TestLocking:
    """Test suite for install serialization"""

    @pytest.mark.asyncio
    async def test_concurrent_installs_never_commit_together(self, installer, repository, stage_library, tmp_path):
        """Two installs of the same library never reach the commit at the same time"""
        first = stage_library("Foo.Bar", 1, 0, 1, files={"a.js": "1"}, root=tmp_path / "a")
        second = stage_library("Foo.Bar", 1, 0, 2, files={"a.js": "2"}, root=tmp_path / "b")
        original_commit = installer._commit
        active = 0
        max_active = 0

        async def counting_commit(*args, **kwargs):
            nonlocal active, max_active
            active += 1
            max_active = max(max_active, active)
            try:
                await asyncio.sleep(0.02)
                return await original_commit(*args, **kwargs)
            finally:
                active -= 1

        with patch.object(installer, "_commit", new=counting_commit):
            results = await asyncio.gather(
                installer.install_from_directory(first),
                installer.install_from_directory(second)
            )

        assert max_active == 1
        assert results[0].type == InstallResultType.NEW or results[1].type == InstallResultType.NEW
        assert (await repository.get_library(FOO_BAR)).patch_version == 2

    @pytest.mark.asyncio
    async def test_lock_timeout(self, storage, repository, lock_provider, stage_library):
        """A held lock makes the install fail with InstallLockTimeout"""
        installer = LibraryInstaller(storage, repository, lock_provider, lock_timeout=0.05)
        handle = await lock_provider.acquire("Foo.Bar", max_occupation_time=5, timeout=0.1)

        with pytest.raises(InstallLockTimeout):
            await installer.install_from_directory(stage_library("Foo.Bar"))

        await lock_provider.release(handle)
        assert not await repository.library_exists(FOO_BAR)

    @pytest.mark.asyncio
    async def test_different_libraries_do_not_wait(self, storage, repository, lock_provider, stage_library):
        """The lock is per machine name"""
        installer = LibraryInstaller(storage, repository, lock_provider, lock_timeout=0.05)
        handle = await lock_provider.acquire("Other.Lib", max_occupation_time=5, timeout=0.1)

        result = await installer.install_from_directory(stage_library("Foo.Bar"))

        assert result.type == InstallResultType.NEW
        await lock_provider.release(handle)


class TestVersionQueries:
    """Test suite for is_patched_version and has_upgrade"""

    @staticmethod
    def candidate(major, minor, patch):
        return LibraryMetadata.model_validate(library_json("Foo.Bar", major, minor, patch))

    @pytest_asyncio.fixture
    async def installed_1_2_3(self, installer, stage_library):
        await installer.install_from_directory(stage_library("Foo.Bar", 1, 2, 3))

    @pytest.mark.asyncio
    async def test_is_patched_version(self, installer, installed_1_2_3):
        """Only a higher patch of the same major.minor patches the installed library"""
        patched = await installer.is_patched_version(self.candidate(1, 2, 5))

        assert patched is not None
        assert patched.patch_version == 3
        assert await installer.is_patched_version(self.candidate(1, 2, 3)) is None
        assert await installer.is_patched_version(self.candidate(1, 3, 9)) is None

    @pytest.mark.asyncio
    async def test_has_upgrade(self, installer, installed_1_2_3):
        """Compared against the highest minor/patch of the same major"""
        assert await installer.has_upgrade(self.candidate(1, 2, 4))
        assert await installer.has_upgrade(self.candidate(1, 3, 0))
        assert not await installer.has_upgrade(self.candidate(1, 2, 3))
        assert not await installer.has_upgrade(self.candidate(1, 1, 9))
        assert not await installer.has_upgrade(self.candidate(2, 0, 0))

    @pytest.mark.asyncio
    async def test_has_upgrade_nothing_installed(self, installer):
        """Nothing installed means there is nothing to upgrade"""
        assert not await installer.has_upgrade(self.candidate(1, 0, 0))


class TestRemoveLibrary:
    """Test suite for remove_library"""

    @pytest.mark.asyncio
    async def test_remove(self, installer, repository, stage_library, transaction_logger):
        """The library and its files are deleted"""
        await installer.install_from_directory(stage_library("Foo.Bar", files={"a.js": "a"}))

        removed = await installer.remove_library(FOO_BAR)

        assert removed.machine_name == "Foo.Bar"
        assert not await repository.library_exists(FOO_BAR)
        assert transaction_logger.list_transactions()[0]["operation"] == "remove"

    @pytest.mark.asyncio
    async def test_remove_missing(self, installer):
        """Removing a library that is not installed raises LibraryNotFoundError"""
        with pytest.raises(LibraryNotFoundError):
            await installer.remove_library(FOO_BAR)

    @pytest.mark.asyncio
    async def test_remove_in_use(self, installer, repository, stage_library):
        """A library other libraries depend on is kept unless forced"""
        await installer.install_from_directory(stage_library("Foo.Bar"))
        await installer.install_from_directory(
            stage_library("Foo.App", preloaded_dependencies=[("Foo.Bar", 1, 0)])
        )

        with pytest.raises(LibraryInUseError) as exc_info:
            await installer.remove_library(FOO_BAR)
        assert exc_info.value.dependents == ["Foo.App-1.0"]

        await installer.remove_library(FOO_BAR, force=True)
        assert not await repository.library_exists(FOO_BAR)
