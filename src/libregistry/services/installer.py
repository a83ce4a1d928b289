# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Library Installer

Single responsibility: Install, upgrade and remove libraries safely

Per install attempt:
    lock(machine name) -> decide (fresh | upgrade | skip) -> copy files ->
    write metadata -> unlock

The metadata record is written last: a library only counts as installed once
library.json exists. Any failure during the commit deletes the library
directory entirely (the previous version is not restored). If that delete
fails too, RepositoryInconsistentError is raised.
"""

import json
import logging
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from ..core.errors import (
    AggregateValidationError,
    LibraryInUseError,
    LibraryNotFoundError,
    MissingRequiredFile,
    RepositoryInconsistentError
)
from ..core.logging import log_event
from ..models.library_models import (
    InstalledLibrary,
    InstallResult,
    InstallResultType,
    LibraryMetadata,
    LibraryName,
    TransactionOperation,
    TransactionRecord,
    TransactionStatus
)
from ..storage.base import LibraryStorage
from ..storage.staging import list_staged_files, read_staged_file, read_staged_metadata
from .locks import LockProvider
from .repository import LibraryRepository
from .transactions import TransactionLogger

logger = logging.getLogger(__name__)


class LibraryInstaller:
    """Installs one library per call, serialized per machine name"""

    def __init__(
        self,
        storage: LibraryStorage,
        repository: LibraryRepository,
        lock_provider: LockProvider,
        transaction_logger: Optional[TransactionLogger] = None,
        lock_max_occupation_time: float = 30.0,
        lock_timeout: float = 10.0
    ):
        """
        Initialize library installer.

        Args:
            storage: Storage backend to write to
            repository: Read side used for installed-version lookups
            lock_provider: Lock capability (in-process or shared)
            transaction_logger: Optional install journal
            lock_max_occupation_time: Seconds after which an install lock expires
            lock_timeout: Seconds to wait for an install lock
        """
        self.storage = storage
        self.repository = repository
        self.lock_provider = lock_provider
        self.transaction_logger = transaction_logger
        self.lock_max_occupation_time = lock_max_occupation_time
        self.lock_timeout = lock_timeout

    def _lock(self, machine_name: str):
        return self.lock_provider.hold(
            machine_name,
            max_occupation_time=self.lock_max_occupation_time,
            timeout=self.lock_timeout
        )

    def _journal(self, transaction: Optional[TransactionRecord], status: TransactionStatus,
                 error: Optional[BaseException] = None):
        if self.transaction_logger and transaction:
            self.transaction_logger.finish(transaction, status, error)

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def is_patched_version(self, candidate: LibraryMetadata) -> Optional[InstalledLibrary]:
        """
        Return the installed library the candidate would patch.

        Returns:
            The installed record with the same machine name and major.minor
            and a lower patch version, or None
        """
        installed = await self.repository.get_library(candidate)
        if installed is not None and installed.patch_version < candidate.patch_version:
            return installed
        return None

    async def has_upgrade(self, candidate: LibraryMetadata) -> bool:
        """
        True if the candidate is newer than every installed version with the
        same machine name and major version. False if none is installed.
        """
        installed = await self.repository.list_installed_libraries(candidate.machine_name)
        same_major = [
            lib for lib in installed.get(candidate.machine_name, [])
            if lib.major_version == candidate.major_version
        ]
        if not same_major:
            return False

        highest = max(same_major, key=lambda lib: (lib.minor_version, lib.patch_version))
        return (highest.minor_version, highest.patch_version) < (
            candidate.minor_version, candidate.patch_version
        )

    # =========================================================================
    # INSTALL
    # =========================================================================

    async def install_from_directory(self, directory: Path, restricted: bool = False) -> InstallResult:
        """
        Install or upgrade the library staged in directory.

        Args:
            directory: Staging directory holding library.json and the library files
            restricted: Mark the library as restricted

        Returns:
            InstallResult of type new, patch or none

        Raises:
            AggregateValidationError: If library.json is missing or invalid
            MissingRequiredFile: If preloaded files are missing from staging
            InstallLockTimeout: If the install lock could not be acquired
            RepositoryInconsistentError: If a failed install could not be rolled back
            OSError: Storage errors, after rollback
        """
        directory = Path(directory)
        try:
            metadata = await read_staged_metadata(directory)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise AggregateValidationError().add_error(
                "invalid-library-metadata", directory=directory.name, reason=str(e)
            ) from e

        return await self.install(metadata, directory, restricted=restricted)

    async def install(
        self,
        metadata: LibraryMetadata,
        directory: Path,
        restricted: bool = False
    ) -> InstallResult:
        """Install already parsed metadata with its files from a staging directory."""
        directory = Path(directory)
        staged_files = await list_staged_files(directory)
        self._check_consistency(metadata, staged_files)

        library = metadata.to_library_name()
        async with self._lock(metadata.machine_name):
            existing = await self.repository.get_library(library)

            if existing is not None and existing.patch_version >= metadata.patch_version:
                log_event(
                    logger, "library.install.skipped",
                    library=str(metadata), installed=str(existing)
                )
                if self.transaction_logger:
                    transaction = self.transaction_logger.create_transaction(
                        TransactionOperation.INSTALL, library.ubername, metadata.version, existing.version
                    )
                    self._journal(transaction, TransactionStatus.SKIPPED)
                return InstallResult(type=InstallResultType.NONE)

            record = InstalledLibrary.from_metadata(metadata, restricted=restricted)
            if existing is None:
                await self._commit(record, directory, staged_files, None)
                return InstallResult(
                    type=InstallResultType.NEW,
                    new_version=record.to_full_library_name()
                )

            await self._commit(record, directory, staged_files, existing)
            return InstallResult(
                type=InstallResultType.PATCH,
                new_version=record.to_full_library_name(),
                old_version=existing.to_full_library_name()
            )

    def _check_consistency(self, metadata: LibraryMetadata, staged_files: List[str]):
        """Fail before any write if a preloaded file is not in staging."""
        available = set(staged_files)
        missing = [path for path in metadata.preloaded_files() if path not in available]
        if missing:
            raise MissingRequiredFile(metadata.ubername, missing)

    async def _commit(
        self,
        record: InstalledLibrary,
        directory: Path,
        staged_files: List[str],
        existing: Optional[InstalledLibrary]
    ):
        """Copy files, drop old-only files and write the metadata record last."""
        library = record.to_library_name()
        operation = TransactionOperation.INSTALL if existing is None else TransactionOperation.UPGRADE

        transaction = None
        if self.transaction_logger:
            transaction = self.transaction_logger.create_transaction(
                operation,
                library.ubername,
                record.version,
                existing.version if existing else None
            )
            transaction.status = TransactionStatus.IN_PROGRESS
            self.transaction_logger.log(transaction)

        try:
            # The replaced version's files, or leftovers of an interrupted install
            old_files = await self.storage.list_files(library)

            for path in staged_files:
                data = await read_staged_file(directory, path)
                await self.storage.write_file(library, path, data)

            # Only after every new file is in place
            new_files = set(staged_files)
            for path in old_files:
                if path not in new_files:
                    await self.storage.delete_file(library, path)

            await self.storage.write_metadata(library, record)

        except Exception as e:
            logger.error(f"Installation of {record} failed: {e}")
            await self._rollback(library, transaction, e)
            e.add_note(f"Installation of {library.ubername} failed; rolled back")
            raise

        self._journal(transaction, TransactionStatus.COMPLETED)
        log_event(
            logger, "library.install.committed",
            library=str(record),
            operation=operation.value,
            old_version=existing.version if existing else None,
            files=len(staged_files)
        )

    async def _rollback(
        self,
        library: LibraryName,
        transaction: Optional[TransactionRecord],
        cause: Exception
    ):
        try:
            await self.storage.delete_library(library)
        except Exception as e:
            log_event(
                logger, "library.install.rollback_failed", level="ERROR",
                library=library.ubername, error=str(e), cause=str(cause)
            )
            self._journal(transaction, TransactionStatus.ROLLBACK_FAILED, cause)
            raise RepositoryInconsistentError(library.ubername, cause) from e

        log_event(
            logger, "library.install.rolled_back", level="WARNING",
            library=library.ubername, cause=str(cause)
        )
        self._journal(transaction, TransactionStatus.ROLLED_BACK, cause)

    # =========================================================================
    # REMOVE
    # =========================================================================

    async def remove_library(self, library: LibraryName, force: bool = False) -> InstalledLibrary:
        """
        Remove an installed library.

        Args:
            library: Library to remove
            force: Remove even if other installed libraries depend on it

        Returns:
            The metadata record of the removed library

        Raises:
            LibraryNotFoundError: If the library is not installed
            LibraryInUseError: If other libraries depend on it and force is False
        """
        library = library.to_library_name()
        async with self._lock(library.machine_name):
            existing = await self.repository.get_library(library)
            if existing is None:
                raise LibraryNotFoundError(library.ubername)

            if not force:
                dependents = await self._find_dependents(library)
                if dependents:
                    raise LibraryInUseError(library.ubername, dependents)

            transaction = None
            if self.transaction_logger:
                transaction = self.transaction_logger.create_transaction(
                    TransactionOperation.REMOVE, library.ubername, existing.version
                )

            try:
                await self.storage.delete_library(library)
            except Exception as e:
                logger.error(f"Removal of {library} failed: {e}")
                self._journal(transaction, TransactionStatus.FAILED, e)
                raise

            self._journal(transaction, TransactionStatus.COMPLETED)
            logger.info(f"Library {existing} removed")
            return existing

    async def _find_dependents(self, library: LibraryName) -> List[str]:
        dependents = []
        for versions in (await self.repository.list_installed_libraries()).values():
            for installed in versions:
                declared = installed.dependencies_of(preloaded=True, editor=True, dynamic=True)
                if any(dep.ubername == library.ubername for dep in declared):
                    dependents.append(installed.ubername)
        return dependents
