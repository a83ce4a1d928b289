# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Library Registry Service - Modular Composition

Composes focused modules into one library registry service.
Each module does one thing well, following Unix philosophy.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from ..core.config import Config, get_config
from ..core.errors import MissingDependency
from ..models.library_models import (
    METADATA_FILENAME,
    InstalledLibrary,
    InstallResult,
    InstallResultType,
    LibraryName
)
from ..storage.base import LibraryStorage
from ..storage.file_storage import FileLibraryStorage
from .installer import LibraryInstaller
from .library_validator import LibraryDirectoryValidator, StagedLibrary
from .locks import FileLockProvider, InProcessLockProvider, LockProvider
from .repository import AlterLanguageHook, AlterSemanticsHook, LibraryRepository
from .resolver import DependencyResolver
from .transactions import TransactionLogger
from .validation import SKIP_REMAINING

logger = logging.getLogger(__name__)


def create_lock_provider(config: Config) -> LockProvider:
    """Lock provider selected by locks.backend."""
    if config.lock_backend == "file":
        return FileLockProvider(config.lock_dir, poll_interval=config.lock_poll_interval)
    return InProcessLockProvider()


class LibraryRegistryService:
    """
    Unified library registry service (modular composition).

    Composes:
    - LibraryStorage: Files and metadata records
    - LibraryRepository: Read-only queries
    - DependencyResolver: Transitive dependency sets
    - LibraryInstaller: Locked install / upgrade / remove
    - TransactionLogger: Install journal
    - LibraryDirectoryValidator: Checks staged libraries
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        storage: Optional[LibraryStorage] = None,
        lock_provider: Optional[LockProvider] = None,
        alter_library_semantics: Optional[AlterSemanticsHook] = None,
        alter_library_language_file: Optional[AlterLanguageHook] = None
    ):
        """
        Initialize library registry service.

        Args:
            config: Configuration (defaults to get_config())
            storage: Storage backend (defaults to FileLibraryStorage at libraries_path)
            lock_provider: Lock provider (defaults to the configured backend)
            alter_library_semantics: Optional hook for semantics.json reads
            alter_library_language_file: Optional hook for language file reads
        """
        self.config = config or get_config()

        self.storage = storage or FileLibraryStorage(self.config.libraries_path)
        self.lock_provider = lock_provider or create_lock_provider(self.config)
        self.transaction_logger = TransactionLogger(Path(self.config.journal_path))

        self.repository = LibraryRepository(
            self.storage,
            alter_library_semantics=alter_library_semantics,
            alter_library_language_file=alter_library_language_file
        )
        self.resolver = DependencyResolver(self.repository)
        self.installer = LibraryInstaller(
            self.storage,
            self.repository,
            self.lock_provider,
            transaction_logger=self.transaction_logger,
            lock_max_occupation_time=self.config.install_lock_max_occupation_time,
            lock_timeout=self.config.install_lock_timeout
        )
        self.validator = LibraryDirectoryValidator(self.config, self.repository)

        logger.info(
            f"LibraryRegistryService initialized (libraries={self.config.libraries_path}, "
            f"locks={self.config.lock_backend})"
        )

    # =========================================================================
    # INSTALLATION
    # =========================================================================

    async def install_library(self, directory: Path, restricted: bool = False) -> InstallResult:
        """Install a single staged library directory without batch validation."""
        return await self.installer.install_from_directory(Path(directory), restricted=restricted)

    async def install_libraries(
        self,
        staging_root: Path,
        restricted: bool = False
    ) -> Dict[str, InstallResult]:
        """
        Validate and install every library found in a staging root.

        Each subdirectory holding a library.json is one library. All of them
        are validated before anything is written; every dependency must be
        part of the batch or already installed. Libraries are then installed
        one at a time, dependencies first.

        Args:
            staging_root: Directory the package was extracted to
            restricted: Mark new libraries as restricted

        Returns:
            Directory name -> InstallResult

        Raises:
            AggregateValidationError: If a library directory is invalid
            MissingDependency: If a dependency is neither staged nor installed

        An install failure stops the batch. Libraries installed before it stay
        installed; the exception carries a note naming the failed library and
        the ones already processed.
        """
        staging_root = Path(staging_root)
        directories = sorted(
            entry for entry in staging_root.iterdir()
            if entry.is_dir() and (entry / METADATA_FILENAME).is_file()
        )

        results: Dict[str, InstallResult] = {}
        staged: Dict[str, StagedLibrary] = {}
        for directory in directories:
            outcome = await self.validator.validate(directory)
            if outcome is SKIP_REMAINING:
                results[directory.name] = InstallResult(type=InstallResultType.NONE)
                continue
            staged[outcome.metadata.ubername] = outcome

        await self._check_batch_dependencies(staged)

        for key in self._install_order(staged):
            library = staged[key]
            try:
                results[library.directory.name] = await self.installer.install(
                    library.metadata, library.directory, restricted=restricted
                )
            except Exception as e:
                done = ", ".join(results) or "none"
                logger.error(f"Batch install from {staging_root} stopped at {key}: {e}")
                e.add_note(f"Batch install stopped at {key}; already processed: {done}")
                raise

        installed = sum(1 for r in results.values() if r.type != InstallResultType.NONE)
        logger.info(f"Installed {installed} of {len(results)} libraries from {staging_root}")
        return results

    async def _check_batch_dependencies(self, staged: Dict[str, StagedLibrary]):
        for key, library in staged.items():
            declared = library.metadata.dependencies_of(preloaded=True, editor=True, dynamic=True)
            for dependency in declared:
                if dependency.ubername in staged:
                    continue
                if not await self.repository.library_exists(dependency):
                    raise MissingDependency(dependency.ubername, key)

    def _install_order(self, staged: Dict[str, StagedLibrary]) -> List[str]:
        """Dependencies before dependents (DFS post-order); cycles are cut at the first revisit."""
        order: List[str] = []
        visited = set()

        for root in sorted(staged):
            if root in visited:
                continue
            visited.add(root)
            stack = [(root, iter(self._staged_dependencies(staged, root)))]
            while stack:
                key, children = stack[-1]
                child = next(children, None)
                if child is None:
                    stack.pop()
                    order.append(key)
                elif child not in visited:
                    visited.add(child)
                    stack.append((child, iter(self._staged_dependencies(staged, child))))

        return order

    def _staged_dependencies(self, staged: Dict[str, StagedLibrary], key: str) -> List[str]:
        declared = staged[key].metadata.dependencies_of(preloaded=True, editor=True, dynamic=True)
        return [dep.ubername for dep in declared if dep.ubername in staged]

    async def remove_library(self, library: LibraryName, force: bool = False) -> InstalledLibrary:
        return await self.installer.remove_library(library, force=force)

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def resolve_dependencies(
        self,
        roots: Iterable[LibraryName],
        preloaded: bool = True,
        editor: bool = False,
        dynamic: bool = False,
        exclude: Optional[Iterable[LibraryName]] = None,
        tolerate_missing: bool = False
    ) -> List[LibraryName]:
        return await self.resolver.resolve(
            roots,
            preloaded=preloaded,
            editor=editor,
            dynamic=dynamic,
            exclude=exclude,
            tolerate_missing=tolerate_missing
        )

    async def get_library(self, library: LibraryName) -> Optional[InstalledLibrary]:
        return await self.repository.get_library(library)

    async def list_installed_libraries(
        self,
        machine_name: Optional[str] = None
    ) -> Dict[str, List[InstalledLibrary]]:
        return await self.repository.list_installed_libraries(machine_name)

    def list_transactions(self, limit: int = 50) -> List[dict]:
        """Recent install journal entries, most recent first."""
        return self.transaction_logger.list_transactions(limit)
