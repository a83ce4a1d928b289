# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Test Fixtures and Utilities

Provides pytest fixtures for staged library directories, a file based
library repository and the services built on top of it.
"""

import json
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest

from libregistry.core.config import Config
from libregistry.services.installer import LibraryInstaller
from libregistry.services.locks import InProcessLockProvider
from libregistry.services.repository import LibraryRepository
from libregistry.services.resolver import DependencyResolver
from libregistry.services.transactions import TransactionLogger
from libregistry.storage.file_storage import FileLibraryStorage


def dep(machine_name: str, major: int, minor: int) -> Dict[str, Any]:
    """Dependency entry as it appears in library.json"""
    return {"machineName": machine_name, "majorVersion": major, "minorVersion": minor}


def library_json(
    machine_name: str,
    major: int = 1,
    minor: int = 0,
    patch: int = 0,
    preloaded_js: Optional[List[str]] = None,
    preloaded_css: Optional[List[str]] = None,
    preloaded_dependencies: Optional[List[Tuple[str, int, int]]] = None,
    editor_dependencies: Optional[List[Tuple[str, int, int]]] = None,
    dynamic_dependencies: Optional[List[Tuple[str, int, int]]] = None,
    **extra: Any
) -> Dict[str, Any]:
    """Build the contents of a library.json"""
    data = {
        "title": machine_name,
        "machineName": machine_name,
        "majorVersion": major,
        "minorVersion": minor,
        "patchVersion": patch,
        "runnable": False,
        "preloadedJs": [{"path": p} for p in (preloaded_js or [])],
        "preloadedCss": [{"path": p} for p in (preloaded_css or [])],
        "preloadedDependencies": [dep(*d) for d in (preloaded_dependencies or [])],
        "editorDependencies": [dep(*d) for d in (editor_dependencies or [])],
        "dynamicDependencies": [dep(*d) for d in (dynamic_dependencies or [])],
    }
    data.update(extra)
    return data


# ============================================================================
# Staging Fixtures
# ============================================================================

@pytest.fixture
def staging_dir(tmp_path):
    """Directory the package extractor would unpack into"""
    path = tmp_path / "staging"
    path.mkdir()
    return path


@pytest.fixture
def stage_library(staging_dir):
    """
    Factory writing a library directory into staging.

    Usage:
        directory = stage_library("Foo.Bar", 1, 0, 2, files={"bar.js": "x"}, preloaded_js=["bar.js"])
    """

    def _stage(
        machine_name: str,
        major: int = 1,
        minor: int = 0,
        patch: int = 0,
        files: Optional[Dict[str, Any]] = None,
        directory_name: Optional[str] = None,
        root: Optional[Path] = None,
        **metadata: Any
    ) -> Path:
        directory = (root or staging_dir) / (directory_name or f"{machine_name}-{major}.{minor}")
        if directory.exists():
            shutil.rmtree(directory)
        directory.mkdir(parents=True, exist_ok=True)

        (directory / "library.json").write_text(
            json.dumps(library_json(machine_name, major, minor, patch, **metadata))
        )
        for path, content in (files or {}).items():
            target = directory / path
            target.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                target.write_bytes(content)
            else:
                target.write_text(content)
        return directory

    return _stage


# ============================================================================
# Repository Fixtures
# ============================================================================

@pytest.fixture
def libraries_dir(tmp_path):
    return tmp_path / "libraries"


@pytest.fixture
def config(tmp_path, libraries_dir):
    """Config pointing all paths into tmp_path with short lock timeouts"""
    return Config(
        libraries_path=str(libraries_dir),
        journal_path=str(tmp_path / "journal" / "transactions.jsonl"),
        lock_dir=str(tmp_path / "locks"),
        install_lock_max_occupation_time=5.0,
        install_lock_timeout=1.0,
        lock_poll_interval=0.01,
        log_format="text"
    )


@pytest.fixture
def storage(libraries_dir):
    return FileLibraryStorage(str(libraries_dir))


@pytest.fixture
def repository(storage):
    return LibraryRepository(storage)


@pytest.fixture
def resolver(repository):
    return DependencyResolver(repository)


@pytest.fixture
def lock_provider():
    return InProcessLockProvider()


@pytest.fixture
def transaction_logger(tmp_path):
    return TransactionLogger(tmp_path / "journal" / "transactions.jsonl")


@pytest.fixture
def installer(storage, repository, lock_provider, transaction_logger):
    return LibraryInstaller(
        storage,
        repository,
        lock_provider,
        transaction_logger=transaction_logger,
        lock_max_occupation_time=5.0,
        lock_timeout=1.0
    )


def snapshot(directory: Path) -> Dict[str, bytes]:
    """Relative path -> bytes of every file below directory"""
    if not directory.exists():
        return {}
    return {
        p.relative_to(directory).as_posix(): p.read_bytes()
        for p in sorted(directory.rglob("*")) if p.is_file()
    }
