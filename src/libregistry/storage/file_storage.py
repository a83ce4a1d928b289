# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
File Library Storage - libraries as plain directories on disk
Follows the registry principle: everything inspectable via `ls` and `cat`

Storage structure:
    libraries/
    ├── H5P.Example-1.0/
    │   ├── library.json        <- written last; marks the library as installed
    │   ├── scripts/example.js
    │   └── language/de.json
    └── H5P.Other-2.3/
"""

import asyncio
import json
import logging
import shutil
from datetime import datetime, UTC
from pathlib import Path
from typing import AsyncIterator, List, Optional

import aiofiles
import aiofiles.os
from ..models.library_models import (
    METADATA_FILENAME,
    FileStats,
    InstalledLibrary,
    LibraryName
)
from ..identity import parse_ubername
from ..core.errors import InvalidIdentityFormat
from .base import LibraryStorage

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

METADATA_TMP_FILENAME = f".{METADATA_FILENAME}.tmp"


class FileLibraryStorage(LibraryStorage):
    """Stores each library in a directory named after its hyphen ubername"""

    def __init__(self, base_dir: str):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _library_dir(self, library: LibraryName) -> Path:
        return self.base_dir / library.ubername

    def _file_path(self, library: LibraryName, path: str) -> Path:
        """Resolve a relative path inside the library directory, refusing escapes."""
        library_dir = self._library_dir(library).resolve()
        candidate = (library_dir / path).resolve()
        if not path or Path(path).is_absolute() or not candidate.is_relative_to(library_dir):
            raise ValueError(f"Illegal file path {path!r} for library {library.ubername}")
        if candidate == library_dir / METADATA_FILENAME:
            raise ValueError(f"{METADATA_FILENAME} must be written with write_metadata()")
        return candidate

    async def write_file(self, library: LibraryName, path: str, data: bytes) -> None:
        target = self._file_path(library, path)
        await aiofiles.os.makedirs(target.parent, exist_ok=True)
        async with aiofiles.open(target, "wb") as f:
            await f.write(data)

    async def read_file(self, library: LibraryName, path: str) -> bytes:
        async with aiofiles.open(self._file_path(library, path), "rb") as f:
            return await f.read()

    async def open_file_stream(self, library: LibraryName, path: str) -> AsyncIterator[bytes]:
        async with aiofiles.open(self._file_path(library, path), "rb") as f:
            while True:
                chunk = await f.read(CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk

    async def file_exists(self, library: LibraryName, path: str) -> bool:
        try:
            return await aiofiles.os.path.isfile(self._file_path(library, path))
        except ValueError:
            return False

    async def get_file_stats(self, library: LibraryName, path: str) -> FileStats:
        stat = await aiofiles.os.stat(self._file_path(library, path))
        return FileStats(size=stat.st_size, mtime=datetime.fromtimestamp(stat.st_mtime, UTC))

    async def list_files(self, library: LibraryName) -> List[str]:
        library_dir = self._library_dir(library)
        if not await aiofiles.os.path.isdir(library_dir):
            return []

        def _walk() -> List[str]:
            files = []
            for file_path in library_dir.rglob("*"):
                if not file_path.is_file():
                    continue
                relative = file_path.relative_to(library_dir).as_posix()
                if relative not in (METADATA_FILENAME, METADATA_TMP_FILENAME):
                    files.append(relative)
            return sorted(files)

        return await asyncio.to_thread(_walk)

    async def delete_file(self, library: LibraryName, path: str) -> None:
        target = self._file_path(library, path)
        try:
            await aiofiles.os.remove(target)
        except FileNotFoundError:
            return

        # Prune directories left empty by the removal
        library_dir = self._library_dir(library).resolve()
        parent = target.parent
        while parent != library_dir and parent.is_relative_to(library_dir):
            try:
                await aiofiles.os.rmdir(parent)
            except OSError:
                break
            parent = parent.parent

    async def delete_library(self, library: LibraryName) -> None:
        library_dir = self._library_dir(library)
        if not await aiofiles.os.path.exists(library_dir):
            return
        await asyncio.to_thread(shutil.rmtree, library_dir)

    async def read_metadata(self, library: LibraryName) -> Optional[InstalledLibrary]:
        metadata_file = self._library_dir(library) / METADATA_FILENAME
        try:
            async with aiofiles.open(metadata_file, "r", encoding="utf-8") as f:
                data = json.loads(await f.read())
        except FileNotFoundError:
            return None
        return InstalledLibrary.model_validate(data)

    async def write_metadata(self, library: LibraryName, metadata: InstalledLibrary) -> None:
        library_dir = self._library_dir(library)
        await aiofiles.os.makedirs(library_dir, exist_ok=True)

        # Write to a temp file and rename so readers never see a partial record
        tmp_file = library_dir / METADATA_TMP_FILENAME
        async with aiofiles.open(tmp_file, "w", encoding="utf-8") as f:
            await f.write(json.dumps(metadata.to_json_dict(), indent=2))
        await aiofiles.os.replace(tmp_file, library_dir / METADATA_FILENAME)

    async def list_libraries(self) -> List[LibraryName]:
        libraries = []
        for entry in sorted(await aiofiles.os.listdir(self.base_dir)):
            if not (self.base_dir / entry / METADATA_FILENAME).is_file():
                continue
            try:
                libraries.append(parse_ubername(entry))
            except InvalidIdentityFormat:
                logger.warning(f"Ignoring directory with invalid library name: {entry}")
        return libraries

