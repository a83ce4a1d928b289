# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Library Storage Interface

Narrow interface to whatever persists library files: a local directory, an
object store or a database. Files are addressed by (library, relative path);
the library.json metadata record is kept separately and its presence marks a
library as installed.

Backends report "not found" as None/False/empty and let I/O errors (OSError)
propagate unchanged.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, List, Optional

from ..models.library_models import FileStats, InstalledLibrary, LibraryName


class LibraryStorage(ABC):
    """Persistence backend for library files and metadata records"""

    @abstractmethod
    async def write_file(self, library: LibraryName, path: str, data: bytes) -> None:
        """Create or overwrite a file of the library."""

    @abstractmethod
    async def read_file(self, library: LibraryName, path: str) -> bytes:
        """Return the full contents of a file. Raises FileNotFoundError if absent."""

    @abstractmethod
    def open_file_stream(self, library: LibraryName, path: str) -> AsyncIterator[bytes]:
        """Yield the contents of a file in chunks."""

    @abstractmethod
    async def file_exists(self, library: LibraryName, path: str) -> bool:
        ...

    @abstractmethod
    async def get_file_stats(self, library: LibraryName, path: str) -> FileStats:
        """Raises FileNotFoundError if the file is absent."""

    @abstractmethod
    async def list_files(self, library: LibraryName) -> List[str]:
        """Relative paths of all files of the library, metadata record excluded, sorted."""

    @abstractmethod
    async def delete_file(self, library: LibraryName, path: str) -> None:
        """Delete one file; missing files are ignored."""

    @abstractmethod
    async def delete_library(self, library: LibraryName) -> None:
        """Recursively delete everything stored under the library key."""

    @abstractmethod
    async def read_metadata(self, library: LibraryName) -> Optional[InstalledLibrary]:
        """Return the metadata record or None if the library is not installed."""

    @abstractmethod
    async def write_metadata(self, library: LibraryName, metadata: InstalledLibrary) -> None:
        """Write the metadata record. Called last during installation."""

    @abstractmethod
    async def list_libraries(self) -> List[LibraryName]:
        """Identities of all libraries that have a metadata record."""
