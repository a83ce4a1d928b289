# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Library Repository

Single responsibility: Read-only queries over installed libraries

"Not found" is reported as None / False / an empty list. Storage I/O errors
propagate unchanged.
"""

import json
import logging
import re
from collections import defaultdict
from typing import AsyncIterator, Callable, Dict, Iterable, List, Optional, Any

from pydantic import ValidationError

from ..core.errors import LibraryNotFoundError
from ..models.library_models import FileStats, InstalledLibrary, LibraryName
from ..storage.base import LibraryStorage

logger = logging.getLogger(__name__)

LANGUAGE_DIRECTORY = "language"
SEMANTICS_FILENAME = "semantics.json"
UPGRADES_FILENAME = "upgrades.js"

LANGUAGE_CODE_PATTERN = re.compile(r"[a-z]{2,3}(-[a-z]{2,6})?")

# Hooks receive the library and the parsed JSON and return the altered JSON
AlterSemanticsHook = Callable[[LibraryName, Any], Any]
AlterLanguageHook = Callable[[LibraryName, Any, str], Any]


class LibraryRepository:
    """Read side of the library repository"""

    def __init__(
        self,
        storage: LibraryStorage,
        alter_library_semantics: Optional[AlterSemanticsHook] = None,
        alter_library_language_file: Optional[AlterLanguageHook] = None
    ):
        """
        Initialize library repository.

        Args:
            storage: Storage backend holding the libraries
            alter_library_semantics: Optional hook applied to semantics.json on read
            alter_library_language_file: Optional hook applied to language files on read
        """
        self.storage = storage
        self.alter_library_semantics = alter_library_semantics
        self.alter_library_language_file = alter_library_language_file

    async def library_exists(self, library: LibraryName) -> bool:
        """True if a metadata record exists for exactly this name + major.minor."""
        return await self.storage.read_metadata(library.to_library_name()) is not None

    async def get_library(self, library: LibraryName) -> Optional[InstalledLibrary]:
        return await self.storage.read_metadata(library.to_library_name())

    async def list_installed_libraries(
        self,
        machine_name: Optional[str] = None
    ) -> Dict[str, List[InstalledLibrary]]:
        """
        List installed libraries grouped by machine name.

        Args:
            machine_name: Only return versions of this library

        Returns:
            Machine name -> installed versions sorted ascending
        """
        grouped: Dict[str, List[InstalledLibrary]] = defaultdict(list)
        for name in await self.storage.list_libraries():
            if machine_name is not None and name.machine_name != machine_name:
                continue
            try:
                record = await self.storage.read_metadata(name)
            except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
                logger.warning(f"Ignoring library with unreadable metadata: {name.ubername}: {e}")
                continue
            if record is None:
                # Removed between listing and reading
                continue
            grouped[record.machine_name].append(record)

        return {
            name: sorted(versions, key=lambda lib: lib.version_key)
            for name, versions in sorted(grouped.items())
        }

    async def get_not_installed_libraries(self, libraries: Iterable[LibraryName]) -> List[LibraryName]:
        """Return the libraries of the input that are not installed, in input order."""
        missing = []
        for library in libraries:
            if not await self.library_exists(library):
                missing.append(library)
        return missing

    async def list_files(self, library: LibraryName) -> List[str]:
        return await self.storage.list_files(library.to_library_name())

    async def library_file_exists(self, library: LibraryName, path: str) -> bool:
        return await self.storage.file_exists(library.to_library_name(), path)

    async def get_file_stats(self, library: LibraryName, path: str) -> FileStats:
        """Raises FileNotFoundError if the file does not exist."""
        return await self.storage.get_file_stats(library.to_library_name(), path)

    def get_file_stream(self, library: LibraryName, path: str) -> AsyncIterator[bytes]:
        """
        Stream a library file in chunks.

        Usage:
            async for chunk in repository.get_file_stream(library, "scripts/app.js"):
                ...
        """
        return self.storage.open_file_stream(library.to_library_name(), path)

    async def read_file(self, library: LibraryName, path: str) -> bytes:
        return await self.storage.read_file(library.to_library_name(), path)

    async def _read_json(self, library: LibraryName, path: str) -> Any:
        data = await self.storage.read_file(library.to_library_name(), path)
        return json.loads(data.decode("utf-8"))

    async def get_semantics(self, library: LibraryName) -> Optional[Any]:
        """
        Return the parsed semantics.json of a library.

        Returns:
            Parsed semantics, or None if the library ships none

        Raises:
            LibraryNotFoundError: If the library is not installed
        """
        if not await self.library_exists(library):
            raise LibraryNotFoundError(library.ubername)
        if not await self.library_file_exists(library, SEMANTICS_FILENAME):
            return None

        semantics = await self._read_json(library, SEMANTICS_FILENAME)
        if self.alter_library_semantics:
            semantics = self.alter_library_semantics(library, semantics)
        return semantics

    async def get_language(self, library: LibraryName, language: str) -> Optional[Any]:
        """
        Return the parsed language file of a library.

        Codes are matched lowercased and fall back from a regional code to
        its base language (de-DE -> de-de -> de). A library without a matching
        language file, or a code that cannot name one, is "not localized" and
        yields None.
        """
        language = language.lower()
        if not LANGUAGE_CODE_PATTERN.fullmatch(language):
            logger.debug(f"Ignoring unusable language code {language!r} for {library.ubername}")
            return None

        candidates = [language]
        if "-" in language:
            candidates.append(language.split("-", 1)[0])

        for code in candidates:
            path = f"{LANGUAGE_DIRECTORY}/{code}.json"
            if await self.library_file_exists(library, path):
                translation = await self._read_json(library, path)
                if self.alter_library_language_file:
                    translation = self.alter_library_language_file(library, translation, code)
                return translation

        logger.debug(f"Library {library.ubername} is not localized for {language}")
        return None

    async def list_languages(self, library: LibraryName) -> List[str]:
        """Language codes for which the library ships a language file."""
        languages = []
        for path in await self.list_files(library):
            directory, _, filename = path.partition("/")
            if directory != LANGUAGE_DIRECTORY or "/" in filename:
                continue
            if filename.startswith(".") or not filename.endswith(".json"):
                continue
            languages.append(filename[:-len(".json")])
        return languages

    async def get_upgrades_script_path(self, library: LibraryName) -> Optional[str]:
        if await self.library_file_exists(library, UPGRADES_FILENAME):
            return UPGRADES_FILENAME
        return None

    async def list_addons(self) -> List[InstalledLibrary]:
        """Installed libraries that declare addTo (addons for other content types)."""
        addons = []
        for versions in (await self.list_installed_libraries()).values():
            addons.extend(lib for lib in versions if lib.add_to)
        return addons
