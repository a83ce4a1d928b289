# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Library Directory Validator

Checks a staged library directory before it may be installed. Built on
ValidationPipeline: problems are collected into one AggregateValidationError
so that every problem of a package is reported at once.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List

import aiofiles
import aiofiles.os
from pydantic import ValidationError

from ..core.config import Config
from ..core.errors import AggregateValidationError, InvalidIdentityFormat
from ..identity import libraries_equal, parse_ubername
from ..models.library_models import METADATA_FILENAME, LibraryMetadata
from ..storage.staging import list_staged_files, read_staged_metadata
from .repository import LANGUAGE_DIRECTORY, LibraryRepository
from .validation import SKIP_REMAINING, ValidationPipeline, throw_if_errors

logger = logging.getLogger(__name__)


@dataclass
class StagedLibrary:
    """A library directory whose metadata has been loaded"""
    directory: Path
    metadata: LibraryMetadata
    files: List[str] = field(default_factory=list)


class LibraryDirectoryValidator:
    """
    Validates one staged library directory.

    Usage:
        validator = LibraryDirectoryValidator(config, repository)
        staged = await validator.validate(Path("/tmp/upload/H5P.Example-1.0"))
        if staged is SKIP_REMAINING:
            ...  # already installed at an equal or newer patch
    """

    def __init__(
        self,
        config: Config,
        repository: LibraryRepository,
        skip_installed: bool = True
    ):
        self.config = config
        self.repository = repository
        self.allowed_extensions = {ext.lower() for ext in config.allowed_extensions}
        self.pipeline = (
            ValidationPipeline()
            .add_rule(self.load_metadata)
            .add_rule_when(self.skip_if_installed, skip_installed)
            .add_rule(self.check_directory_name)
            .add_rule(self.check_file_extensions)
            .add_rule(self.check_file_sizes)
            .add_rule(self.check_required_files)
            .add_rule(self.check_language_files)
            .add_rule(throw_if_errors)
        )

    async def validate(self, directory: Path) -> Any:
        """
        Run all rules on directory.

        Returns:
            StagedLibrary, or SKIP_REMAINING if the library is already installed

        Raises:
            AggregateValidationError: With every problem found
        """
        return await self.pipeline.run(Path(directory), context=Path(directory).name)

    # -- Rules --

    async def load_metadata(self, directory: Path, context: str, error: AggregateValidationError) -> StagedLibrary:
        """Abort right away: later rules need the metadata."""
        if not await aiofiles.os.path.isfile(directory / METADATA_FILENAME):
            raise error.add_error("library-json-missing", directory=context)
        try:
            metadata = await read_staged_metadata(directory)
        except json.JSONDecodeError as e:
            raise error.add_error("invalid-json-file", directory=context, file=METADATA_FILENAME, reason=str(e))
        except ValidationError as e:
            raise error.add_error("invalid-library-metadata", directory=context, reason=str(e))

        return StagedLibrary(
            directory=directory,
            metadata=metadata,
            files=await list_staged_files(directory)
        )

    async def skip_if_installed(self, staged: StagedLibrary, context: str, error: AggregateValidationError) -> Any:
        installed = await self.repository.get_library(staged.metadata)
        if installed is not None and installed.patch_version >= staged.metadata.patch_version:
            logger.info(f"Library {staged.metadata} is already installed as {installed}, skipping validation")
            return SKIP_REMAINING
        return staged

    def check_directory_name(self, staged: StagedLibrary, context: str, error: AggregateValidationError) -> StagedLibrary:
        try:
            library = parse_ubername(
                context,
                allow_hyphen=self.config.ubername_allow_hyphen,
                allow_space=self.config.ubername_allow_space
            )
        except InvalidIdentityFormat:
            library = None

        if library is None or not libraries_equal(library, staged.metadata):
            error.add_error(
                "library-directory-name-mismatch",
                directory=context,
                expected=staged.metadata.ubername
            )
        return staged

    def check_file_extensions(self, staged: StagedLibrary, context: str, error: AggregateValidationError) -> StagedLibrary:
        for path in staged.files:
            extension = Path(path).suffix.lower().lstrip(".")
            if extension not in self.allowed_extensions:
                error.add_error("file-extension-not-allowed", file=f"{context}/{path}", extension=extension)
        return staged

    async def check_file_sizes(self, staged: StagedLibrary, context: str, error: AggregateValidationError) -> StagedLibrary:
        for path in staged.files:
            stat = await aiofiles.os.stat(staged.directory / path)
            if stat.st_size > self.config.max_file_size:
                error.add_error(
                    "file-too-large",
                    file=f"{context}/{path}",
                    size=stat.st_size,
                    max_size=self.config.max_file_size
                )
        return staged

    def check_required_files(self, staged: StagedLibrary, context: str, error: AggregateValidationError) -> StagedLibrary:
        available = set(staged.files)
        for path in staged.metadata.preloaded_files():
            if path not in available:
                error.add_error("library-missing-file", library=staged.metadata.ubername, file=path)
        return staged

    async def check_language_files(self, staged: StagedLibrary, context: str, error: AggregateValidationError) -> StagedLibrary:
        for path in staged.files:
            if not path.startswith(f"{LANGUAGE_DIRECTORY}/") or not path.endswith(".json"):
                continue
            async with aiofiles.open(staged.directory / path, "rb") as f:
                content = await f.read()
            try:
                json.loads(content)
            except ValueError as e:
                error.add_error("invalid-language-file", file=f"{context}/{path}", reason=str(e))
        return staged
