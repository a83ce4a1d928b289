# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Staging directory helpers

A staging directory is where the package extractor unpacked one library:
the library root holding library.json plus its files.
"""

import asyncio
import json
from pathlib import Path
from typing import List

import aiofiles

from ..models.library_models import METADATA_FILENAME, LibraryMetadata


async def list_staged_files(directory: Path) -> List[str]:
    """Relative POSIX paths of all files below directory except library.json, sorted."""

    def _walk() -> List[str]:
        files = []
        for file_path in Path(directory).rglob("*"):
            if file_path.is_file():
                relative = file_path.relative_to(directory).as_posix()
                if relative != METADATA_FILENAME:
                    files.append(relative)
        return sorted(files)

    return await asyncio.to_thread(_walk)


async def read_staged_file(directory: Path, path: str) -> bytes:
    async with aiofiles.open(Path(directory) / path, "rb") as f:
        return await f.read()


async def read_staged_metadata(directory: Path) -> LibraryMetadata:
    """
    Parse library.json of a staged library.

    Raises:
        FileNotFoundError: If library.json is missing
        json.JSONDecodeError: If it is not valid JSON
        pydantic.ValidationError: If it does not describe a library
    """
    async with aiofiles.open(Path(directory) / METADATA_FILENAME, "r", encoding="utf-8") as f:
        data = json.loads(await f.read())
    return LibraryMetadata.model_validate(data)
