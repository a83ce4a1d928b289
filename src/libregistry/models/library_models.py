# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Library Data Models

Defines data structures for the library repository: library identities,
library.json metadata, installed library records, install results and
install transactions.

Field names are snake_case in Python and camelCase on disk (library.json).
"""

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


MACHINE_NAME_PATTERN = re.compile(r"[A-Za-z0-9_.]+")
VERSION_NUMBER_PATTERN = re.compile(r"[0-9]+")

METADATA_FILENAME = "library.json"


def _coerce_version_number(value: Any) -> Any:
    """Parse numeric strings; reject bools, floats and non-numeric strings."""
    # bool is an int subclass
    if isinstance(value, (bool, float)):
        raise ValueError("Only numbers are allowed")
    if isinstance(value, str):
        if not VERSION_NUMBER_PATTERN.fullmatch(value.strip()):
            raise ValueError("Only numbers are allowed")
        return int(value.strip())
    return value


class LibraryName(BaseModel):
    """
    Identity of a library: machine name plus major and minor version.

    Dependencies always pin an exact major.minor (no version ranges).
    Numeric strings are accepted for the version numbers.
    """
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    machine_name: str
    major_version: int = Field(ge=0)
    minor_version: int = Field(ge=0)

    @field_validator("machine_name")
    @classmethod
    def _check_machine_name(cls, value: str) -> str:
        if not MACHINE_NAME_PATTERN.fullmatch(value):
            raise ValueError(f'Machine name "{value}" is illegal.')
        return value

    @field_validator("major_version", "minor_version", mode="before")
    @classmethod
    def _check_version(cls, value: Any) -> Any:
        return _coerce_version_number(value)

    @property
    def ubername(self) -> str:
        """Canonical hyphen form, e.g. H5P.Example-1.0; also the storage key."""
        return f"{self.machine_name}-{self.major_version}.{self.minor_version}"

    def to_library_name(self) -> "LibraryName":
        """Strip everything but the identity triple."""
        return LibraryName(
            machine_name=self.machine_name,
            major_version=self.major_version,
            minor_version=self.minor_version
        )

    def __str__(self) -> str:
        return self.ubername


class FullLibraryName(LibraryName):
    """Library identity including the patch version."""

    patch_version: int = Field(default=0, ge=0)

    @field_validator("patch_version", mode="before")
    @classmethod
    def _check_patch_version(cls, value: Any) -> Any:
        return _coerce_version_number(value)

    @property
    def version(self) -> str:
        return f"{self.major_version}.{self.minor_version}.{self.patch_version}"

    @property
    def version_key(self) -> Tuple[int, int, int]:
        """Sort key: (major, minor, patch)."""
        return (self.major_version, self.minor_version, self.patch_version)

    def to_full_library_name(self) -> "FullLibraryName":
        return FullLibraryName(
            machine_name=self.machine_name,
            major_version=self.major_version,
            minor_version=self.minor_version,
            patch_version=self.patch_version
        )

    def __str__(self) -> str:
        return f"{self.machine_name}-{self.version}"


class LibraryFileEntry(BaseModel):
    """Entry of preloadedJs / preloadedCss lists"""
    model_config = ConfigDict(frozen=True)

    path: str


class LibraryMetadata(FullLibraryName):
    """
    Contents of library.json.

    Unknown keys are kept so that metadata survives a read/write cycle.
    """
    model_config = ConfigDict(extra="allow")

    title: str
    description: Optional[str] = None
    runnable: bool = False
    author: Optional[str] = None
    license: Optional[str] = None
    core_api: Optional[Dict[str, int]] = None
    embed_types: List[str] = Field(default_factory=list)
    fullscreen: Optional[bool] = None
    preloaded_dependencies: List[LibraryName] = Field(default_factory=list)
    editor_dependencies: List[LibraryName] = Field(default_factory=list)
    dynamic_dependencies: List[LibraryName] = Field(default_factory=list)
    preloaded_css: List[LibraryFileEntry] = Field(default_factory=list)
    preloaded_js: List[LibraryFileEntry] = Field(default_factory=list)
    metadata_settings: Optional[Dict[str, Any]] = None
    add_to: Optional[Dict[str, Any]] = None

    def dependencies_of(
        self,
        preloaded: bool = False,
        editor: bool = False,
        dynamic: bool = False
    ) -> List[LibraryName]:
        """Declared dependencies of the requested kinds, in declaration order."""
        deps: List[LibraryName] = []
        if preloaded:
            deps.extend(self.preloaded_dependencies)
        if editor:
            deps.extend(self.editor_dependencies)
        if dynamic:
            deps.extend(self.dynamic_dependencies)
        return deps

    def preloaded_files(self) -> List[str]:
        return [entry.path for entry in self.preloaded_js] + [entry.path for entry in self.preloaded_css]

    def to_json_dict(self) -> Dict[str, Any]:
        """Dictionary in library.json layout (camelCase)."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class InstalledLibrary(LibraryMetadata):
    """Metadata record of a library that is present in the repository"""

    restricted: bool = False

    @classmethod
    def from_metadata(cls, metadata: LibraryMetadata, restricted: bool = False) -> "InstalledLibrary":
        data = metadata.model_dump(by_alias=True)
        data["restricted"] = restricted
        return cls.model_validate(data)


class InstallResultType(str, Enum):
    """What an install attempt did"""
    NEW = "new"
    PATCH = "patch"
    NONE = "none"


class InstallResult(BaseModel):
    """Outcome of installing one library"""
    type: InstallResultType
    new_version: Optional[FullLibraryName] = None
    old_version: Optional[FullLibraryName] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "newVersion": self.new_version.model_dump(by_alias=True) if self.new_version else None,
            "oldVersion": self.old_version.model_dump(by_alias=True) if self.old_version else None,
        }


class TransactionStatus(str, Enum):
    """Transaction status"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"
    ROLLBACK_FAILED = "rollback_failed"


class TransactionOperation(str, Enum):
    """Type of transaction operation"""
    INSTALL = "install"
    UPGRADE = "upgrade"
    REMOVE = "remove"


class TransactionRecord(BaseModel):
    """Journal entry for one repository mutation attempt"""
    id: str
    operation: TransactionOperation
    library: str
    version: Optional[str] = None
    old_version: Optional[str] = None
    status: TransactionStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            "id": self.id,
            "operation": self.operation.value,
            "library": self.library,
            "version": self.version,
            "old_version": self.old_version,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
        }


@dataclass
class FileStats:
    """Size and modification time of a stored library file"""
    size: int
    mtime: datetime
