# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
libregistry - Versioned Library Repository

Installs, upgrades and resolves versioned, interdependent libraries
(content-type packages) on durable storage.
"""

from .core.config import Config, get_config, load_config, reload_config
from .core.logging import configure_logging
from .identity import libraries_equal, parse_ubername, render_ubername, validate_machine_name
from .models.library_models import (
    FullLibraryName,
    InstalledLibrary,
    InstallResult,
    InstallResultType,
    LibraryMetadata,
    LibraryName
)
from .services.service import LibraryRegistryService

__version__ = "1.0.0"

__all__ = [
    "Config",
    "get_config",
    "load_config",
    "reload_config",
    "configure_logging",
    "libraries_equal",
    "parse_ubername",
    "render_ubername",
    "validate_machine_name",
    "FullLibraryName",
    "InstalledLibrary",
    "InstallResult",
    "InstallResultType",
    "LibraryMetadata",
    "LibraryName",
    "LibraryRegistryService",
]
