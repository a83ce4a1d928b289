# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Storage backends for library files and metadata records.
"""

from .base import LibraryStorage
from .file_storage import FileLibraryStorage

__all__ = [
    "LibraryStorage",
    "FileLibraryStorage",
]
