# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Library Registry Services

Modular library management following Unix philosophy:
- Each module does one thing well
- Modules compose to form complete system
- Text-based configuration and plain directories throughout
"""

from .validation import ValidationPipeline, ValidationRule, SKIP_REMAINING, throw_if_errors
from .locks import LockProvider, LockHandle, InProcessLockProvider, FileLockProvider
from .repository import LibraryRepository
from .resolver import DependencyResolver
from .transactions import TransactionLogger
from .installer import LibraryInstaller
from .library_validator import LibraryDirectoryValidator
from .service import LibraryRegistryService

__all__ = [
    "ValidationPipeline",
    "ValidationRule",
    "SKIP_REMAINING",
    "throw_if_errors",
    "LockProvider",
    "LockHandle",
    "InProcessLockProvider",
    "FileLockProvider",
    "LibraryRepository",
    "DependencyResolver",
    "TransactionLogger",
    "LibraryInstaller",
    "LibraryDirectoryValidator",
    "LibraryRegistryService",
]
