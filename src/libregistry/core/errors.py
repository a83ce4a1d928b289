# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Custom exceptions for the library registry.

All exceptions inherit from LibraryRegistryError for consistent error handling.
Storage backend I/O errors (OSError) are never wrapped; they propagate as-is.
"""

from typing import Any, Dict, List, Optional, Tuple


class LibraryRegistryError(Exception):
    """Base exception for all library registry errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[dict] = None
    ):
        """
        Initialize registry error.

        Args:
            message: Human-readable error message
            status_code: HTTP-like status code
            details: Additional error details
        """
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert error to dictionary for API response."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "status_code": self.status_code,
            "details": self.details
        }


# =============================================================================
# FORMAT ERRORS
# =============================================================================

class InvalidIdentityFormat(LibraryRegistryError):
    """Ubername could not be parsed."""

    def __init__(self, name: str, example: str):
        """
        Initialize invalid ubername error.

        Args:
            name: The offending text
            example: Example of the accepted format
        """
        super().__init__(
            f"Library name '{name}' is invalid. Expected format: {example}",
            status_code=400,
            details={"code": "invalid-ubername-pattern", "name": name, "example": example}
        )
        self.name = name
        self.example = example


class InvalidMachineName(LibraryRegistryError):
    """Machine name contains illegal characters."""

    def __init__(self, machine_name: str):
        super().__init__(
            f'Machine name "{machine_name}" is illegal.',
            status_code=400,
            details={"code": "invalid-machine-name", "machine_name": machine_name}
        )
        self.machine_name = machine_name


class InvalidVersionNumber(LibraryRegistryError):
    """Version component is not a non-negative integer."""

    def __init__(self, component: str, value: Any):
        super().__init__(
            f"{component.capitalize()} version of library is invalid. Only numbers are allowed",
            status_code=400,
            details={"code": "invalid-version-number", "component": component, "value": str(value)}
        )
        self.component = component
        self.value = value


# =============================================================================
# VALIDATION ERRORS
# =============================================================================

class AggregateValidationError(LibraryRegistryError):
    """
    Mutable collector of validation problems.

    Rules append (code, params) entries with add_error() and keep going, or
    raise the instance itself to abort. The pipeline owner decides when to
    raise it via the throw_if_errors rule.
    """

    def __init__(
        self,
        code: str = "package-validation-failed",
        status_code: int = 400,
        details: Optional[dict] = None
    ):
        super().__init__(code, status_code=status_code, details=details)
        self.code = code
        self.errors: List[Tuple[str, Dict[str, Any]]] = []

    def add_error(self, code: str, **params: Any) -> "AggregateValidationError":
        """Append a problem and return self so calls can be chained."""
        self.errors.append((code, params))
        return self

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def __str__(self) -> str:
        if not self.errors:
            return self.code
        codes = ", ".join(code for code, _ in self.errors)
        return f"{self.code}: {codes}"

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["code"] = self.code
        result["errors"] = [{"code": code, "params": params} for code, params in self.errors]
        return result


# =============================================================================
# CONSISTENCY ERRORS
# =============================================================================

class ConsistencyError(LibraryRegistryError):
    """Repository or staging state would be inconsistent; aborted before mutation."""
    pass


class MissingRequiredFile(ConsistencyError):
    """Files declared by the library metadata are absent from staging."""

    def __init__(self, library: str, files: List[str]):
        super().__init__(
            f"Library {library} is missing required files: {', '.join(files)}",
            status_code=400,
            details={"code": "library-missing-files", "library": library, "files": files}
        )
        self.library = library
        self.files = files


class MissingDependency(ConsistencyError):
    """A declared dependency is not installed."""

    def __init__(self, name: str, required_by: Optional[str] = None):
        message = f"Dependency {name} is not installed"
        if required_by:
            message += f" (required by {required_by})"
        super().__init__(
            message,
            status_code=404,
            details={"code": "missing-dependency", "name": name, "required_by": required_by}
        )
        self.name = name
        self.required_by = required_by


class LibraryInUseError(ConsistencyError):
    """Library cannot be removed while other installed libraries depend on it."""

    def __init__(self, library: str, dependents: List[str]):
        super().__init__(
            f"Cannot remove {library}: required by {', '.join(dependents)}",
            status_code=409,
            details={"code": "library-in-use", "library": library, "dependents": dependents}
        )
        self.library = library
        self.dependents = dependents


# =============================================================================
# LOCKING AND INSTALLATION ERRORS
# =============================================================================

class InstallLockTimeout(LibraryRegistryError):
    """Install lock could not be acquired in time. Callers may retry."""

    retryable = True

    def __init__(self, name: str, timeout: float):
        super().__init__(
            f"Could not acquire install lock for {name} within {timeout}s",
            status_code=503,
            details={"code": "install-lock-timeout", "name": name, "timeout": timeout}
        )
        self.name = name
        self.timeout = timeout


class RepositoryInconsistentError(LibraryRegistryError):
    """Rollback after a failed install did not complete. Needs operator attention."""

    def __init__(self, library: str, cause: BaseException):
        super().__init__(
            f"Rollback of library {library} failed, repository may be inconsistent: {cause}",
            status_code=500,
            details={"code": "repository-inconsistent", "library": library, "cause": str(cause)}
        )
        self.library = library
        self.cause = cause


class LibraryNotFoundError(LibraryRegistryError):
    """Library is not installed."""

    def __init__(self, library: str):
        super().__init__(
            f"Library not found: {library}",
            status_code=404,
            details={"code": "library-not-found", "library": library}
        )
        self.library = library


class ConfigurationError(LibraryRegistryError):
    """Configuration error."""

    def __init__(self, message: str, config_file: Optional[str] = None, details: Optional[dict] = None):
        """
        Initialize configuration error.

        Args:
            message: Configuration error message
            config_file: Configuration file path
            details: Additional error details
        """
        super().__init__(message, status_code=500, details=details)
        self.config_file = config_file
