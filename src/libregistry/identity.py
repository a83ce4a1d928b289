# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Library Identity

Single responsibility: parse, render, validate and compare library ubernames
("H5P.Example-1.0" or "H5P.Example 1.0"). Pure functions, no I/O.

Ubernames come from uploaded packages and request parameters, so both
parsing and rendering validate strictly to keep manipulated names out of
storage keys.
"""

import re
from typing import Any, Union

from .core.errors import InvalidIdentityFormat, InvalidMachineName, InvalidVersionNumber
from .models.library_models import MACHINE_NAME_PATTERN, VERSION_NUMBER_PATTERN, LibraryName


HYPHEN_PATTERN = re.compile(r"([A-Za-z0-9_.]+)-([0-9]+)\.([0-9]+)")
SPACE_PATTERN = re.compile(r"([A-Za-z0-9_.]+) ([0-9]+)\.([0-9]+)")
EITHER_PATTERN = re.compile(r"([A-Za-z0-9_.]+)[- ]([0-9]+)\.([0-9]+)")


def _pattern_and_example(allow_hyphen: bool, allow_space: bool):
    if allow_hyphen and allow_space:
        return EITHER_PATTERN, "H5P.Example-1.0 or H5P.Example 1.0"
    if allow_hyphen:
        return HYPHEN_PATTERN, "H5P.Example-1.0"
    return SPACE_PATTERN, "H5P.Example 1.0"


def validate_machine_name(machine_name: Any) -> str:
    """
    Check that a machine name only contains [A-Za-z0-9_.].

    Raises:
        InvalidMachineName: If the name is empty or contains other characters
    """
    if not isinstance(machine_name, str) or not MACHINE_NAME_PATTERN.fullmatch(machine_name):
        raise InvalidMachineName(str(machine_name))
    return machine_name


def make_library_name(
    machine_name: str,
    major_version: Union[int, str],
    minor_version: Union[int, str]
) -> LibraryName:
    """
    Construct a validated LibraryName, parsing numeric-string versions.

    Raises:
        InvalidMachineName: On illegal machine names
        InvalidVersionNumber: On non-numeric or negative versions
    """
    validate_machine_name(machine_name)
    for component, value in (("major", major_version), ("minor", minor_version)):
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            raise InvalidVersionNumber(component, value)
        if isinstance(value, str) and not VERSION_NUMBER_PATTERN.fullmatch(value.strip()):
            raise InvalidVersionNumber(component, value)
        if isinstance(value, int) and value < 0:
            raise InvalidVersionNumber(component, value)

    return LibraryName(
        machine_name=machine_name,
        major_version=major_version,
        minor_version=minor_version
    )


def parse_ubername(
    ubername: str,
    allow_hyphen: bool = True,
    allow_space: bool = False
) -> LibraryName:
    """
    Parse an ubername into a LibraryName.

    Args:
        ubername: Text such as "H5P.Example-1.0"
        allow_hyphen: Accept "H5P.Example-1.0"
        allow_space: Accept "H5P.Example 1.0"

    Returns:
        The parsed identity

    Raises:
        ValueError: If neither separator is enabled (caller bug)
        InvalidIdentityFormat: If the text does not match the accepted format
    """
    if not allow_hyphen and not allow_space:
        raise ValueError("parse_ubername needs allow_hyphen or allow_space (or both)")

    pattern, example = _pattern_and_example(allow_hyphen, allow_space)
    match = pattern.fullmatch(ubername) if isinstance(ubername, str) else None
    if not match:
        raise InvalidIdentityFormat(str(ubername), example)

    return LibraryName(
        machine_name=match.group(1),
        major_version=int(match.group(2)),
        minor_version=int(match.group(3))
    )


def render_ubername(library: LibraryName, use_hyphen: bool = True, use_space: bool = False) -> str:
    """
    Render the ubername of a library. The hyphen wins if both are requested.

    Raises:
        ValueError: If no separator is requested or the result would not parse again
    """
    if use_hyphen:
        separator, pattern = "-", HYPHEN_PATTERN
    elif use_space:
        separator, pattern = " ", SPACE_PATTERN
    else:
        raise ValueError("render_ubername needs use_hyphen or use_space")

    ubername = f"{library.machine_name}{separator}{library.major_version}.{library.minor_version}"
    if not pattern.fullmatch(ubername):
        raise ValueError(f"Ubername {ubername!r} is not a valid ubername with separator {separator!r}")
    return ubername


def libraries_equal(library1: LibraryName, library2: LibraryName) -> bool:
    """Structural equality on machine name, major and minor version (patch ignored)."""
    return (
        library1.machine_name == library2.machine_name
        and library1.major_version == library2.major_version
        and library1.minor_version == library2.minor_version
    )
