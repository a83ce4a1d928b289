# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Dependency Resolver

Single responsibility: Expand libraries into their transitive dependency set
"""

import logging
from collections import deque
from typing import Deque, Iterable, List, Optional, Set, Tuple

from ..core.errors import MissingDependency
from ..models.library_models import InstalledLibrary, LibraryName
from .repository import LibraryRepository

logger = logging.getLogger(__name__)


class DependencyResolver:
    """Resolves library dependencies (exact major.minor matching only)"""

    def __init__(self, repository: LibraryRepository):
        """
        Initialize dependency resolver.

        Args:
            repository: Repository the dependency records are read from
        """
        self.repository = repository

    async def get_dependent_libraries(
        self,
        roots: Iterable[LibraryName],
        preloaded: bool = False,
        editor: bool = False,
        dynamic: bool = False,
        exclude: Optional[Iterable[LibraryName]] = None,
        tolerate_missing: bool = False
    ) -> List[InstalledLibrary]:
        """
        Resolve the libraries required by roots, including the roots themselves.

        The walk is breadth-first over an explicit work queue: dependencies of
        earlier roots come before dependencies of later roots and each
        library's declared dependency order is kept. Every library is returned
        at most once, so cycles terminate.

        Libraries in exclude are not returned, but their dependencies are
        still followed. Pass the root itself to get only its dependencies.

        Args:
            roots: Libraries to start from
            preloaded: Follow preloadedDependencies
            editor: Follow editorDependencies
            dynamic: Follow dynamicDependencies
            exclude: Libraries to leave out of the result
            tolerate_missing: Skip libraries that are not installed instead of failing

        Returns:
            Installed library records in resolution order

        Raises:
            MissingDependency: If a required library is not installed
        """
        excluded: Set[str] = {lib.ubername for lib in (exclude or [])}
        visited: Set[str] = set()
        resolved: List[InstalledLibrary] = []

        # (library, ubername of the library that declared it)
        queue: Deque[Tuple[LibraryName, Optional[str]]] = deque(
            (root, None) for root in roots
        )

        while queue:
            library, required_by = queue.popleft()
            key = library.ubername
            if key in visited:
                continue
            visited.add(key)

            record = await self.repository.get_library(library)
            if record is None:
                if tolerate_missing:
                    logger.warning(f"Skipping missing library {key} (required by {required_by or 'caller'})")
                    continue
                raise MissingDependency(key, required_by)

            if key not in excluded:
                resolved.append(record)

            for dependency in record.dependencies_of(preloaded, editor, dynamic):
                if dependency.ubername not in visited:
                    queue.append((dependency, key))

        logger.debug(f"Resolved {len(resolved)} libraries from {len(visited)} visited")
        return resolved

    async def resolve(
        self,
        roots: Iterable[LibraryName],
        preloaded: bool = False,
        editor: bool = False,
        dynamic: bool = False,
        exclude: Optional[Iterable[LibraryName]] = None,
        tolerate_missing: bool = False
    ) -> List[LibraryName]:
        """Same walk as get_dependent_libraries(), returning identities only."""
        records = await self.get_dependent_libraries(
            roots,
            preloaded=preloaded,
            editor=editor,
            dynamic=dynamic,
            exclude=exclude,
            tolerate_missing=tolerate_missing
        )
        return [record.to_library_name() for record in records]
