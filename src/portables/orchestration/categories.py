"""
Category hierarchy: which categories a job includes and in what order they run.

Two pieces:

- ``resolve_included`` computes the inclusion set of a request in a
  single pass: the requested categories, their *direct* children, the
  pages category when pages were picked, and the portal root whenever
  anything at all is included.
- ``CategoryGraph`` is built once per run over a fixed list of services
  and hands out levels: roots first, then the children claimed by the
  previous level, then one flattened level of orphans whose parent never
  showed up. Deeper descendants become included level by level, because
  below the roots a service is selected when its *parent* category is in
  the inclusion set.

Architecture:
    ::

        services (discovery order)      index → service
        ┌──────────────────────────┐
        │ 0 Portal   (root, p=0)   │     roots     = [0, 1, 2]
        │ 1 A        (root, p=1)   │     children  = {"a": [3, 4]}
        │ 2 B        (root, p=2)   │
        │ 3 A1  → A  (p=1)         │     levels(): [Portal, A, B]
        │ 4 A2  → A  (p=2)         │               [A1, A2]
        └──────────────────────────┘

Category names compare case-insensitively everywhere.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Iterator, MutableSet
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from portables.framework.services import PortableService
    from portables.orchestration.requests import ExportRequest

CATEGORY_PORTAL = "Portal"
CATEGORY_PAGES = "Pages"


class CategorySet(MutableSet):
    """Case-insensitive set of category names that keeps the first spelling seen."""

    def __init__(self, names: Iterable[str] = ()) -> None:
        self._names: dict[str, str] = {}
        for name in names:
            self.add(name)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.casefold() in self._names

    def __iter__(self) -> Iterator[str]:
        return iter(self._names.values())

    def __len__(self) -> int:
        return len(self._names)

    def add(self, name: str) -> None:
        if name:
            self._names.setdefault(name.casefold(), name)

    def discard(self, name: str) -> None:
        self._names.pop(name.casefold(), None)

    def __repr__(self) -> str:
        return f"CategorySet({sorted(self._names.values())!r})"


def resolve_included(
    requested: Iterable[str],
    services: Iterable[PortableService],
    *,
    pages_selected: bool = False,
) -> CategorySet:
    """Compute the categories a request includes.

    Single pass: only direct children of requested categories are pulled
    in here; grandchildren are reached during execution.
    """
    services = list(services)
    included = CategorySet()
    for name in requested:
        included.add(name)
        key = name.casefold()
        for service in services:
            if service.parent_category and service.parent_category.casefold() == key:
                included.add(service.category)

    if pages_selected:
        included.add(CATEGORY_PAGES)

    # The portal is the implicit container of everything else
    if included:
        included.add(CATEGORY_PORTAL)

    return included


def resolve_for_request(request: ExportRequest, services: Iterable[PortableService]) -> CategorySet:
    return resolve_included(request.items_to_export, services, pages_selected=bool(request.pages))


@dataclass(frozen=True)
class Level:
    """Services to visit in one pass, already in execution order."""

    depth: int
    services: list[PortableService]
    orphaned: bool = False

    @property
    def categories(self) -> list[str]:
        return [s.category for s in self.services]


def is_selected(service: PortableService, level: Level, included: CategorySet) -> bool:
    """Decide whether *service* runs in *level*.

    Roots run when their own category is included; deeper levels run
    when the parent category is included. Orphans run unconditionally,
    since no executed category can vouch for them.
    """
    if level.orphaned:
        return True
    if level.depth == 0:
        return service.category in included
    return service.parent_category in included


class CategoryGraph:
    """Parent/child adjacency over a fixed list of services.

    Built once; levels are produced lazily so the caller can ``prune`` a
    failed service before its children are scheduled.
    """

    def __init__(self, services: Iterable[PortableService]) -> None:
        self.services: list[PortableService] = list(services)
        self.roots: list[int] = [i for i, s in enumerate(self.services) if not s.parent_category]
        self._children: dict[str, list[int]] = defaultdict(list)
        for i, service in enumerate(self.services):
            if service.parent_category:
                self._children[service.parent_category.casefold()].append(i)
        self._index = {id(s): i for i, s in enumerate(self.services)}
        self._pruned: set[int] = set()
        self.dropped: list[PortableService] = []
        self.orphans: list[PortableService] = []

    def children_of(self, category: str) -> list[PortableService]:
        return [self.services[i] for i in self._children.get(category.casefold(), [])]

    def prune(self, service: PortableService) -> None:
        """Do not schedule the descendants of *service*."""
        index = self._index.get(id(service))
        if index is not None:
            self._pruned.add(index)

    def levels(self) -> Iterator[Level]:
        """Yield levels until every service has been visited."""
        roots = set(self.roots)
        unclaimed = [i for i in range(len(self.services)) if i not in roots]
        current = list(self.roots)
        depth = 0

        while True:
            orphaned = False
            if not current:
                if not unclaimed:
                    return
                # Broken hierarchy: flatten what is left into one level
                current, unclaimed = unclaimed, []
                orphaned = True
                self.orphans = [self.services[i] for i in current]

            # Stable sort: equal priorities keep discovery order
            ordered = sorted(current, key=lambda i: self.services[i].priority)
            yield Level(depth=depth, services=[self.services[i] for i in ordered], orphaned=orphaned)

            next_level: list[int] = []
            if not orphaned:
                for i in ordered:
                    claimed = self._claim(self.services[i].category, unclaimed)
                    if i in self._pruned:
                        for child in claimed:
                            self._drop(child, unclaimed)
                    else:
                        next_level.extend(claimed)

            depth += 1
            current = next_level

    def _claim(self, category: str, unclaimed: list[int]) -> list[int]:
        claimed = [c for c in self._children.get(category.casefold(), []) if c in unclaimed]
        for c in claimed:
            unclaimed.remove(c)
        return claimed

    def _drop(self, index: int, unclaimed: list[int]) -> None:
        self._pruned.add(index)
        self.dropped.append(self.services[index])
        for child in self._claim(self.services[index].category, unclaimed):
            self._drop(child, unclaimed)


__all__ = [
    "CATEGORY_PORTAL",
    "CATEGORY_PAGES",
    "CategorySet",
    "CategoryGraph",
    "Level",
    "is_selected",
    "resolve_included",
    "resolve_for_request",
]
