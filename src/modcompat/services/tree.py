"""Dependency tree builder.

Walks the cached resolutions (never the constraints themselves) from a root
version. Cycles are broken per path: a version already on the path from the
root is emitted as a leaf flagged ``cycle``. Shared subtrees are not
deduplicated, so a package reached along two paths is expanded once per path.

Every distinct constraint seen for a package anywhere in the tree is gathered
in a ConstraintLedger, built bottom-up and merged at each level.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from modcompat.core.clock import ensure_utc, utcnow
from modcompat.core.logging import get_logger
from modcompat.core.tracing import trace_async
from modcompat.models import Package, PackageKind, PackageVersion
from modcompat.repositories import (
    LiveEdge,
    NotFoundError,
    PackageVersionRepository,
    ResolutionRepository,
)

logger = get_logger(__name__)


class ConstraintLedger:
    """Distinct constraint strings per package id, in first-seen order."""

    def __init__(self) -> None:
        self._constraints: dict[int, list[str]] = {}

    def add(self, package_id: int, constraint: str) -> None:
        seen = self._constraints.setdefault(package_id, [])
        if constraint not in seen:
            seen.append(constraint)

    def merge(self, other: "ConstraintLedger") -> None:
        for package_id, constraints in other._constraints.items():
            for constraint in constraints:
                self.add(package_id, constraint)

    def get(self, package_id: int) -> list[str]:
        return list(self._constraints.get(package_id, []))

    def as_dict(self) -> dict[int, list[str]]:
        return {package_id: list(values) for package_id, values in self._constraints.items()}

    def __contains__(self, package_id: object) -> bool:
        return package_id in self._constraints

    def __len__(self) -> int:
        return len(self._constraints)


@dataclass
class TreeNode:
    """A package and the version its dependency edges resolved to.

    Attributes:
        package: Target package
        version: Highest visible resolved version of that package at this level
        constraints: Constraints on the edges from the parent to this package
        children: Expanded dependencies of ``version``
        cycle: True when ``version`` already appears on the path above
    """

    package: Package
    version: PackageVersion
    constraints: list[str]
    children: list["TreeNode"] = field(default_factory=list)
    cycle: bool = False

    def walk(self) -> Iterable["TreeNode"]:
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass
class DependencyTree:
    """A root version and its expanded dependencies.

    Attributes:
        root: Root version (its ``package`` is loaded)
        nodes: Top-level dependency nodes
        constraints: Every constraint seen per package id across the tree
        compatible_hosts: For an addon root, the visible compatible host mod versions
    """

    root: PackageVersion
    nodes: list[TreeNode]
    constraints: ConstraintLedger
    compatible_hosts: list[PackageVersion] = field(default_factory=list)

    def walk(self) -> Iterable[TreeNode]:
        for node in self.nodes:
            yield from node.walk()


class DependencyTreeBuilder:
    """Builds dependency trees from cached resolutions. Read-only."""

    def __init__(self, session: AsyncSession) -> None:
        self._versions = PackageVersionRepository(session)
        self._resolutions = ResolutionRepository(session)

    @trace_async("tree.build", component="tree")
    async def build(self, root_version_id: int, as_of: datetime | None = None) -> DependencyTree:
        """Build the tree rooted at ``root_version_id``.

        An addon root expands the addon's own resolved mod dependencies and
        also reports its compatible host versions.

        Raises:
            NotFoundError: If the root version does not exist
            RepositoryError: For database errors
        """
        as_of = ensure_utc(as_of) if as_of is not None else utcnow()
        root = await self._versions.get_with_package(root_version_id)
        if root is None:
            raise NotFoundError(f"PackageVersion with id {root_version_id} not found")

        nodes, ledger = await self.expand(root.id, as_of)
        compatible_hosts: list[PackageVersion] = []
        if root.package.kind == PackageKind.ADDON:
            compatible_hosts = await self._resolutions.compatible_host_versions(root.id, as_of)

        logger.debug(
            "Dependency tree built",
            root_version_id=root.id,
            top_level=len(nodes),
            packages=len(ledger),
        )
        return DependencyTree(
            root=root,
            nodes=nodes,
            constraints=ledger,
            compatible_hosts=compatible_hosts,
        )

    async def expand(
        self,
        version_id: int,
        as_of: datetime,
    ) -> tuple[list[TreeNode], ConstraintLedger]:
        """Expand the dependencies of ``version_id`` with an empty path."""
        expanded = await self._expand(version_id, (), ensure_utc(as_of))
        if expanded is None:
            return [], ConstraintLedger()
        return expanded

    async def compatible_host_versions(
        self,
        addon_version_id: int,
        as_of: datetime | None = None,
    ) -> list[PackageVersion]:
        """The live compatibility set of an addon version, highest first.

        Raises:
            NotFoundError: If the version does not exist
        """
        as_of = ensure_utc(as_of) if as_of is not None else utcnow()
        version = await self._versions.get_with_package(addon_version_id)
        if version is None:
            raise NotFoundError(f"PackageVersion with id {addon_version_id} not found")
        if version.package.kind != PackageKind.ADDON:
            return []
        return await self._resolutions.compatible_host_versions(addon_version_id, as_of)

    async def _expand(
        self,
        version_id: int,
        path: tuple[int, ...],
        as_of: datetime,
    ) -> tuple[list[TreeNode], ConstraintLedger] | None:
        if version_id in path:
            return None
        path = path + (version_id,)

        ledger = ConstraintLedger()
        nodes: list[TreeNode] = []
        for edges in _group_by_package(await self._resolutions.live_edges(version_id, as_of)):
            newest = max(edges, key=lambda edge: edge.version.version_sort_key())
            package = newest.package
            constraints: list[str] = []
            for edge in edges:
                ledger.add(package.id, edge.constraint)
                if edge.constraint not in constraints:
                    constraints.append(edge.constraint)

            node = TreeNode(package=package, version=newest.version, constraints=constraints)
            subtree = await self._expand(newest.version.id, path, as_of)
            if subtree is None:
                node.cycle = True
                logger.debug(
                    "Cycle guard stopped expansion",
                    version_id=newest.version.id,
                    path=list(path),
                )
            else:
                node.children, child_ledger = subtree
                ledger.merge(child_ledger)
            nodes.append(node)

        return nodes, ledger


def _group_by_package(edges: list[LiveEdge]) -> list[list[LiveEdge]]:
    grouped: dict[int, list[LiveEdge]] = {}
    for edge in edges:
        grouped.setdefault(edge.package.id, []).append(edge)
    return list(grouped.values())
