"""Install-set resolution.

Given ``identifier:version`` pairs, builds the dependency tree of each pair's
visible version and folds the top-level nodes of all trees into one entry per
package. A package reached at several versions keeps the highest version that
satisfies every constraint gathered for it across all trees; when none does,
every distinct version is kept and flagged as a conflict. Nested dependencies
are folded the same way.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from modcompat.core.clock import ensure_utc, utcnow
from modcompat.core.logging import get_logger
from modcompat.core.tracing import trace_async
from modcompat.identifiers import parse_identifier_pairs
from modcompat.models import Package, PackageVersion
from modcompat.repositories import PackageVersionRepository
from modcompat.services.tree import ConstraintLedger, DependencyTreeBuilder, TreeNode
from modcompat.versioning import highest, satisfying_all

logger = get_logger(__name__)


@dataclass
class InstallEntry:
    package: Package
    version: PackageVersion
    conflict: bool
    constraints: list[str]
    dependencies: list["InstallEntry"] = field(default_factory=list)


@dataclass
class InstallPlan:
    """Folded dependencies of the requested versions.

    Attributes:
        requested: The visible versions the request named, in request order
        entries: One entry per package (several when in conflict)
    """

    requested: list[PackageVersion]
    entries: list[InstallEntry]

    @property
    def has_conflicts(self) -> bool:
        return any(entry.conflict for entry in self.entries)


class InstallSetResolver:
    """Resolves the combined dependencies of several mod versions."""

    def __init__(self, session: AsyncSession) -> None:
        self._versions = PackageVersionRepository(session)
        self._trees = DependencyTreeBuilder(session)

    @trace_async("install_set.resolve", component="install_set")
    async def resolve(self, raw: str, as_of: datetime | None = None) -> InstallPlan:
        """Resolve a comma-separated ``identifier:version`` list.

        Pairs naming no visible version are ignored.

        Raises:
            ValueError: If ``raw`` holds no well-formed pair
            RepositoryError: For database errors
        """
        as_of = ensure_utc(as_of) if as_of is not None else utcnow()
        pairs = parse_identifier_pairs(raw or "")
        if not pairs:
            raise ValueError(
                "Expected a comma-separated list of identifier:version pairs, "
                "where identifier is a numeric package id or a GUID/slug"
            )

        requested: list[PackageVersion] = []
        for pair in pairs:
            version = await self._versions.find_visible(pair.identifier, pair.version, as_of)
            if version is None:
                logger.debug(
                    "Requested version not found",
                    identifier=str(pair.identifier),
                    version=pair.version,
                )
                continue
            if all(existing.id != version.id for existing in requested):
                requested.append(version)

        ledger = ConstraintLedger()
        forest: list[TreeNode] = []
        for version in requested:
            nodes, tree_ledger = await self._trees.expand(version.id, as_of)
            forest.extend(nodes)
            ledger.merge(tree_ledger)

        return InstallPlan(requested=requested, entries=fold(forest, ledger))


def fold(nodes: Sequence[TreeNode], ledger: ConstraintLedger) -> list[InstallEntry]:
    """Fold tree nodes into one entry per package using ``ledger``'s constraints."""
    groups: dict[int, list[TreeNode]] = {}
    for node in nodes:
        groups.setdefault(node.package.id, []).append(node)

    entries: list[InstallEntry] = []
    for package_id, group in groups.items():
        constraints = ledger.get(package_id)
        distinct = _distinct_versions(group)

        if len(distinct) == 1 or not constraints:
            entries.append(_entry(distinct[0], constraints, ledger, conflict=False))
            continue

        satisfying = satisfying_all(
            constraints,
            distinct,
            key=lambda node: node.version.version,
            package_id=package_id,
        )
        winner = highest(satisfying, key=lambda node: node.version.version)
        if winner is not None:
            entries.append(_entry(winner, constraints, ledger, conflict=False))
            continue

        logger.info(
            "No version satisfies every constraint",
            package_id=package_id,
            versions=[node.version.version for node in distinct],
            constraints=constraints,
        )
        entries.extend(_entry(node, constraints, ledger, conflict=True) for node in distinct)

    return entries


def _distinct_versions(group: list[TreeNode]) -> list[TreeNode]:
    seen: set[int] = set()
    distinct = []
    for node in group:
        if node.version.id not in seen:
            seen.add(node.version.id)
            distinct.append(node)
    return distinct


def _entry(node: TreeNode, constraints: list[str], ledger: ConstraintLedger, conflict: bool) -> InstallEntry:
    return InstallEntry(
        package=node.package,
        version=node.version,
        conflict=conflict,
        constraints=constraints,
        dependencies=fold(node.children, ledger),
    )
