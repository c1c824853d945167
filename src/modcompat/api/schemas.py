"""Pydantic response models for the resolution API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from modcompat.models import PackageKind
from modcompat.services import DependencyTree, InstallEntry, InstallPlan, ResolutionResult, TreeNode


class PackageModel(BaseModel):
    """Package summary."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    kind: PackageKind
    name: str
    slug: str
    guid: str | None = None


class VersionModel(BaseModel):
    """Package version summary."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    package_id: int
    version: str
    published_at: datetime | None = None


class ResolutionOut(BaseModel):
    version_id: int
    kind: PackageKind
    resolved_dependencies: dict[int, int | None] = Field(
        description="Dependency id to resolved version id; null when nothing matches"
    )
    platform_version_id: int | None = None
    compatible_version_ids: list[int] = Field(default_factory=list)
    writes: int = Field(description="Rows inserted, updated or deleted by this run")

    @classmethod
    def from_result(cls, result: ResolutionResult) -> ResolutionOut:
        return cls(
            version_id=result.version_id,
            kind=result.kind,
            resolved_dependencies=result.resolved_dependencies,
            platform_version_id=result.platform_version_id,
            compatible_version_ids=result.compatible_version_ids,
            writes=result.writes,
        )


class TreeNodeOut(BaseModel):
    package: PackageModel
    version: VersionModel
    constraints: list[str]
    cycle: bool = Field(False, description="The version already appears higher on this path")
    dependencies: list[TreeNodeOut] = Field(default_factory=list)

    @classmethod
    def from_node(cls, node: TreeNode) -> TreeNodeOut:
        return cls(
            package=PackageModel.model_validate(node.package),
            version=VersionModel.model_validate(node.version),
            constraints=node.constraints,
            cycle=node.cycle,
            dependencies=[cls.from_node(child) for child in node.children],
        )


class DependencyTreeOut(BaseModel):
    package: PackageModel
    version: VersionModel
    dependencies: list[TreeNodeOut]
    constraints: dict[int, list[str]] = Field(
        description="Every constraint seen per package id across the whole tree"
    )
    compatible_versions: list[VersionModel] = Field(
        default_factory=list,
        description="Addon roots only: compatible host mod versions",
    )

    @classmethod
    def from_tree(cls, tree: DependencyTree) -> DependencyTreeOut:
        return cls(
            package=PackageModel.model_validate(tree.root.package),
            version=VersionModel.model_validate(tree.root),
            dependencies=[TreeNodeOut.from_node(node) for node in tree.nodes],
            constraints=tree.constraints.as_dict(),
            compatible_versions=[VersionModel.model_validate(v) for v in tree.compatible_hosts],
        )


class InstallEntryOut(BaseModel):
    package: PackageModel
    version: VersionModel
    conflict: bool
    constraints: list[str]
    dependencies: list[InstallEntryOut] = Field(default_factory=list)

    @classmethod
    def from_entry(cls, entry: InstallEntry) -> InstallEntryOut:
        return cls(
            package=PackageModel.model_validate(entry.package),
            version=VersionModel.model_validate(entry.version),
            conflict=entry.conflict,
            constraints=entry.constraints,
            dependencies=[cls.from_entry(child) for child in entry.dependencies],
        )


class InstallPlanOut(BaseModel):
    requested: list[VersionModel]
    dependencies: list[InstallEntryOut]
    has_conflicts: bool

    @classmethod
    def from_plan(cls, plan: InstallPlan) -> InstallPlanOut:
        return cls(
            requested=[VersionModel.model_validate(v) for v in plan.requested],
            dependencies=[InstallEntryOut.from_entry(entry) for entry in plan.entries],
            has_conflicts=plan.has_conflicts,
        )
