"""Resolution services built on the repository layer."""

from modcompat.services.install_set import InstallEntry, InstallPlan, InstallSetResolver
from modcompat.services.pinning import PinningPropagator, PinningReport
from modcompat.services.resolver import ResolutionResult, VersionResolver
from modcompat.services.tree import (
    ConstraintLedger,
    DependencyTree,
    DependencyTreeBuilder,
    TreeNode,
)

__all__ = [
    "ConstraintLedger",
    "DependencyTree",
    "DependencyTreeBuilder",
    "InstallEntry",
    "InstallPlan",
    "InstallSetResolver",
    "PinningPropagator",
    "PinningReport",
    "ResolutionResult",
    "TreeNode",
    "VersionResolver",
]
