"""
The tenant schema graph: contracts, snapshot, validation, package install
and environment promotion.
"""

from .builtin_packages import builtin_packages, get_builtin_package
from .contracts import (
    Binding,
    EdgeDefinition,
    FieldDefinition,
    FormNode,
    GraphDiff,
    GraphNode,
    GraphPackage,
    GraphSnapshot,
    GraphSummary,
    GraphValidationError,
    GraphValidationReport,
    RecordTypeNode,
    RecordTypeSchema,
    WorkflowNode,
)
from .install import (
    BatchInstallResult,
    InstallResult,
    PackageInstaller,
    compare_versions,
    compute_checksum,
    install_package,
    install_packages,
)
from .promotion import PromotionService
from .registry import build_graph_snapshot
from .service import GraphService
from .validation import (
    detect_cross_project_base_type,
    detect_cycles,
    detect_field_uniqueness,
    detect_orphans,
    snapshot_from_package,
    validate_bindings,
    validate_graph,
)

__all__ = [
    "Binding",
    "BatchInstallResult",
    "EdgeDefinition",
    "FieldDefinition",
    "FormNode",
    "GraphDiff",
    "GraphNode",
    "GraphPackage",
    "GraphService",
    "GraphSnapshot",
    "GraphSummary",
    "GraphValidationError",
    "GraphValidationReport",
    "InstallResult",
    "PackageInstaller",
    "PromotionService",
    "RecordTypeNode",
    "RecordTypeSchema",
    "WorkflowNode",
    "build_graph_snapshot",
    "builtin_packages",
    "compare_versions",
    "compute_checksum",
    "detect_cross_project_base_type",
    "detect_cycles",
    "detect_field_uniqueness",
    "detect_orphans",
    "get_builtin_package",
    "install_package",
    "install_packages",
    "snapshot_from_package",
    "validate_bindings",
    "validate_graph",
]
