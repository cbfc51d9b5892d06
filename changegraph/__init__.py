"""
changegraph

Schema change and graph integrity engine for multi-tenant record-type graphs.
"""

import importlib.metadata

__version__ = importlib.metadata.version("changegraph")

from .changes import (
    ChangeService,
    ChangeTargetService,
    ExecutionResult,
    PatchOpService,
    execute_patch_ops,
)
from .errors import (
    ConflictError,
    ForbiddenError,
    ImmutabilityError,
    InvalidTransitionError,
    NotFoundError,
    ServiceError,
    ValidationFailureError,
)
from .events import DomainEvent, DomainEventType, EventBus
from .graph import (
    GraphService,
    PackageInstaller,
    PromotionService,
    build_graph_snapshot,
    install_package,
    install_packages,
    validate_graph,
)
from .primitives import TenantContext
from .services import ProjectService, RecordTypeService
from .storage import SchemaStorage, SqlSchemaStorage

__all__ = [
    "ChangeService",
    "ChangeTargetService",
    "ConflictError",
    "DomainEvent",
    "DomainEventType",
    "EventBus",
    "ExecutionResult",
    "ForbiddenError",
    "GraphService",
    "ImmutabilityError",
    "InvalidTransitionError",
    "NotFoundError",
    "PackageInstaller",
    "PatchOpService",
    "ProjectService",
    "PromotionService",
    "RecordTypeService",
    "SchemaStorage",
    "ServiceError",
    "SqlSchemaStorage",
    "TenantContext",
    "ValidationFailureError",
    "build_graph_snapshot",
    "execute_patch_ops",
    "install_package",
    "install_packages",
    "validate_graph",
]
