"""
Database package for the change graph engine.
"""

from .base import Base, get_db, get_engine, get_session_local, init_database
from .models import (
    ChangeModel,
    ChangeTargetModel,
    EnvironmentModel,
    GraphPackageInstallModel,
    PatchOpModel,
    ProjectModel,
    PromotionIntentModel,
    RecordTypeModel,
    RecordTypeSnapshotModel,
    TelemetryEventModel,
)

__all__ = [
    "Base",
    "get_db",
    "get_engine",
    "get_session_local",
    "init_database",
    "ChangeModel",
    "ChangeTargetModel",
    "EnvironmentModel",
    "GraphPackageInstallModel",
    "PatchOpModel",
    "ProjectModel",
    "PromotionIntentModel",
    "RecordTypeModel",
    "RecordTypeSnapshotModel",
    "TelemetryEventModel",
]
