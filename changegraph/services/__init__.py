"""
Project and record type services.
"""

from .projects import ProjectService
from .record_types import RecordTypeService

__all__ = ["ProjectService", "RecordTypeService"]
