"""
Storage package: the tenant-scoped persistence port and its SQL implementation.
"""

from .port import SchemaStorage
from .sql import SqlSchemaStorage

__all__ = ["SchemaStorage", "SqlSchemaStorage"]
