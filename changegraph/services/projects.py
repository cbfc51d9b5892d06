"""
Project service.
"""

from typing import List, Optional

import structlog

from ..db.models import ProjectModel
from ..storage.port import SchemaStorage

logger = structlog.get_logger()


class ProjectService:
    """Service for managing Projects."""

    def __init__(self, storage: SchemaStorage):
        self.storage = storage

    def create_project(self, name: str, description: Optional[str] = None) -> ProjectModel:
        """Create a new Project."""
        project = self.storage.create_project(name=name, description=description)
        logger.info(
            "project_created", tenant_id=self.storage.ctx.tenant_id, project_id=project.id
        )
        return project

    def get(self, project_id: str) -> Optional[ProjectModel]:
        """Get a Project by ID."""
        return self.storage.get_project_by_id(project_id)

    def list(self) -> List[ProjectModel]:
        """List Projects."""
        return self.storage.get_projects()
