"""Repository for project records (read-only; projects are managed elsewhere)."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from deployhub.errors import NotFoundError
from deployhub.models.project import Project


class ProjectRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_id(self, project_id: str, owner_id: str) -> Project:
        result = await self.session.execute(
            select(Project).where(Project.id == project_id, Project.owner_id == owner_id)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError(f"Project '{project_id}' not found")
        return row
