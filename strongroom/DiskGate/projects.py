"""
Project lookup for DiskGate.

Project records are owned by the surrounding application; DiskGate only reads
the identity fields it needs. SqlProjectLookup keeps a local mirror of those
fields in the shared database so the gates can run on their own.
"""

from datetime import datetime
from typing import List, Optional, Protocol

from sqlalchemy import Column, DateTime, String, select
from sqlalchemy.orm import declarative_base

from strongroom.shared.db_service import create_tables, get_async_session
from strongroom.shared.gate import GateLogger

from .models import ProjectRef

_log = GateLogger.get("DiskGate.Projects")

Base = declarative_base()


class ProjectLookup(Protocol):
    """Anything that can resolve a project ID to its identity fields."""

    async def get_project(self, project_id: str) -> Optional[ProjectRef]:
        ...


class ProjectRecord(Base):
    """Mirror of the identity fields of a project."""
    __tablename__ = "projects"

    id = Column(String(64), primary_key=True)
    project_number = Column(String(32), nullable=False)
    name = Column(String(255), nullable=False)
    region = Column(String(8), nullable=False, default="AU")
    client_id = Column(String(64), nullable=True)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_ref(self) -> ProjectRef:
        return ProjectRef(
            id=self.id,
            project_number=self.project_number,
            name=self.name,
            region=self.region or "AU",
            client_id=self.client_id,
        )


def init_project_db() -> None:
    """Create the projects table if missing."""
    create_tables(Base.metadata)


class SqlProjectLookup:
    """ProjectLookup backed by the projects table."""

    async def get_project(self, project_id: str) -> Optional[ProjectRef]:
        async with get_async_session() as session:
            record = await session.get(ProjectRecord, str(project_id))
            return record.to_ref() if record else None

    async def upsert(self, project: ProjectRef) -> ProjectRef:
        """
        Insert or update a project's identity fields.

        Returns the previous identity when the record existed, otherwise the
        new one, so callers can pass both to relocate_project_folder.
        """
        async with get_async_session() as session:
            record = await session.get(ProjectRecord, project.id)
            if record is None:
                session.add(ProjectRecord(
                    id=project.id,
                    project_number=project.project_number,
                    name=project.name,
                    region=project.region,
                    client_id=project.client_id,
                ))
                _log.info(f"Registered project {project.id} ({project.folder_name})")
                return project

            previous = record.to_ref()
            record.project_number = project.project_number
            record.name = project.name
            record.region = project.region
            record.client_id = project.client_id
            return previous

    async def list_projects(self, region: Optional[str] = None) -> List[ProjectRef]:
        async with get_async_session() as session:
            stmt = select(ProjectRecord).order_by(ProjectRecord.project_number)
            if region:
                stmt = stmt.where(ProjectRecord.region == region.upper())
            result = await session.execute(stmt)
            return [r.to_ref() for r in result.scalars().all()]
