from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.auth.models.user import User
from app.features.auth.routes.auth import get_current_user
from app.features.projects.models.project import Project
from app.features.projects.services.project_service import ProjectService
from app.platform.db.session import get_db


async def get_owned_project(
    project_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Project:
    """Resolve the {project_id} path parameter to a project owned by the caller."""
    return await ProjectService(db).get_project_for_owner(project_id, current_user.id)


async def get_project_for_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    db: AsyncSession = Depends(get_db),
) -> Project:
    """
    Public widget endpoints authenticate with the project's public API key.
    Inactive projects are treated like unknown keys.
    """
    if not x_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-API-Key header",
        )

    project = await ProjectService(db).get_active_project_by_api_key(x_api_key)
    if project is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )
    return project
