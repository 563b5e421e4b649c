from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.auth.models.user import User
from app.features.auth.routes.auth import get_current_user
from app.features.projects.dependencies.project import get_owned_project
from app.features.projects.models.project import Project
from app.features.projects.schemas.project import ProjectCreate, ProjectUpdate
from app.features.projects.services.project_service import ProjectService, to_response
from app.features.waitlist.services.waitlist import WaitlistService
from app.platform.db.session import get_db
from app.platform.response import api_response

router = APIRouter(prefix="/projects", tags=["Projects"])


@router.post(
    "",
    response_model=dict,
    status_code=status.HTTP_201_CREATED,
    summary="Create a waitlist project",
)
async def create_project(
    request: ProjectCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Create a new waitlist. The response is the only time the secret key is shown
    besides key rotation.
    """
    project = await ProjectService(db).create_project(current_user.id, request)

    return api_response(
        data=to_response(project, include_secret=True),
        message="Project created successfully",
        status_code=status.HTTP_201_CREATED,
    )


@router.get("", response_model=dict, summary="List your projects")
async def list_projects(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    projects = await ProjectService(db).list_projects(current_user.id)

    return api_response(
        data=[to_response(project) for project in projects],
        message="Projects retrieved successfully",
    )


@router.get("/{project_id}", response_model=dict, summary="Get project details")
async def get_project(project: Project = Depends(get_owned_project)):
    return api_response(data=to_response(project), message="Project retrieved successfully")


@router.patch("/{project_id}", response_model=dict, summary="Update a project")
async def update_project(
    request: ProjectUpdate,
    project: Project = Depends(get_owned_project),
    db: AsyncSession = Depends(get_db),
):
    """
    Update name, description, settings or the active flag.
    A change to the scoring weights rescores every entry of the project.
    """
    if request.settings is not None:
        await WaitlistService(db).update_settings(project.id, request.settings)
    project = await ProjectService(db).update_project(project, request)
    return api_response(data=to_response(project), message="Project updated successfully")


@router.post("/{project_id}/rotate-keys", response_model=dict, summary="Rotate API keys")
async def rotate_keys(
    project: Project = Depends(get_owned_project),
    db: AsyncSession = Depends(get_db),
):
    project = await ProjectService(db).rotate_keys(project)
    return api_response(
        data=to_response(project, include_secret=True),
        message="API keys rotated successfully",
    )


@router.delete("/{project_id}", response_model=dict, summary="Delete a project and its waitlist")
async def delete_project(
    project: Project = Depends(get_owned_project),
    db: AsyncSession = Depends(get_db),
):
    await ProjectService(db).delete_project(project)
    return api_response(message="Project deleted successfully")
