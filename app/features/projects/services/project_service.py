import secrets
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.projects.models.project import Project
from app.features.projects.schemas.project import (
    ProjectCreate,
    ProjectKeysResponse,
    ProjectResponse,
    ProjectSettings,
    ProjectUpdate,
)
from app.features.referral.models.referral import ReferralEdge
from app.features.referral.models.social_share import SocialShareClaim
from app.features.waitlist.models.event import WaitlistEvent
from app.features.waitlist.models.waitlist import WaitlistEntry
from app.platform.exceptions import InvariantViolation, ProjectNotFound
from app.platform.logger import get_logger

logger = get_logger(__name__)

API_KEY_PREFIX = "wr_pk_"
SECRET_KEY_PREFIX = "wr_sk_"


def generate_api_key() -> str:
    return API_KEY_PREFIX + secrets.token_urlsafe(24)


def generate_secret_key() -> str:
    return SECRET_KEY_PREFIX + secrets.token_urlsafe(32)


def load_settings(project: Project) -> ProjectSettings:
    """Parse the stored settings JSON. Unreadable settings are an invariant violation."""
    if not project.settings_json:
        return ProjectSettings()
    try:
        return ProjectSettings.model_validate_json(project.settings_json)
    except PydanticValidationError as exc:
        logger.exception(f"Malformed settings stored for project {project.id}")
        raise InvariantViolation("Project settings are malformed", project_id=project.id) from exc


def to_response(project: Project, include_secret: bool = False) -> ProjectResponse:
    payload = dict(
        id=project.id,
        name=project.name,
        description=project.description,
        api_key=project.api_key,
        settings=load_settings(project),
        total_entries=project.total_entries,
        is_active=project.is_active,
        created_at=project.created_at,
    )
    if include_secret:
        return ProjectKeysResponse(secret_key=project.secret_key, **payload)
    return ProjectResponse(**payload)


class ProjectService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_project(self, owner_id: str, data: ProjectCreate) -> Project:
        project = Project(
            user_id=owner_id,
            name=data.name.strip(),
            description=data.description,
            api_key=generate_api_key(),
            secret_key=generate_secret_key(),
            settings_json=data.settings.model_dump_json(),
            next_join_index=0,
            total_entries=0,
            is_active=True,
        )
        self.db.add(project)
        await self.db.commit()
        await self.db.refresh(project)

        logger.info(f"Created project {project.id} for owner {owner_id}")
        return project

    async def list_projects(self, owner_id: str) -> List[Project]:
        result = await self.db.execute(
            select(Project).where(Project.user_id == owner_id).order_by(Project.created_at)
        )
        return list(result.scalars().all())

    async def get_project_for_owner(self, project_id: str, owner_id: str) -> Project:
        """Projects of other owners are reported as missing, not forbidden."""
        result = await self.db.execute(
            select(Project).where(Project.id == project_id, Project.user_id == owner_id)
        )
        project = result.scalar_one_or_none()
        if project is None:
            raise ProjectNotFound(project_id=project_id)
        return project

    async def get_active_project_by_api_key(self, api_key: str) -> Optional[Project]:
        result = await self.db.execute(
            select(Project).where(Project.api_key == api_key, Project.is_active.is_(True))
        )
        return result.scalar_one_or_none()

    async def update_project(self, project: Project, data: ProjectUpdate) -> Project:
        """Settings are not touched here: they change through WaitlistService.update_settings."""
        if data.name is not None:
            project.name = data.name.strip()
        if data.description is not None:
            project.description = data.description
        if data.is_active is not None:
            project.is_active = data.is_active

        await self.db.commit()
        await self.db.refresh(project)
        return project

    async def rotate_keys(self, project: Project) -> Project:
        project.api_key = generate_api_key()
        project.secret_key = generate_secret_key()
        await self.db.commit()
        await self.db.refresh(project)

        logger.info(f"Rotated API keys for project {project.id}")
        return project

    async def delete_project(self, project: Project) -> None:
        """Hard delete: the project's entries, referrals, share claims and events go with it."""
        project_id = project.id
        try:
            for model in (WaitlistEvent, SocialShareClaim, ReferralEdge, WaitlistEntry):
                await self.db.execute(delete(model).where(model.project_id == project_id))
            await self.db.execute(delete(Project).where(Project.id == project_id))
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Deleted project {project_id}")
