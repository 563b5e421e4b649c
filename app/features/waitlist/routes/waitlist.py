from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.projects.dependencies.project import get_project_for_api_key
from app.features.projects.models.project import Project
from app.features.referral.schemas.referral import ShareClaimRequest, ShareClaimResponse
from app.features.waitlist.schemas.waitlist import (
    JoinWaitlistRequest,
    LeaderboardItem,
    PublicEntryResponse,
)
from app.features.waitlist.services.waitlist import WaitlistService
from app.platform.db.session import get_db
from app.platform.response import api_response
from app.platform.schemas import Page
from app.platform.services.email_validation import ensure_deliverable

router = APIRouter(prefix="/waitlist", tags=["Waitlist"])


@router.post(
    "/join",
    response_model=dict,
    status_code=status.HTTP_201_CREATED,
    summary="Join a project's waitlist",
)
async def join_waitlist(
    request: JoinWaitlistRequest,
    project: Project = Depends(get_project_for_api_key),
    db: AsyncSession = Depends(get_db),
):
    """
    Join the waitlist of the project identified by the X-API-Key header.

    - The email must be deliverable
    - **referral_code** is the invite code of an existing entry in the same project
    - The response carries the new entry's invite code and starting position
    """
    await ensure_deliverable(request.email)

    service = WaitlistService(db)
    entry = await service.join(
        project.id,
        username=request.username,
        email=request.email,
        referral_code=request.referral_code,
        metadata=request.metadata,
        tags=request.tags,
    )
    rank = await service.get_rank(project.id, entry.username)

    return api_response(
        data=PublicEntryResponse.from_entry(entry, total_ranked=rank.total_ranked),
        message="Successfully joined the waitlist",
        status_code=status.HTTP_201_CREATED,
    )


@router.get("/entries/{username}", response_model=dict, summary="Look up a waitlist position")
async def get_entry_position(
    username: str,
    project: Project = Depends(get_project_for_api_key),
    db: AsyncSession = Depends(get_db),
):
    rank = await WaitlistService(db).get_rank(project.id, username)
    return api_response(
        data=PublicEntryResponse.from_entry(rank.entry, total_ranked=rank.total_ranked),
        message="Entry retrieved successfully",
    )


@router.get("/leaderboard", response_model=dict, summary="Top of the waitlist")
async def get_leaderboard(
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    project: Project = Depends(get_project_for_api_key),
    db: AsyncSession = Depends(get_db),
):
    entries, total = await WaitlistService(db).list_ranked(project.id, limit=limit, offset=offset)
    return api_response(
        data=Page(
            items=[LeaderboardItem.from_entry(entry) for entry in entries],
            total=total,
            limit=limit,
            offset=offset,
        ),
        message="Leaderboard retrieved successfully",
    )


@router.post(
    "/shares",
    response_model=dict,
    status_code=status.HTTP_201_CREATED,
    summary="Claim a social share",
)
async def claim_share(
    request: ShareClaimRequest,
    project: Project = Depends(get_project_for_api_key),
    db: AsyncSession = Depends(get_db),
):
    """
    Open a share claim. Put the returned verification_token in the post so the
    project owner can verify it.
    """
    claim = await WaitlistService(db).claim_share(
        project.id,
        request.username,
        request.platform,
        share_url=request.share_url,
        platform_post_id=request.platform_post_id,
    )
    return api_response(
        data=ShareClaimResponse.model_validate(claim),
        message="Share claim recorded",
        status_code=status.HTTP_201_CREATED,
    )
