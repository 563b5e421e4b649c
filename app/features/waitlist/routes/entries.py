from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.projects.dependencies.project import get_owned_project
from app.features.projects.models.project import Project
from app.features.waitlist.models.event import EventType
from app.features.waitlist.models.waitlist import EntryStatus
from app.features.waitlist.schemas.waitlist import (
    EntryResponse,
    EventResponse,
    LeaderboardItem,
    StatusChangeRequest,
)
from app.features.waitlist.services.waitlist import WaitlistService
from app.platform.db.session import get_db
from app.platform.response import api_response
from app.platform.schemas import Page

router = APIRouter(prefix="/projects/{project_id}", tags=["Waitlist Management"])


@router.get("/entries", response_model=dict, summary="List waitlist entries")
async def list_entries(
    status: Optional[EntryStatus] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    project: Project = Depends(get_owned_project),
    db: AsyncSession = Depends(get_db),
):
    """Entries in join order, optionally filtered by status."""
    entries, total = await WaitlistService(db).list_entries(project.id, status=status, limit=limit, offset=offset)
    return api_response(
        data=Page(items=[EntryResponse.from_entry(entry) for entry in entries], total=total, limit=limit, offset=offset),
        message="Entries retrieved successfully",
    )


@router.get("/entries/{username}", response_model=dict, summary="Get one waitlist entry")
async def get_entry(
    username: str,
    project: Project = Depends(get_owned_project),
    db: AsyncSession = Depends(get_db),
):
    rank = await WaitlistService(db).get_rank(project.id, username)
    return api_response(
        data=EntryResponse.from_entry(rank.entry, total_ranked=rank.total_ranked),
        message="Entry retrieved successfully",
    )


@router.patch("/entries/{username}/status", response_model=dict, summary="Change an entry's status")
async def change_entry_status(
    username: str,
    request: StatusChangeRequest,
    project: Project = Depends(get_owned_project),
    db: AsyncSession = Depends(get_db),
):
    """
    Allowed moves: active -> invited | converted | blocked, invited -> converted | blocked.
    Only active entries are ranked.
    """
    entry = await WaitlistService(db).change_status(project.id, username, request.status)
    return api_response(data=EntryResponse.from_entry(entry), message="Status updated successfully")


@router.post("/rescore", response_model=dict, summary="Rescore every entry")
async def rescore_project(
    project: Project = Depends(get_owned_project),
    db: AsyncSession = Depends(get_db),
):
    """Apply the current scoring settings to every entry and re-rank."""
    changed = await WaitlistService(db).rescore(project.id)
    return api_response(data={"changed": changed}, message="Project rescored successfully")


@router.post("/positions/recompute", response_model=dict, summary="Recompute positions")
async def recompute_positions(
    project: Project = Depends(get_owned_project),
    db: AsyncSession = Depends(get_db),
):
    ranked = await WaitlistService(db).recompute_positions(project.id)
    return api_response(
        data={"ranked": len(ranked), "top": [LeaderboardItem.from_entry(entry) for entry in ranked[:10]]},
        message="Positions recomputed successfully",
    )


@router.get("/events", response_model=dict, summary="Waitlist activity")
async def list_events(
    event_type: Optional[EventType] = Query(None),
    username: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    project: Project = Depends(get_owned_project),
    db: AsyncSession = Depends(get_db),
):
    events, total = await WaitlistService(db).list_events(
        project.id, event_type=event_type, username=username, limit=limit, offset=offset
    )
    return api_response(
        data=Page(items=[EventResponse.from_event(event) for event in events], total=total, limit=limit, offset=offset),
        message="Events retrieved successfully",
    )
