from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.projects.dependencies.project import get_owned_project
from app.features.projects.models.project import Project
from app.features.referral.models.social_share import ShareStatus
from app.features.referral.schemas.referral import (
    ReferralCreate,
    ReferralResponse,
    ReferralVerifyRequest,
    ShareClaimResponse,
    ShareVerifyRequest,
)
from app.features.referral.services.referral_ledger import ReferralLedger
from app.features.referral.services.share_verifier import SocialShareVerifier
from app.features.waitlist.services.waitlist import WaitlistService
from app.platform.db.session import get_db
from app.platform.response import api_response
from app.platform.schemas import Page

router = APIRouter(prefix="/projects/{project_id}", tags=["Referrals"])


@router.get("/referrals", response_model=dict, summary="List referrals")
async def list_referrals(
    referrer: Optional[str] = Query(None, description="Only referrals made by this username"),
    verified: Optional[bool] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    project: Project = Depends(get_owned_project),
    db: AsyncSession = Depends(get_db),
):
    edges, total = await ReferralLedger(db).list_edges(
        project.id, referrer_username=referrer, is_verified=verified, limit=limit, offset=offset
    )
    return api_response(
        data=Page(items=[ReferralResponse.model_validate(edge) for edge in edges], total=total, limit=limit, offset=offset),
        message="Referrals retrieved successfully",
    )


@router.post(
    "/referrals",
    response_model=dict,
    status_code=status.HTTP_201_CREATED,
    summary="Record a referral",
)
async def create_referral(
    request: ReferralCreate,
    project: Project = Depends(get_owned_project),
    db: AsyncSession = Depends(get_db),
):
    """
    Attribute an existing entry to a referrer. A referee can only ever have one
    referrer; a second attempt returns 409.
    """
    edge = await WaitlistService(db).record_referral(
        project.id, request.referrer_username, request.referee_username, verify=request.verify
    )
    return api_response(
        data=ReferralResponse.model_validate(edge),
        message="Referral recorded",
        status_code=status.HTTP_201_CREATED,
    )


@router.post("/referrals/{edge_id}/verify", response_model=dict, summary="Verify a referral")
async def verify_referral(
    edge_id: str,
    request: Optional[ReferralVerifyRequest] = None,
    project: Project = Depends(get_owned_project),
    db: AsyncSession = Depends(get_db),
):
    """Credits the referrer once; verifying again is a no-op."""
    request = request or ReferralVerifyRequest()
    edge = await WaitlistService(db).verify_referral(project.id, edge_id, request.method)
    return api_response(data=ReferralResponse.model_validate(edge), message="Referral verified")


@router.post("/referrals/{edge_id}/revoke", response_model=dict, summary="Revoke a referral")
async def revoke_referral(
    edge_id: str,
    project: Project = Depends(get_owned_project),
    db: AsyncSession = Depends(get_db),
):
    edge = await WaitlistService(db).revoke_referral(project.id, edge_id)
    return api_response(data=ReferralResponse.model_validate(edge), message="Referral revoked")


@router.get("/shares", response_model=dict, summary="List share claims")
async def list_shares(
    username: Optional[str] = Query(None),
    share_status: Optional[ShareStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    project: Project = Depends(get_owned_project),
    db: AsyncSession = Depends(get_db),
):
    claims, total = await SocialShareVerifier(db).list_claims(
        project.id, username=username, status=share_status, limit=limit, offset=offset
    )
    return api_response(
        data=Page(items=[ShareClaimResponse.model_validate(claim) for claim in claims], total=total, limit=limit, offset=offset),
        message="Share claims retrieved successfully",
    )


@router.post("/shares/{claim_id}/verify", response_model=dict, summary="Verify a share claim")
async def verify_share(
    claim_id: str,
    request: Optional[ShareVerifyRequest] = None,
    project: Project = Depends(get_owned_project),
    db: AsyncSession = Depends(get_db),
):
    """
    Verify a pending claim.

    - **manual**: the owner checked the post
    - **token_verification**: **evidence** must contain the claim's verification token
    """
    request = request or ShareVerifyRequest()
    claim = await WaitlistService(db).verify_share(project.id, claim_id, request.method, request.evidence)
    return api_response(data=ShareClaimResponse.model_validate(claim), message="Share verified")


@router.post("/shares/{claim_id}/reject", response_model=dict, summary="Reject a share claim")
async def reject_share(
    claim_id: str,
    project: Project = Depends(get_owned_project),
    db: AsyncSession = Depends(get_db),
):
    claim = await WaitlistService(db).reject_share(project.id, claim_id)
    return api_response(data=ShareClaimResponse.model_validate(claim), message="Share rejected")
