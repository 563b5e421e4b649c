from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.referral.models.social_share import (
    SharePlatform,
    ShareStatus,
    ShareVerificationMethod,
    SocialShareClaim,
)
from app.features.waitlist.models.waitlist import WaitlistEntry
from app.features.waitlist.utils.codes import generate_unique_code
from app.platform.exceptions import (
    AlreadyVerified,
    ClaimNotFound,
    DuplicateClaim,
    EntryNotFound,
    InvalidTransitionError,
    ValidationError,
)
from app.platform.logger import get_logger

logger = get_logger(__name__)

TOKEN_PREFIX = "WR-"
TOKEN_LENGTH = 10


class SocialShareVerifier:
    """
    Share claims and their pending -> verified | rejected lifecycle.

    Like the referral ledger it flushes and leaves commit/rollback to the aggregate.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _token_taken(self, token: str) -> bool:
        result = await self.db.execute(
            select(SocialShareClaim.id).where(SocialShareClaim.verification_token == token)
        )
        return result.first() is not None

    async def get_claim(self, project_id: str, claim_id: str) -> SocialShareClaim:
        result = await self.db.execute(
            select(SocialShareClaim).where(
                SocialShareClaim.id == claim_id,
                SocialShareClaim.project_id == project_id,
            )
        )
        claim = result.scalar_one_or_none()
        if claim is None:
            raise ClaimNotFound(claim_id=claim_id)
        return claim

    async def claim(
        self,
        project_id: str,
        username: str,
        platform: SharePlatform,
        share_url: Optional[str] = None,
        platform_post_id: Optional[str] = None,
    ) -> SocialShareClaim:
        """Open a pending claim with a fresh token. One pending claim per user and platform."""
        username = username.strip().lower()

        entry_result = await self.db.execute(
            select(WaitlistEntry.id).where(
                WaitlistEntry.project_id == project_id,
                WaitlistEntry.username == username,
            )
        )
        if entry_result.first() is None:
            raise EntryNotFound(username=username)

        pending = await self.db.execute(
            select(SocialShareClaim.id).where(
                SocialShareClaim.project_id == project_id,
                SocialShareClaim.username == username,
                SocialShareClaim.platform == platform,
                SocialShareClaim.status == ShareStatus.pending,
            )
        )
        if pending.first() is not None:
            raise DuplicateClaim(username=username, platform=platform.value)

        token = await generate_unique_code(self._token_taken, prefix=TOKEN_PREFIX, length=TOKEN_LENGTH)
        claim = SocialShareClaim(
            project_id=project_id,
            username=username,
            platform=platform,
            share_url=share_url,
            platform_post_id=platform_post_id,
            verification_token=token,
            status=ShareStatus.pending,
            is_verified=False,
            verification_method=ShareVerificationMethod.token_verification,
        )
        self.db.add(claim)
        await self.db.flush()
        return claim

    async def verify(
        self,
        claim: SocialShareClaim,
        method: ShareVerificationMethod = ShareVerificationMethod.manual,
        evidence: Optional[str] = None,
        verified_at: Optional[datetime] = None,
    ) -> SocialShareClaim:
        if claim.is_verified:
            raise AlreadyVerified(claim_id=claim.id)
        if claim.status == ShareStatus.rejected:
            raise InvalidTransitionError(
                "Rejected share claims cannot be verified",
                claim_id=claim.id,
                from_status=claim.status.value,
                to_status=ShareStatus.verified.value,
            )
        if method == ShareVerificationMethod.token_verification:
            if not evidence or claim.verification_token not in evidence:
                logger.warning(f"Share claim {claim.id} evidence does not contain its token")
                raise ValidationError("The shared post does not contain the verification token", claim_id=claim.id)

        claim.status = ShareStatus.verified
        claim.is_verified = True
        claim.verification_method = method
        claim.verified_at = verified_at or datetime.now(timezone.utc)
        await self.db.flush()
        return claim

    async def reject(self, claim: SocialShareClaim) -> SocialShareClaim:
        if claim.status != ShareStatus.pending:
            raise InvalidTransitionError(
                "Only pending share claims can be rejected",
                claim_id=claim.id,
                from_status=claim.status.value,
                to_status=ShareStatus.rejected.value,
            )
        claim.status = ShareStatus.rejected
        await self.db.flush()
        return claim

    async def count_verified(self, project_id: str, username: str) -> int:
        result = await self.db.execute(
            select(func.count(SocialShareClaim.id)).where(
                SocialShareClaim.project_id == project_id,
                SocialShareClaim.username == username,
                SocialShareClaim.is_verified.is_(True),
            )
        )
        return result.scalar_one()

    async def verified_counts(self, project_id: str) -> Dict[str, int]:
        result = await self.db.execute(
            select(SocialShareClaim.username, func.count(SocialShareClaim.id))
            .where(SocialShareClaim.project_id == project_id, SocialShareClaim.is_verified.is_(True))
            .group_by(SocialShareClaim.username)
        )
        return {username: count for username, count in result.all()}

    async def list_claims(
        self,
        project_id: str,
        username: Optional[str] = None,
        status: Optional[ShareStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[SocialShareClaim], int]:
        filters = [SocialShareClaim.project_id == project_id]
        if username:
            filters.append(SocialShareClaim.username == username.lower())
        if status is not None:
            filters.append(SocialShareClaim.status == status)

        total = (await self.db.execute(select(func.count(SocialShareClaim.id)).where(*filters))).scalar_one()
        result = await self.db.execute(
            select(SocialShareClaim)
            .where(*filters)
            .order_by(SocialShareClaim.created_at, SocialShareClaim.id)
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total
