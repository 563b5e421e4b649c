from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.referral.models.referral import ReferralEdge, ReferralVerificationMethod
from app.features.waitlist.models.waitlist import WaitlistEntry
from app.platform.exceptions import (
    DuplicateReferral,
    EntryNotFound,
    ReferralNotFound,
    SelfReferral,
    UnknownReferrer,
)
from app.platform.logger import get_logger

logger = get_logger(__name__)


class ReferralLedger:
    """
    Referrer -> referee edges of every project.

    Flushes but never commits: the waitlist aggregate owns the transaction and the
    score side effects of every change made here.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _entry_exists(self, project_id: str, username: str) -> bool:
        result = await self.db.execute(
            select(WaitlistEntry.id).where(
                WaitlistEntry.project_id == project_id,
                WaitlistEntry.username == username,
            )
        )
        return result.first() is not None

    async def get_edge(self, project_id: str, edge_id: str) -> ReferralEdge:
        result = await self.db.execute(
            select(ReferralEdge).where(ReferralEdge.id == edge_id, ReferralEdge.project_id == project_id)
        )
        edge = result.scalar_one_or_none()
        if edge is None:
            raise ReferralNotFound(edge_id=edge_id)
        return edge

    async def find_by_referee(self, project_id: str, referee_username: str) -> Optional[ReferralEdge]:
        result = await self.db.execute(
            select(ReferralEdge).where(
                ReferralEdge.project_id == project_id,
                ReferralEdge.referee_username == referee_username.lower(),
            )
        )
        return result.scalar_one_or_none()

    async def record_referral(
        self,
        project_id: str,
        referrer_username: str,
        referee_username: str,
        method: ReferralVerificationMethod = ReferralVerificationMethod.invite_code,
    ) -> ReferralEdge:
        """
        Create an unverified edge. The first referrer wins: a referee that already has
        an edge raises DuplicateReferral and the ledger is left untouched.
        """
        referrer = referrer_username.strip().lower()
        referee = referee_username.strip().lower()

        if referrer == referee:
            logger.warning(f"Rejected self-referral by {referee} in project {project_id}")
            raise SelfReferral(username=referee)

        await self.db.flush()
        if not await self._entry_exists(project_id, referrer):
            raise UnknownReferrer(referrer=referrer)
        if not await self._entry_exists(project_id, referee):
            raise EntryNotFound(username=referee)

        existing = await self.find_by_referee(project_id, referee)
        if existing is not None:
            logger.warning(
                f"Rejected duplicate referral of {referee} by {referrer}: "
                f"already referred by {existing.referrer_username}"
            )
            raise DuplicateReferral(referee=referee, referrer=existing.referrer_username)

        edge = ReferralEdge(
            project_id=project_id,
            referrer_username=referrer,
            referee_username=referee,
            is_verified=False,
            verification_method=method,
        )
        self.db.add(edge)
        await self.db.flush()
        return edge

    async def verify(
        self,
        edge: ReferralEdge,
        method: ReferralVerificationMethod = ReferralVerificationMethod.manual,
        verified_at: Optional[datetime] = None,
    ) -> bool:
        """Mark the edge verified. Returns False when it already was."""
        if edge.is_verified:
            return False
        edge.is_verified = True
        edge.verification_method = method
        edge.verified_at = verified_at or datetime.now(timezone.utc)
        await self.db.flush()
        return True

    async def revoke(self, edge: ReferralEdge) -> bool:
        """Withdraw verification. Returns False when the edge was not verified."""
        if not edge.is_verified:
            return False
        edge.is_verified = False
        edge.verified_at = None
        await self.db.flush()
        return True

    async def count_verified(self, project_id: str, username: str) -> int:
        result = await self.db.execute(
            select(func.count(ReferralEdge.id)).where(
                ReferralEdge.project_id == project_id,
                ReferralEdge.referrer_username == username,
                ReferralEdge.is_verified.is_(True),
            )
        )
        return result.scalar_one()

    async def verified_counts(self, project_id: str) -> Dict[str, int]:
        """Verified referrals per referrer, for project-wide rescoring."""
        result = await self.db.execute(
            select(ReferralEdge.referrer_username, func.count(ReferralEdge.id))
            .where(ReferralEdge.project_id == project_id, ReferralEdge.is_verified.is_(True))
            .group_by(ReferralEdge.referrer_username)
        )
        return {username: count for username, count in result.all()}

    async def list_edges(
        self,
        project_id: str,
        referrer_username: Optional[str] = None,
        is_verified: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[ReferralEdge], int]:
        filters = [ReferralEdge.project_id == project_id]
        if referrer_username:
            filters.append(ReferralEdge.referrer_username == referrer_username.lower())
        if is_verified is not None:
            filters.append(ReferralEdge.is_verified.is_(is_verified))

        total = (await self.db.execute(select(func.count(ReferralEdge.id)).where(*filters))).scalar_one()
        result = await self.db.execute(
            select(ReferralEdge)
            .where(*filters)
            .order_by(ReferralEdge.created_at, ReferralEdge.id)
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total
