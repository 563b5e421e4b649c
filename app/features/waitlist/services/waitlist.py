import json
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.projects.models.project import Project
from app.features.projects.schemas.project import ProjectSettings, ReferralVerificationPolicy
from app.features.projects.services.project_service import load_settings
from app.features.referral.models.referral import ReferralEdge, ReferralVerificationMethod
from app.features.referral.models.social_share import (
    SharePlatform,
    ShareVerificationMethod,
    SocialShareClaim,
)
from app.features.referral.services.referral_ledger import ReferralLedger
from app.features.referral.services.share_verifier import SocialShareVerifier
from app.features.waitlist.models.event import EventType, WaitlistEvent
from app.features.waitlist.models.waitlist import EntryStatus, WaitlistEntry
from app.features.waitlist.services.ranking import RankMaintainer
from app.features.waitlist.services.scoring import (
    ScoreInputs,
    ScoringPolicy,
    compute_score,
    compute_time_score,
)
from app.features.waitlist.utils.codes import generate_unique_code
from app.platform.db.base import utcnow
from app.platform.exceptions import (
    AlreadyVerified,
    DuplicateEntry,
    EntryNotFound,
    InvalidStatusTransition,
    InvariantViolation,
    ProjectNotFound,
    UnknownReferrer,
)
from app.platform.logger import get_logger
from app.platform.utils.locks import KeyedLock, project_locks

logger = get_logger(__name__)

ALLOWED_TRANSITIONS = {
    EntryStatus.active: {EntryStatus.invited, EntryStatus.converted, EntryStatus.blocked},
    EntryStatus.invited: {EntryStatus.converted, EntryStatus.blocked},
}

# scores of these entries never change again
SCORE_FROZEN_STATUSES = {EntryStatus.blocked}


def scoring_policy(project_settings: ProjectSettings) -> ScoringPolicy:
    return ScoringPolicy(
        referral_points=project_settings.referral_points,
        share_points=project_settings.share_points,
        early_bird_bonus=project_settings.early_bird_bonus,
        early_bird_window_days=project_settings.early_bird_window_days,
    )


@dataclass(frozen=True)
class RankInfo:
    entry: WaitlistEntry
    position: Optional[int]
    total_ranked: int


class WaitlistService:
    """
    The waitlist aggregate: every state change of a project's waitlist goes through here.

    Mutating operations run as one unit of work per project: the in-process project lock,
    a row lock on the project, then a single commit (or a rollback on any error), so
    scores and positions are never observed half-updated.
    """

    def __init__(
        self,
        db: AsyncSession,
        clock: Optional[Callable[[], datetime]] = None,
        locks: Optional[KeyedLock] = None,
    ):
        self.db = db
        self.clock = clock or utcnow
        self.locks = locks or project_locks
        self.ledger = ReferralLedger(db)
        self.shares = SocialShareVerifier(db)
        self.ranks = RankMaintainer(db)

    # ── Unit of work ────────────────────────────

    @asynccontextmanager
    async def _project_transaction(self, project_id: str):
        async with self.locks.hold(project_id):
            try:
                result = await self.db.execute(
                    select(Project)
                    .where(Project.id == project_id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                )
                project = result.scalar_one_or_none()
                if project is None:
                    raise ProjectNotFound(project_id=project_id)
                yield project
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

    def _record_event(
        self,
        project_id: str,
        event_type: EventType,
        username: Optional[str] = None,
        **details: Any,
    ) -> None:
        self.db.add(
            WaitlistEvent(
                project_id=project_id,
                event_type=event_type,
                username=username,
                details=json.dumps(details, default=str) if details else None,
            )
        )

    # ── Lookups ─────────────────────────────────

    async def get_entry(self, project_id: str, username: str) -> WaitlistEntry:
        result = await self.db.execute(
            select(WaitlistEntry).where(
                WaitlistEntry.project_id == project_id,
                WaitlistEntry.username == username.strip().lower(),
            )
        )
        entry = result.scalar_one_or_none()
        if entry is None:
            raise EntryNotFound(username=username)
        return entry

    async def _get_credited_entry(self, project_id: str, username: str) -> WaitlistEntry:
        # edges and claims only ever point at existing entries
        try:
            return await self.get_entry(project_id, username)
        except EntryNotFound:
            logger.error(f"Project {project_id} has ledger rows for missing entry {username}")
            raise InvariantViolation("Ledger references a missing waitlist entry", username=username)

    async def _invite_code_taken(self, code: str) -> bool:
        result = await self.db.execute(select(WaitlistEntry.id).where(WaitlistEntry.invite_code == code))
        return result.first() is not None

    # ── Scoring helpers ─────────────────────────

    def _rescore_entry(self, entry: WaitlistEntry, policy: ScoringPolicy) -> bool:
        if entry.status in SCORE_FROZEN_STATUSES:
            return False
        score = compute_score(ScoreInputs.from_entry(entry), policy)
        changed = score != entry.priority_score
        entry.priority_score = score
        return changed

    async def _refresh_referral_credit(self, project_id: str, username: str, policy: ScoringPolicy) -> WaitlistEntry:
        entry = await self._get_credited_entry(project_id, username)
        entry.verified_referrals_count = await self.ledger.count_verified(project_id, entry.username)
        self._rescore_entry(entry, policy)
        return entry

    async def _refresh_share_credit(self, project_id: str, username: str, policy: ScoringPolicy) -> WaitlistEntry:
        entry = await self._get_credited_entry(project_id, username)
        entry.verified_shares_count = await self.shares.count_verified(project_id, entry.username)
        self._rescore_entry(entry, policy)
        return entry

    # ── Join ────────────────────────────────────

    async def join(
        self,
        project_id: str,
        *,
        username: str,
        email: str,
        referral_code: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        tags: Optional[List[str]] = None,
    ) -> WaitlistEntry:
        """
        Add a user to the project's waitlist.

        Takes the next join_index from the project sequence, scores the entry, records
        the referral edge when an invite code was used (verified straight away under the
        optimistic policy) and ranks the project.
        """
        display_username = username.strip()
        username = display_username.lower()
        email = email.strip().lower()

        async with self._project_transaction(project_id) as project:
            project_settings = load_settings(project)
            policy = scoring_policy(project_settings)

            existing = await self.db.execute(
                select(WaitlistEntry.username, WaitlistEntry.email).where(
                    WaitlistEntry.project_id == project_id,
                    or_(WaitlistEntry.username == username, WaitlistEntry.email == email),
                )
            )
            clash = existing.first()
            if clash is not None:
                field = "username" if clash.username == username else "email"
                logger.warning(f"Duplicate {field} on join to project {project_id}")
                raise DuplicateEntry(field=field)

            referrer = None
            if referral_code:
                result = await self.db.execute(
                    select(WaitlistEntry).where(
                        WaitlistEntry.project_id == project_id,
                        WaitlistEntry.invite_code == referral_code.strip().upper(),
                    )
                )
                referrer = result.scalar_one_or_none()
                if referrer is None:
                    logger.warning(f"Unknown referral code used on join to project {project_id}")
                    raise UnknownReferrer(referral_code=referral_code)

            join_index = project.next_join_index
            project.next_join_index = join_index + 1
            project.total_entries = (project.total_entries or 0) + 1

            now = self.clock()
            entry = WaitlistEntry(
                project_id=project_id,
                username=username,
                display_username=display_username,
                email=email,
                extra_metadata=json.dumps(metadata) if metadata else None,
                tags=json.dumps(tags) if tags else None,
                referred_by=referrer.username if referrer else None,
                invite_code=await generate_unique_code(self._invite_code_taken),
                is_email_verified=False,
                join_index=join_index,
                total_at_join=join_index + 1,
                time_score=compute_time_score(now, project.created_at, policy),
                verified_referrals_count=0,
                verified_shares_count=0,
                status=EntryStatus.active,
                status_changed_at=now,
                created_at=now,
                updated_at=now,
            )
            entry.priority_score = compute_score(ScoreInputs.from_entry(entry), policy)
            self.db.add(entry)
            try:
                await self.db.flush()
            except IntegrityError as exc:
                logger.warning(f"Join to project {project_id} hit a unique constraint: {exc.orig}")
                raise DuplicateEntry() from exc

            self._record_event(project_id, EventType.joined, username, join_index=join_index)

            if referrer is not None:
                edge = await self.ledger.record_referral(project_id, referrer.username, username)
                self._record_event(project_id, EventType.referred, referrer.username, referee=username)
                if project_settings.referral_verification_policy == ReferralVerificationPolicy.optimistic:
                    await self.ledger.verify(edge, ReferralVerificationMethod.invite_code, verified_at=now)
                    await self._refresh_referral_credit(project_id, referrer.username, policy)
                    self._record_event(project_id, EventType.verified, referrer.username, referral_id=edge.id)

            await self.ranks.recompute_positions(project_id)
            entry.initial_position = entry.position

        logger.info(
            f"{username} joined project {project_id} at index {join_index}, "
            f"position {entry.position}, score {entry.priority_score}"
        )
        return entry

    # ── Referrals ───────────────────────────────

    async def record_referral(
        self,
        project_id: str,
        referrer_username: str,
        referee_username: str,
        verify: bool = False,
    ) -> ReferralEdge:
        """Attribute an existing entry to a referrer by hand."""
        async with self._project_transaction(project_id) as project:
            policy = scoring_policy(load_settings(project))
            edge = await self.ledger.record_referral(
                project_id, referrer_username, referee_username, ReferralVerificationMethod.manual
            )
            referee = await self.get_entry(project_id, edge.referee_username)
            if referee.referred_by is None:
                referee.referred_by = edge.referrer_username
            self._record_event(project_id, EventType.referred, edge.referrer_username, referee=edge.referee_username)

            if verify:
                await self.ledger.verify(edge, ReferralVerificationMethod.manual, verified_at=self.clock())
                await self._refresh_referral_credit(project_id, edge.referrer_username, policy)
                self._record_event(project_id, EventType.verified, edge.referrer_username, referral_id=edge.id)
                await self.ranks.recompute_positions(project_id)

        logger.info(f"Recorded referral {edge.referrer_username} -> {edge.referee_username} in project {project_id}")
        return edge

    async def verify_referral(
        self,
        project_id: str,
        edge_id: str,
        method: ReferralVerificationMethod = ReferralVerificationMethod.manual,
    ) -> ReferralEdge:
        """Idempotent: verifying twice credits the referrer once."""
        async with self._project_transaction(project_id) as project:
            edge = await self.ledger.get_edge(project_id, edge_id)
            if not await self.ledger.verify(edge, method, verified_at=self.clock()):
                logger.info(f"Referral {edge_id} already verified")
                return edge

            policy = scoring_policy(load_settings(project))
            await self._refresh_referral_credit(project_id, edge.referrer_username, policy)
            self._record_event(project_id, EventType.verified, edge.referrer_username, referral_id=edge.id)
            await self.ranks.recompute_positions(project_id)

        logger.info(f"Verified referral {edge.referrer_username} -> {edge.referee_username}")
        return edge

    async def revoke_referral(self, project_id: str, edge_id: str) -> ReferralEdge:
        async with self._project_transaction(project_id) as project:
            edge = await self.ledger.get_edge(project_id, edge_id)
            if not await self.ledger.revoke(edge):
                return edge

            policy = scoring_policy(load_settings(project))
            await self._refresh_referral_credit(project_id, edge.referrer_username, policy)
            self._record_event(
                project_id,
                EventType.revoked,
                edge.referrer_username,
                referral_id=edge.id,
                referee=edge.referee_username,
            )
            await self.ranks.recompute_positions(project_id)

        logger.info(f"Revoked referral {edge.referrer_username} -> {edge.referee_username}")
        return edge

    # ── Social shares ───────────────────────────

    async def claim_share(
        self,
        project_id: str,
        username: str,
        platform: SharePlatform,
        share_url: Optional[str] = None,
        platform_post_id: Optional[str] = None,
    ) -> SocialShareClaim:
        async with self._project_transaction(project_id):
            claim = await self.shares.claim(project_id, username, platform, share_url, platform_post_id)
            self._record_event(project_id, EventType.shared, claim.username, claim_id=claim.id, platform=platform.value)

        logger.info(f"{claim.username} claimed a {platform.value} share in project {project_id}")
        return claim

    async def verify_share(
        self,
        project_id: str,
        claim_id: str,
        method: ShareVerificationMethod = ShareVerificationMethod.manual,
        evidence: Optional[str] = None,
    ) -> SocialShareClaim:
        async with self._project_transaction(project_id) as project:
            claim = await self.shares.get_claim(project_id, claim_id)
            try:
                await self.shares.verify(claim, method, evidence, verified_at=self.clock())
            except AlreadyVerified:
                logger.info(f"Share claim {claim_id} already verified")
                return claim

            policy = scoring_policy(load_settings(project))
            await self._refresh_share_credit(project_id, claim.username, policy)
            self._record_event(project_id, EventType.verified, claim.username, claim_id=claim.id)
            await self.ranks.recompute_positions(project_id)

        logger.info(f"Verified {claim.platform.value} share of {claim.username} in project {project_id}")
        return claim

    async def reject_share(self, project_id: str, claim_id: str) -> SocialShareClaim:
        async with self._project_transaction(project_id):
            claim = await self.shares.get_claim(project_id, claim_id)
            await self.shares.reject(claim)

        logger.info(f"Rejected share claim {claim_id} in project {project_id}")
        return claim

    # ── Status ──────────────────────────────────

    async def change_status(self, project_id: str, username: str, new_status: EntryStatus) -> WaitlistEntry:
        async with self._project_transaction(project_id):
            entry = await self.get_entry(project_id, username)
            old_status = entry.status
            if new_status not in ALLOWED_TRANSITIONS.get(old_status, set()):
                logger.warning(f"Rejected status change {old_status.value} -> {new_status.value} for {entry.username}")
                raise InvalidStatusTransition(
                    f"Cannot move an entry from {old_status.value} to {new_status.value}",
                    from_status=old_status.value,
                    to_status=new_status.value,
                )

            entry.status = new_status
            entry.status_changed_at = self.clock()
            self._record_event(project_id, EventType(new_status.value), entry.username, from_status=old_status.value)
            await self.ranks.recompute_positions(project_id)

        logger.info(f"{entry.username} in project {project_id}: {old_status.value} -> {new_status.value}")
        return entry

    # ── Project-wide maintenance ────────────────

    async def _rescore_project(self, project: Project, policy: ScoringPolicy) -> int:
        referral_counts = await self.ledger.verified_counts(project.id)
        share_counts = await self.shares.verified_counts(project.id)

        result = await self.db.execute(select(WaitlistEntry).where(WaitlistEntry.project_id == project.id))
        changed = 0
        for entry in result.scalars().all():
            entry.verified_referrals_count = referral_counts.get(entry.username, 0)
            entry.verified_shares_count = share_counts.get(entry.username, 0)
            if entry.status in SCORE_FROZEN_STATUSES:
                continue
            entry.time_score = compute_time_score(entry.created_at, project.created_at, policy)
            if self._rescore_entry(entry, policy):
                changed += 1

        ranked = await self.ranks.recompute_positions(project.id)
        self._record_event(project.id, EventType.position_updated, rescored=changed, ranked=len(ranked))
        return changed

    async def rescore(self, project_id: str) -> int:
        """
        Re-derive time scores, verified counts and scores of every entry from the current
        project settings. Blocked entries keep their frozen score. Returns how many
        scores changed.
        """
        async with self._project_transaction(project_id) as project:
            changed = await self._rescore_project(project, scoring_policy(load_settings(project)))

        logger.info(f"Rescored project {project_id}: {changed} scores changed")
        return changed

    async def update_settings(self, project_id: str, new_settings: ProjectSettings) -> int:
        """
        Store new project settings. When the scoring weights change, every entry is
        rescored in the same commit so one ranking never mixes two policies.
        Returns how many scores changed.
        """
        async with self._project_transaction(project_id) as project:
            old_policy = scoring_policy(load_settings(project))
            new_policy = scoring_policy(new_settings)
            project.settings_json = new_settings.model_dump_json()

            changed = 0
            if new_policy != old_policy:
                changed = await self._rescore_project(project, new_policy)

        logger.info(f"Updated settings of project {project_id}: {changed} scores changed")
        return changed

    async def recompute_positions(self, project_id: str) -> List[WaitlistEntry]:
        async with self._project_transaction(project_id):
            ranked = await self.ranks.recompute_positions(project_id)
            self._record_event(project_id, EventType.position_updated, ranked=len(ranked))
        return ranked

    # ── Reads ───────────────────────────────────

    async def get_rank(self, project_id: str, username: str) -> RankInfo:
        entry = await self.get_entry(project_id, username)
        total = await self.db.execute(
            select(func.count(WaitlistEntry.id)).where(
                WaitlistEntry.project_id == project_id,
                WaitlistEntry.status == EntryStatus.active,
            )
        )
        return RankInfo(entry=entry, position=entry.position if entry.is_ranked else None, total_ranked=total.scalar_one())

    async def list_ranked(self, project_id: str, limit: int = 50, offset: int = 0) -> Tuple[List[WaitlistEntry], int]:
        filters = [WaitlistEntry.project_id == project_id, WaitlistEntry.status == EntryStatus.active]
        total = (await self.db.execute(select(func.count(WaitlistEntry.id)).where(*filters))).scalar_one()
        result = await self.db.execute(
            select(WaitlistEntry)
            .where(*filters)
            .order_by(WaitlistEntry.position, WaitlistEntry.join_index)
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total

    async def list_entries(
        self,
        project_id: str,
        status: Optional[EntryStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[WaitlistEntry], int]:
        filters = [WaitlistEntry.project_id == project_id]
        if status is not None:
            filters.append(WaitlistEntry.status == status)
        total = (await self.db.execute(select(func.count(WaitlistEntry.id)).where(*filters))).scalar_one()
        result = await self.db.execute(
            select(WaitlistEntry).where(*filters).order_by(WaitlistEntry.join_index).limit(limit).offset(offset)
        )
        return list(result.scalars().all()), total

    async def list_events(
        self,
        project_id: str,
        event_type: Optional[EventType] = None,
        username: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[WaitlistEvent], int]:
        filters = [WaitlistEvent.project_id == project_id]
        if event_type is not None:
            filters.append(WaitlistEvent.event_type == event_type)
        if username:
            filters.append(WaitlistEvent.username == username.lower())
        total = (await self.db.execute(select(func.count(WaitlistEvent.id)).where(*filters))).scalar_one()
        result = await self.db.execute(
            select(WaitlistEvent)
            .where(*filters)
            .order_by(WaitlistEvent.created_at.desc(), WaitlistEvent.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total
