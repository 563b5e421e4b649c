from typing import Iterable, List

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.waitlist.models.waitlist import EntryStatus, WaitlistEntry
from app.platform.exceptions import InvariantViolation
from app.platform.logger import get_logger

logger = get_logger(__name__)


def rank_key(entry: WaitlistEntry):
    """Score descending, then earlier joiners first. join_index is unique per project."""
    if entry.priority_score is None:
        raise InvariantViolation("Waitlist entry has no priority score", username=entry.username)
    return (-entry.priority_score, entry.join_index)


def rank_entries(entries: Iterable[WaitlistEntry]) -> List[WaitlistEntry]:
    return sorted(entries, key=rank_key)


class RankMaintainer:
    """Keeps WaitlistEntry.position in line with the scores of one project."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def recompute_positions(self, project_id: str) -> List[WaitlistEntry]:
        """
        Rank every active entry of the project (1-based) and clear positions of
        entries that left the ranking. Idempotent; returns the ranked entries.
        """
        await self.db.flush()
        result = await self.db.execute(
            select(WaitlistEntry).where(
                WaitlistEntry.project_id == project_id,
                or_(
                    WaitlistEntry.status == EntryStatus.active,
                    WaitlistEntry.position.is_not(None),
                ),
            )
        )
        entries = result.scalars().all()

        ranked = rank_entries(entry for entry in entries if entry.is_ranked)
        moved = 0
        for position, entry in enumerate(ranked, start=1):
            if entry.position != position:
                entry.position = position
                moved += 1

        for entry in entries:
            if not entry.is_ranked and entry.position is not None:
                entry.position = None
                moved += 1

        await self.db.flush()
        if moved:
            logger.info(f"Recomputed positions for project {project_id}: {len(ranked)} ranked, {moved} moved")
        return ranked
