from decimal import Decimal
from types import SimpleNamespace

import pytest

from app.features.waitlist.models.waitlist import EntryStatus
from app.features.waitlist.services.ranking import RankMaintainer, rank_entries
from app.features.waitlist.services.waitlist import WaitlistService


def _entry(username, score, join_index):
    return SimpleNamespace(username=username, priority_score=Decimal(score), join_index=join_index)


def test_rank_entries_orders_by_score_descending():
    ranked = rank_entries([_entry("a", "10", 0), _entry("b", "30", 1), _entry("c", "20", 2)])
    assert [e.username for e in ranked] == ["b", "c", "a"]


def test_rank_entries_breaks_ties_by_join_order():
    ranked = rank_entries([_entry("late", "50", 7), _entry("early", "50", 2), _entry("mid", "50", 4)])
    assert [e.username for e in ranked] == ["early", "mid", "late"]


@pytest.mark.asyncio
async def test_recompute_positions_is_idempotent(db_session, project):
    service = WaitlistService(db_session)
    for name in ["ada", "grace", "linus", "guido"]:
        await service.join(project.id, username=name, email=f"{name}@example.com")

    maintainer = RankMaintainer(db_session)
    first = [(e.username, e.position) for e in await maintainer.recompute_positions(project.id)]
    second = [(e.username, e.position) for e in await maintainer.recompute_positions(project.id)]

    assert first == second
    assert [position for _, position in first] == [1, 2, 3, 4]


@pytest.mark.asyncio
async def test_recompute_positions_clears_unranked_entries(db_session, project):
    service = WaitlistService(db_session)
    await service.join(project.id, username="ada", email="ada@example.com")
    await service.join(project.id, username="grace", email="grace@example.com")

    entry = await service.get_entry(project.id, "ada")
    entry.status = EntryStatus.blocked

    ranked = await RankMaintainer(db_session).recompute_positions(project.id)

    assert [e.username for e in ranked] == ["grace"]
    assert ranked[0].position == 1
    assert entry.position is None
