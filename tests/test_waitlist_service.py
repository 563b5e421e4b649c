import asyncio
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy import func, select

from app.features.projects.schemas.project import ProjectCreate, ProjectSettings
from app.features.projects.services.project_service import ProjectService
from app.features.referral.models.social_share import SharePlatform, ShareVerificationMethod
from app.features.referral.services.referral_ledger import ReferralLedger
from app.features.waitlist.models.event import EventType
from app.features.waitlist.models.waitlist import EntryStatus, WaitlistEntry
from app.features.waitlist.services.waitlist import WaitlistService
from app.platform.exceptions import (
    CodeGenerationExhausted,
    ConflictError,
    DuplicateEntry,
    InvalidTransitionError,
    ProjectNotFound,
    UnknownReferrer,
)


async def _join(service, project_id, name, referral_code=None):
    return await service.join(
        project_id, username=name, email=f"{name.lower()}@example.com", referral_code=referral_code
    )


async def _entry_count(db_session, project_id):
    result = await db_session.execute(
        select(func.count(WaitlistEntry.id)).where(WaitlistEntry.project_id == project_id)
    )
    return result.scalar_one()


# ── Join ────────────────────────────────────────


@pytest.mark.asyncio
async def test_join_assigns_sequence_and_initial_position(db_session, project):
    service = WaitlistService(db_session)

    ada = await _join(service, project.id, "Ada")
    grace = await _join(service, project.id, "grace")

    assert (ada.join_index, ada.total_at_join) == (0, 1)
    assert (grace.join_index, grace.total_at_join) == (1, 2)
    assert ada.username == "ada"
    assert ada.display_username == "Ada"
    assert ada.initial_position == 1
    assert grace.initial_position == 2
    assert ada.invite_code != grace.invite_code
    assert ada.priority_score == Decimal("1000.0000")
    assert project.total_entries == 2


@pytest.mark.asyncio
async def test_join_rejects_duplicate_username_and_email(db_session, project):
    project_id = project.id
    service = WaitlistService(db_session)
    await _join(service, project_id, "ada")

    with pytest.raises(DuplicateEntry):
        await service.join(project_id, username="ADA", email="other@example.com")
    with pytest.raises(DuplicateEntry):
        await service.join(project_id, username="someone", email="ada@example.com")

    assert await _entry_count(db_session, project_id) == 1


@pytest.mark.asyncio
async def test_same_username_may_join_different_projects(db_session, project, manual_project):
    service = WaitlistService(db_session)
    first = await _join(service, project.id, "ada")
    second = await _join(service, manual_project.id, "ada")

    assert first.join_index == second.join_index == 0


@pytest.mark.asyncio
async def test_join_with_unknown_referral_code_rolls_back(db_session, project):
    project_id = project.id
    service = WaitlistService(db_session)
    await _join(service, project_id, "ada")

    with pytest.raises(UnknownReferrer):
        await _join(service, project_id, "grace", referral_code="NOPE2345")

    assert await _entry_count(db_session, project_id) == 1
    grace = await _join(service, project_id, "grace")
    assert grace.join_index == 1


@pytest.mark.asyncio
async def test_join_fails_cleanly_when_codes_run_out(db_session, project):
    project_id = project.id
    service = WaitlistService(db_session)

    with patch(
        "app.features.waitlist.services.waitlist.generate_unique_code",
        side_effect=CodeGenerationExhausted(attempts=5),
    ):
        with pytest.raises(CodeGenerationExhausted):
            await _join(service, project_id, "ada")

    assert await _entry_count(db_session, project_id) == 0


@pytest.mark.asyncio
async def test_join_unknown_project(db_session):
    with pytest.raises(ProjectNotFound):
        await _join(WaitlistService(db_session), "no-such-project", "ada")


@pytest.mark.asyncio
async def test_concurrent_joins_get_unique_increasing_join_index(session_factory, project):
    project_id = project.id

    async def join_in_own_session(name):
        async with session_factory() as session:
            entry = await _join(WaitlistService(session), project_id, name)
            return entry.join_index

    indexes = await asyncio.gather(*(join_in_own_session(f"user{i}") for i in range(8)))

    assert sorted(indexes) == list(range(8))


@pytest.mark.asyncio
async def test_concurrent_verifications_are_all_counted(session_factory, db_session, manual_project):
    project_id = manual_project.id
    service = WaitlistService(db_session)
    ada = await _join(service, project_id, "ada")
    for i in range(6):
        await _join(service, project_id, f"friend{i}", referral_code=ada.invite_code)
    edges, _ = await ReferralLedger(db_session).list_edges(project_id)
    edge_ids = [edge.id for edge in edges]

    async def verify_in_own_session(edge_id):
        async with session_factory() as session:
            await WaitlistService(session).verify_referral(project_id, edge_id)

    await asyncio.gather(*(verify_in_own_session(edge_id) for edge_id in edge_ids))

    async with session_factory() as session:
        ada = await WaitlistService(session).get_entry(project_id, "ada")
    assert ada.verified_referrals_count == 6
    assert ada.priority_score == Decimal("1600.0000")
    assert ada.position == 1


@pytest.mark.asyncio
async def test_early_bird_bonus_is_frozen_at_join(db_session, owner):
    service = ProjectService(db_session)
    bonus_project = await service.create_project(owner.id, ProjectCreate(name="Early birds"))
    started = bonus_project.created_at
    waitlist = WaitlistService(db_session, clock=lambda: started + timedelta(days=15))

    entry = await _join(waitlist, bonus_project.id, "ada")

    assert entry.time_score == Decimal("100.0000")
    assert entry.priority_score == Decimal("1100.0000")


# ── Referrals ───────────────────────────────────


@pytest.mark.asyncio
async def test_referral_scenario_credits_referrer(db_session, project):
    """A, B and C join in order; C uses A's invite code."""
    service = WaitlistService(db_session)
    a = await _join(service, project.id, "a_user")
    b = await _join(service, project.id, "b_user")
    c = await _join(service, project.id, "c_user", referral_code=a.invite_code)

    ranked, total = await service.list_ranked(project.id)

    assert total == 3
    assert [e.username for e in ranked] == ["a_user", "b_user", "c_user"]
    assert a.verified_referrals_count == 1
    assert a.priority_score == Decimal("1100.0000")
    assert b.priority_score == Decimal("666.6667")
    assert c.priority_score == Decimal("600.0000")
    assert c.referred_by == "a_user"


@pytest.mark.asyncio
async def test_referral_can_lift_a_later_joiner(db_session, project):
    service = WaitlistService(db_session)
    await _join(service, project.id, "first")
    await _join(service, project.id, "second")
    third = await _join(service, project.id, "third")
    await _join(service, project.id, "fourth", referral_code=third.invite_code)

    ranked, _ = await service.list_ranked(project.id)

    assert [e.username for e in ranked] == ["first", "third", "second", "fourth"]
    assert third.priority_score == Decimal("700.0000")


@pytest.mark.asyncio
async def test_manual_policy_waits_for_verification(db_session, manual_project):
    service = WaitlistService(db_session)
    a = await _join(service, manual_project.id, "ada")
    await _join(service, manual_project.id, "grace", referral_code=a.invite_code)

    assert a.verified_referrals_count == 0
    assert a.priority_score == Decimal("1000.0000")

    edge = await ReferralLedger(db_session).find_by_referee(manual_project.id, "grace")
    await service.verify_referral(manual_project.id, edge.id)
    await service.verify_referral(manual_project.id, edge.id)

    a = await service.get_entry(manual_project.id, "ada")
    assert a.verified_referrals_count == 1
    assert a.priority_score == Decimal("1100.0000")


@pytest.mark.asyncio
async def test_revoke_referral_removes_credit(db_session, project):
    service = WaitlistService(db_session)
    a = await _join(service, project.id, "ada")
    await _join(service, project.id, "grace", referral_code=a.invite_code)
    edge = await ReferralLedger(db_session).find_by_referee(project.id, "grace")

    await service.revoke_referral(project.id, edge.id)

    a = await service.get_entry(project.id, "ada")
    assert a.verified_referrals_count == 0
    assert a.priority_score == Decimal("1000.0000")
    revoked, _ = await service.list_events(project.id, event_type=EventType.revoked)
    assert [event.username for event in revoked] == ["ada"]


@pytest.mark.asyncio
async def test_duplicate_referral_is_conflict_and_ledger_unchanged(db_session, project):
    project_id = project.id
    service = WaitlistService(db_session)
    a = await _join(service, project_id, "ada")
    await _join(service, project_id, "linus")
    await _join(service, project_id, "grace", referral_code=a.invite_code)

    with pytest.raises(ConflictError):
        await service.record_referral(project_id, "linus", "grace", verify=True)

    edges, total = await ReferralLedger(db_session).list_edges(project_id)
    assert total == 1
    assert edges[0].referrer_username == "ada"
    linus = await service.get_entry(project_id, "linus")
    assert linus.verified_referrals_count == 0


@pytest.mark.asyncio
async def test_record_referral_by_hand(db_session, project):
    service = WaitlistService(db_session)
    await _join(service, project.id, "ada")
    await _join(service, project.id, "grace")

    edge = await service.record_referral(project.id, "ada", "grace", verify=True)

    assert edge.is_verified is True
    grace = await service.get_entry(project.id, "grace")
    ada = await service.get_entry(project.id, "ada")
    assert grace.referred_by == "ada"
    assert ada.verified_referrals_count == 1


@pytest.mark.asyncio
async def test_converted_referrer_is_still_credited(db_session, project):
    project_id = project.id
    service = WaitlistService(db_session)
    a = await _join(service, project_id, "ada")
    await service.change_status(project_id, "ada", EntryStatus.converted)

    await _join(service, project_id, "grace", referral_code=a.invite_code)

    a = await service.get_entry(project_id, "ada")
    assert a.verified_referrals_count == 1
    assert a.priority_score == Decimal("1100.0000")
    assert a.position is None
    assert a.status == EntryStatus.converted

    with pytest.raises(InvalidTransitionError):
        await service.change_status(project_id, "ada", EntryStatus.active)


@pytest.mark.asyncio
async def test_blocked_entry_score_is_frozen(db_session, manual_project):
    service = WaitlistService(db_session)
    a = await _join(service, manual_project.id, "ada")
    await _join(service, manual_project.id, "grace", referral_code=a.invite_code)
    await service.change_status(manual_project.id, "ada", EntryStatus.blocked)

    edge = await ReferralLedger(db_session).find_by_referee(manual_project.id, "grace")
    await service.verify_referral(manual_project.id, edge.id)

    a = await service.get_entry(manual_project.id, "ada")
    assert a.priority_score == Decimal("1000.0000")
    assert a.position is None


# ── Shares ──────────────────────────────────────


@pytest.mark.asyncio
async def test_verified_share_adds_points_once(db_session, project):
    service = WaitlistService(db_session)
    await _join(service, project.id, "ada")
    claim = await service.claim_share(project.id, "ada", SharePlatform.twitter)

    await service.verify_share(
        project.id, claim.id, ShareVerificationMethod.token_verification, f"join me {claim.verification_token}"
    )
    await service.verify_share(project.id, claim.id)

    ada = await service.get_entry(project.id, "ada")
    assert ada.verified_shares_count == 1
    assert ada.priority_score == Decimal("1025.0000")


@pytest.mark.asyncio
async def test_rejected_share_adds_nothing(db_session, project):
    project_id = project.id
    service = WaitlistService(db_session)
    await _join(service, project_id, "ada")
    claim = await service.claim_share(project_id, "ada", SharePlatform.linkedin)
    claim_id = claim.id

    await service.reject_share(project_id, claim_id)
    with pytest.raises(InvalidTransitionError):
        await service.verify_share(project_id, claim_id)

    ada = await service.get_entry(project_id, "ada")
    assert ada.verified_shares_count == 0


# ── Status ──────────────────────────────────────


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "path",
    [
        [EntryStatus.invited],
        [EntryStatus.converted],
        [EntryStatus.blocked],
        [EntryStatus.invited, EntryStatus.converted],
        [EntryStatus.invited, EntryStatus.blocked],
    ],
)
async def test_allowed_transitions(db_session, project, path):
    service = WaitlistService(db_session)
    await _join(service, project.id, "ada")

    for status in path:
        entry = await service.change_status(project.id, "ada", status)

    assert entry.status == path[-1]
    assert entry.position is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "path",
    [
        [EntryStatus.active],
        [EntryStatus.invited, EntryStatus.invited],
        [EntryStatus.invited, EntryStatus.active],
        [EntryStatus.converted, EntryStatus.invited],
        [EntryStatus.converted, EntryStatus.blocked],
        [EntryStatus.blocked, EntryStatus.active],
        [EntryStatus.blocked, EntryStatus.converted],
    ],
)
async def test_rejected_transitions(db_session, project, path):
    project_id = project.id
    service = WaitlistService(db_session)
    await _join(service, project_id, "ada")

    for status in path[:-1]:
        await service.change_status(project_id, "ada", status)
    with pytest.raises(InvalidTransitionError):
        await service.change_status(project_id, "ada", path[-1])

    entry = await service.get_entry(project_id, "ada")
    expected = path[-2] if len(path) > 1 else EntryStatus.active
    assert entry.status == expected


@pytest.mark.asyncio
async def test_leaving_the_ranking_moves_others_up(db_session, project):
    service = WaitlistService(db_session)
    await _join(service, project.id, "ada")
    grace = await _join(service, project.id, "grace")

    await service.change_status(project.id, "ada", EntryStatus.invited)

    rank = await service.get_rank(project.id, "grace")
    assert rank.position == 1
    assert rank.total_ranked == 1
    assert grace.initial_position == 2


# ── Maintenance ─────────────────────────────────


@pytest.mark.asyncio
async def test_rescore_without_changes_is_a_no_op(db_session, project):
    service = WaitlistService(db_session)
    a = await _join(service, project.id, "ada")
    await _join(service, project.id, "grace", referral_code=a.invite_code)

    assert await service.rescore(project.id) == 0

    ada = await service.get_entry(project.id, "ada")
    assert ada.priority_score == Decimal("1100.0000")


@pytest.mark.asyncio
async def test_new_referral_weight_applies_to_every_entry(db_session, manual_project):
    project_id = manual_project.id
    service = WaitlistService(db_session)
    ledger = ReferralLedger(db_session)
    alice = await _join(service, project_id, "alice")
    bob = await _join(service, project_id, "bob")
    await _join(service, project_id, "carol", referral_code=bob.invite_code)
    await _join(service, project_id, "dave", referral_code=alice.invite_code)
    await service.verify_referral(project_id, (await ledger.find_by_referee(project_id, "carol")).id)

    changed = await service.update_settings(
        project_id,
        ProjectSettings(
            early_bird_bonus=Decimal("0"),
            referral_points=Decimal("500"),
            referral_verification_policy="manual",
        ),
    )
    assert changed == 1
    bob = await service.get_entry(project_id, "bob")
    assert bob.priority_score == Decimal("1166.6667")

    await service.verify_referral(project_id, (await ledger.find_by_referee(project_id, "dave")).id)

    alice = await service.get_entry(project_id, "alice")
    assert alice.priority_score == Decimal("1500.0000")
    assert bob.priority_score == Decimal("1166.6667")
    ranked, _ = await service.list_ranked(project_id)
    assert [e.username for e in ranked] == ["alice", "bob", "carol", "dave"]


@pytest.mark.asyncio
async def test_non_scoring_settings_change_keeps_scores(db_session, project):
    service = WaitlistService(db_session)
    a = await _join(service, project.id, "ada")
    await _join(service, project.id, "grace", referral_code=a.invite_code)

    changed = await service.update_settings(
        project.id,
        ProjectSettings(early_bird_bonus=Decimal("0"), referral_verification_policy="manual"),
    )

    assert changed == 0
    events, _ = await service.list_events(project.id, event_type=EventType.position_updated)
    assert events == []


@pytest.mark.asyncio
async def test_events_are_recorded(db_session, project):
    service = WaitlistService(db_session)
    a = await _join(service, project.id, "ada")
    await _join(service, project.id, "grace", referral_code=a.invite_code)
    await service.change_status(project.id, "grace", EntryStatus.invited)

    events, total = await service.list_events(project.id)
    types = {event.event_type for event in events}

    assert total == len(events)
    assert {EventType.joined, EventType.referred, EventType.verified, EventType.invited} <= types

    joined, _ = await service.list_events(project.id, event_type=EventType.joined)
    assert len(joined) == 2
