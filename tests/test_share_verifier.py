import pytest

from app.features.referral.models.social_share import SharePlatform, ShareStatus, ShareVerificationMethod
from app.features.referral.services.share_verifier import TOKEN_PREFIX, SocialShareVerifier
from app.features.waitlist.services.waitlist import WaitlistService
from app.platform.exceptions import (
    AlreadyVerified,
    ClaimNotFound,
    DuplicateClaim,
    EntryNotFound,
    InvalidTransitionError,
    ValidationError,
)


@pytest.fixture
async def member(db_session, project):
    await WaitlistService(db_session).join(project.id, username="ada", email="ada@example.com")
    return project


@pytest.mark.asyncio
async def test_claim_issues_unique_token(db_session, member):
    verifier = SocialShareVerifier(db_session)

    twitter = await verifier.claim(member.id, "ada", SharePlatform.twitter)
    linkedin = await verifier.claim(member.id, "ada", SharePlatform.linkedin)

    assert twitter.status == ShareStatus.pending
    assert twitter.verification_token.startswith(TOKEN_PREFIX)
    assert twitter.verification_token != linkedin.verification_token


@pytest.mark.asyncio
async def test_claim_requires_entry(db_session, member):
    with pytest.raises(EntryNotFound):
        await SocialShareVerifier(db_session).claim(member.id, "nobody", SharePlatform.twitter)


@pytest.mark.asyncio
async def test_second_pending_claim_on_same_platform_is_rejected(db_session, member):
    verifier = SocialShareVerifier(db_session)
    await verifier.claim(member.id, "ada", SharePlatform.twitter)

    with pytest.raises(DuplicateClaim):
        await verifier.claim(member.id, "ada", SharePlatform.twitter)


@pytest.mark.asyncio
async def test_token_verification_checks_evidence(db_session, member):
    verifier = SocialShareVerifier(db_session)
    claim = await verifier.claim(member.id, "ada", SharePlatform.twitter)

    with pytest.raises(ValidationError):
        await verifier.verify(claim, ShareVerificationMethod.token_verification, "Joined a cool waitlist!")
    assert claim.is_verified is False

    await verifier.verify(
        claim,
        ShareVerificationMethod.token_verification,
        f"Joined a cool waitlist! {claim.verification_token}",
    )
    assert claim.status == ShareStatus.verified
    assert await verifier.count_verified(member.id, "ada") == 1


@pytest.mark.asyncio
async def test_verify_twice_raises_already_verified(db_session, member):
    verifier = SocialShareVerifier(db_session)
    claim = await verifier.claim(member.id, "ada", SharePlatform.reddit)
    await verifier.verify(claim, ShareVerificationMethod.manual)

    with pytest.raises(AlreadyVerified):
        await verifier.verify(claim, ShareVerificationMethod.manual)
    assert await verifier.count_verified(member.id, "ada") == 1


@pytest.mark.asyncio
async def test_rejected_claim_cannot_be_verified(db_session, member):
    verifier = SocialShareVerifier(db_session)
    claim = await verifier.claim(member.id, "ada", SharePlatform.facebook)
    await verifier.reject(claim)

    with pytest.raises(InvalidTransitionError):
        await verifier.verify(claim, ShareVerificationMethod.manual)
    with pytest.raises(InvalidTransitionError):
        await verifier.reject(claim)


@pytest.mark.asyncio
async def test_rejected_claim_frees_the_platform(db_session, member):
    verifier = SocialShareVerifier(db_session)
    claim = await verifier.claim(member.id, "ada", SharePlatform.twitter)
    await verifier.reject(claim)

    again = await verifier.claim(member.id, "ada", SharePlatform.twitter)
    assert again.status == ShareStatus.pending


@pytest.mark.asyncio
async def test_get_claim_unknown_id(db_session, member):
    with pytest.raises(ClaimNotFound):
        await SocialShareVerifier(db_session).get_claim(member.id, "missing")


@pytest.mark.asyncio
async def test_list_claims_by_status(db_session, member):
    verifier = SocialShareVerifier(db_session)
    verified = await verifier.claim(member.id, "ada", SharePlatform.twitter)
    await verifier.verify(verified)
    await verifier.claim(member.id, "ada", SharePlatform.tiktok)

    pending, total = await verifier.list_claims(member.id, status=ShareStatus.pending)
    assert total == 1
    assert pending[0].platform == SharePlatform.tiktok
