"""
Priority scoring for waitlist entries.

Everything here is pure: same inputs, same Decimal, same string, on every platform.
Arithmetic runs in a private decimal context (28 digits, banker's rounding) and the
result is quantized to SCORE_SCALE places, so stored scores compare exactly.

    score = join base + time bonus + referral points * verified referrals
                                   + share points * verified shares

The join base is join_base_points / (1 + join_index / total_at_join): the first
joiner gets the full base and later joiners approach half of it, no matter how
long ago they joined.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_EVEN, Context, Decimal, localcontext
from typing import Optional

from app.features.waitlist.models.waitlist import SCORE_SCALE
from app.platform.exceptions import InvariantViolation
from app.platform.logger import get_logger

logger = get_logger(__name__)

SCORE_QUANTUM = Decimal(1).scaleb(-SCORE_SCALE)
ZERO = Decimal(0)
SECONDS_PER_DAY = Decimal(86400)

_SCORE_CONTEXT = Context(prec=28, rounding=ROUND_HALF_EVEN)


@dataclass(frozen=True)
class ScoringPolicy:
    join_base_points: Decimal = Decimal("1000")
    referral_points: Decimal = Decimal("100")
    share_points: Decimal = Decimal("25")
    early_bird_bonus: Decimal = Decimal("200")
    early_bird_window_days: int = 30


DEFAULT_POLICY = ScoringPolicy()


@dataclass(frozen=True)
class ScoreInputs:
    join_index: int
    total_at_join: int
    verified_referrals_count: int = 0
    verified_shares_count: int = 0
    time_score: Decimal = ZERO

    @classmethod
    def from_entry(cls, entry) -> "ScoreInputs":
        return cls(
            join_index=entry.join_index,
            total_at_join=entry.total_at_join,
            verified_referrals_count=entry.verified_referrals_count or 0,
            verified_shares_count=entry.verified_shares_count or 0,
            time_score=entry.time_score if entry.time_score is not None else ZERO,
        )


def quantize_score(value: Decimal) -> Decimal:
    return value.quantize(SCORE_QUANTUM, rounding=ROUND_HALF_EVEN, context=_SCORE_CONTEXT)


def format_score(score: Decimal) -> str:
    """Fixed-scale string form, e.g. Decimal("1100") -> "1100.0000"."""
    return format(quantize_score(score), "f")


def base_score(join_index: int, total_at_join: int, policy: ScoringPolicy = DEFAULT_POLICY) -> Decimal:
    if join_index is None or total_at_join is None or join_index < 0 or total_at_join <= join_index:
        logger.error(f"Malformed join order: join_index={join_index}, total_at_join={total_at_join}")
        raise InvariantViolation(
            "Malformed join order on waitlist entry",
            join_index=join_index,
            total_at_join=total_at_join,
        )
    with localcontext(_SCORE_CONTEXT):
        total = Decimal(total_at_join)
        return policy.join_base_points * total / (total + Decimal(join_index))


def compute_score(inputs: ScoreInputs, policy: ScoringPolicy = DEFAULT_POLICY) -> Decimal:
    """
    Map an entry's scoring inputs to its priority score.

    Counts below zero are clamped, so no adjustment can push a score under its
    join base. Monotonic non-decreasing in both verified counts.
    """
    base = base_score(inputs.join_index, inputs.total_at_join, policy)
    referrals = max(0, inputs.verified_referrals_count)
    shares = max(0, inputs.verified_shares_count)
    time_bonus = max(ZERO, Decimal(inputs.time_score))

    with localcontext(_SCORE_CONTEXT):
        score = (
            base
            + time_bonus
            + policy.referral_points * Decimal(referrals)
            + policy.share_points * Decimal(shares)
        )
    return quantize_score(score)


def _as_utc(value: datetime) -> datetime:
    # sqlite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def compute_time_score(
    joined_at: datetime,
    campaign_started_at: Optional[datetime],
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> Decimal:
    """
    Early-bird bonus: full early_bird_bonus at campaign start, falling linearly to
    zero after early_bird_window_days. Computed once at join and then frozen.
    """
    if campaign_started_at is None or policy.early_bird_bonus <= 0:
        return quantize_score(ZERO)

    elapsed_seconds = int((_as_utc(joined_at) - _as_utc(campaign_started_at)).total_seconds())
    elapsed_seconds = max(0, elapsed_seconds)

    with localcontext(_SCORE_CONTEXT):
        window = Decimal(policy.early_bird_window_days) * SECONDS_PER_DAY
        remaining = max(ZERO, 1 - Decimal(elapsed_seconds) / window)
        bonus = policy.early_bird_bonus * remaining
    return quantize_score(bonus)
