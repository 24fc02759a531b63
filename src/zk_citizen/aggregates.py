"""
Demographic aggregation for the ZK-Citizen core.

Participants are counted in coarse, mutually exclusive brackets instead of
exact values. The tracker keeps six age-bucket counters and a total, and
enforces the conservation invariant

    sum(age buckets) == total == participant count

after every registration and snapshot. A violation is an integrity fault,
never a recoverable condition.

Age is computed as a plain year difference (``current_year - birth_year``)
everywhere in this package, matching the age predicate.
"""

from collections import Counter
from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Tuple

import numpy as np
import structlog

from .commitment import hash_string
from .constants import (
    AGE_BRACKET_COUNT,
    AGE_BRACKET_LABELS,
    AGE_BRACKET_UPPER_BOUNDS,
    JOIN_TIME_BRACKET_DAYS,
    MAX_MEMBERSHIP_TIER,
    MILLISECONDS_PER_DAY,
    MIN_MEMBERSHIP_TIER,
)
from .exceptions import AggregateMismatch
from .hashing import field_hash, to_field

# Initialize structured logger
logger = structlog.get_logger(__name__)


class AgeBracket(IntEnum):
    """Age buckets used for aggregation."""

    AGE_0_17 = 0
    AGE_18_25 = 1
    AGE_26_35 = 2
    AGE_36_50 = 3
    AGE_51_65 = 4
    AGE_65_PLUS = 5


def age_bracket(birth_year: int, current_year: int) -> AgeBracket:
    """
    Map a birth year to its age bracket using year-only age.

    Examples
    --------
    >>> age_bracket(1990, 2024)
    <AgeBracket.AGE_26_35: 2>
    """
    age = current_year - birth_year
    if age < 0:
        raise ValueError(f"birth_year {birth_year} is after current_year {current_year}")

    for bracket, upper_bound in enumerate(AGE_BRACKET_UPPER_BOUNDS):
        if age <= upper_bound:
            return AgeBracket(bracket)
    return AgeBracket.AGE_65_PLUS


def join_time_bracket(join_timestamp_ms: int, current_timestamp_ms: int) -> int:
    """
    Map a membership start time to a tenure bracket (0-5).

    Brackets are under 1 month, 1-3 months, 3-6 months, 6-12 months,
    1-2 years, and 2+ years.
    """
    if current_timestamp_ms < join_timestamp_ms:
        raise ValueError("join timestamp lies in the future")

    days_as_member = (current_timestamp_ms - join_timestamp_ms) / MILLISECONDS_PER_DAY
    for bracket, limit in enumerate(JOIN_TIME_BRACKET_DAYS):
        if days_as_member < limit:
            return bracket
    return len(JOIN_TIME_BRACKET_DAYS)


@dataclass(frozen=True)
class DemographicData:
    """
    Coarse demographic attributes of one participant.

    Parameters
    ----------
    age_bracket : int
        Age bucket index (see ``AgeBracket``).
    region_code : int
        Hashed region string (see ``hash_string``).
    membership_tier : int
        Membership tier, 1 to 5.
    join_time_bracket : int
        Tenure bucket index (0-5).
    """

    age_bracket: int
    region_code: int
    membership_tier: int
    join_time_bracket: int

    def __post_init__(self) -> None:
        if not 0 <= int(self.age_bracket) < AGE_BRACKET_COUNT:
            raise ValueError(f"age_bracket must be in [0, {AGE_BRACKET_COUNT})")
        to_field(self.region_code)
        if not MIN_MEMBERSHIP_TIER <= self.membership_tier <= MAX_MEMBERSHIP_TIER:
            raise ValueError(
                f"membership_tier must be between {MIN_MEMBERSHIP_TIER} and {MAX_MEMBERSHIP_TIER}"
            )
        if not 0 <= self.join_time_bracket <= len(JOIN_TIME_BRACKET_DAYS):
            raise ValueError("join_time_bracket out of range")

    def hash(self) -> int:
        """Demographic hash bound into census participant entries."""
        return field_hash(
            int(self.age_bracket),
            self.region_code,
            self.membership_tier,
            self.join_time_bracket,
        )

    @classmethod
    def create(
        cls,
        birth_year: int,
        region: str,
        membership_tier: int,
        join_timestamp_ms: int,
        current_year: int,
        current_timestamp_ms: int,
    ) -> "DemographicData":
        """Derive demographic brackets from raw participant data."""
        return cls(
            age_bracket=int(age_bracket(birth_year, current_year)),
            region_code=hash_string(region),
            membership_tier=membership_tier,
            join_time_bracket=join_time_bracket(join_timestamp_ms, current_timestamp_ms),
        )


@dataclass(frozen=True)
class DemographicAggregate:
    """
    Immutable age-bucket counts plus total.

    Examples
    --------
    >>> agg = DemographicAggregate(0, 1, 0, 0, 0, 0, total=1)
    >>> agg.verify_total()
    True
    """

    age_0_17: int
    age_18_25: int
    age_26_35: int
    age_36_50: int
    age_51_65: int
    age_65_plus: int
    total: int

    @classmethod
    def from_counts(cls, counts, total: int) -> "DemographicAggregate":
        values = [int(count) for count in counts]
        if len(values) != AGE_BRACKET_COUNT:
            raise ValueError(f"Expected {AGE_BRACKET_COUNT} bucket counts, got {len(values)}")
        return cls(*values, total=int(total))

    @classmethod
    def empty(cls) -> "DemographicAggregate":
        return cls.from_counts([0] * AGE_BRACKET_COUNT, 0)

    def bucket_counts(self) -> Tuple[int, ...]:
        return (
            self.age_0_17,
            self.age_18_25,
            self.age_26_35,
            self.age_36_50,
            self.age_51_65,
            self.age_65_plus,
        )

    def verify_total(self) -> bool:
        """True if the bucket counts sum to ``total``."""
        return sum(self.bucket_counts()) == self.total

    def hash(self) -> int:
        """Hash over the six buckets and the total, in order."""
        return field_hash(*self.bucket_counts(), self.total)

    def to_dict(self) -> Dict[str, int]:
        result = dict(zip(AGE_BRACKET_LABELS, self.bucket_counts()))
        result["total"] = self.total
        return result


class AggregateTracker:
    """
    Running demographic counters owned by a ledger.

    Examples
    --------
    >>> tracker = AggregateTracker()
    >>> tracker.record(DemographicData(1, hash_string("north"), 2, 0))
    >>> tracker.snapshot().total
    1
    """

    def __init__(self) -> None:
        self._buckets = np.zeros(AGE_BRACKET_COUNT, dtype=np.int64)
        self._total = 0
        self._regions: Counter = Counter()
        self._tiers: Counter = Counter()

    @property
    def total(self) -> int:
        return self._total

    def record(self, demographics: DemographicData) -> None:
        """Count one new participant."""
        self._buckets[int(demographics.age_bracket)] += 1
        self._regions[demographics.region_code] += 1
        self._tiers[demographics.membership_tier] += 1
        self._total += 1

    def snapshot(self) -> DemographicAggregate:
        """Return an immutable copy of the counters."""
        return DemographicAggregate.from_counts(self._buckets.tolist(), self._total)

    def region_distribution(self) -> Dict[int, int]:
        return dict(self._regions)

    def tier_distribution(self) -> Dict[int, int]:
        return dict(self._tiers)

    def bucket_shares(self) -> Dict[str, float]:
        """Fraction of participants per age bucket."""
        if self._total == 0:
            shares = np.zeros(AGE_BRACKET_COUNT)
        else:
            shares = self._buckets / self._total
        return dict(zip(AGE_BRACKET_LABELS, shares.tolist()))

    def check_conservation(self, participant_count: int) -> None:
        """
        Assert ``sum(buckets) == total == participant_count``.

        Raises
        ------
        AggregateMismatch
            If either equality fails.
        """
        bucket_sum = int(self._buckets.sum())
        if bucket_sum != self._total:
            logger.critical(
                "Aggregate bucket sum differs from total",
                bucket_sum=bucket_sum,
                total=self._total,
            )
            raise AggregateMismatch("bucket sum differs from total", self._total, bucket_sum)

        if self._total != participant_count:
            logger.critical(
                "Aggregate total differs from participant count",
                total=self._total,
                participant_count=participant_count,
            )
            raise AggregateMismatch(
                "total differs from participant count", participant_count, self._total
            )
