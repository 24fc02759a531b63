"""
Proof predicates for the ZK-Citizen core.

Each predicate first recomputes the relevant commitment from the claimed
private inputs and compares it with the registered one, then evaluates the
claim itself. A commitment mismatch raises ``CommitmentMismatch``; an
honest "no" is returned as ``PredicateResult(satisfied=False)``.

Predicates are read-only. Keyword names match the input contract in
``circuits.PREDICATE_INPUTS`` so that a proof backend can replay them.

Age is a plain year difference: ``current_year - dob_year``. The current
month and day are accepted as public inputs but do not affect the result,
so a participant may be undercounted by up to one year near a birthday.
"""

from typing import Callable, Dict, Optional

import structlog

from .accumulator import compute_root
from .aggregates import DemographicAggregate
from .commitment import commit_date, commit_string
from .constants import DEFAULT_TREE_DEPTH, EMPTY_LEAF
from .data_models import MerkleWitness, PredicateResult
from .exceptions import CommitmentMismatch, EncodingError, PredicateInputError
from .ledger import Ledger
from .utils import short_hex

# Initialize structured logger
logger = structlog.get_logger(__name__)


def age_above(
    dob_year: int,
    dob_month: int,
    dob_day: int,
    salt: int,
    dob_commitment: int,
    min_age: int,
    current_year: int,
    current_month: Optional[int] = None,
    current_day: Optional[int] = None,
) -> PredicateResult:
    """
    Prove that ``current_year - dob_year >= min_age``.

    Parameters
    ----------
    dob_year, dob_month, dob_day : int
        Date of birth (private).
    salt : int
        Salt of the DOB commitment (private).
    dob_commitment : int
        Registered DOB commitment (public).
    min_age : int
        Age threshold (public).
    current_year : int
        Reference year (public).
    current_month, current_day : Optional[int]
        Reference month and day (public, informational).

    Returns
    -------
    PredicateResult
        Whether the age claim holds.

    Raises
    ------
    CommitmentMismatch
        If the private inputs do not open ``dob_commitment``.
    PredicateInputError
        If the date or the threshold is malformed.

    Examples
    --------
    >>> commitment = commit_date(1990, 5, 15, 12345)
    >>> age_above(1990, 5, 15, 12345, commitment, 18, 2024).satisfied
    True
    """
    if min_age < 0:
        raise PredicateInputError("min_age cannot be negative", predicate="age_above")

    try:
        computed = commit_date(dob_year, dob_month, dob_day, salt)
    except EncodingError as e:
        raise PredicateInputError(
            f"Invalid date of birth: {e.message}", predicate="age_above"
        )

    if computed != dob_commitment:
        raise CommitmentMismatch("age_above", "dob")

    age = current_year - dob_year
    return PredicateResult(
        predicate="age_above",
        satisfied=age >= min_age,
        public_inputs={
            "dob_commitment": dob_commitment,
            "min_age": min_age,
            "current_year": current_year,
            "current_month": current_month,
            "current_day": current_day,
        },
    )


def nationality_matches(
    nationality: str,
    salt: int,
    nationality_commitment: int,
    target_nationality: str,
) -> PredicateResult:
    """
    Prove that the committed nationality equals ``target_nationality``.

    The comparison is case-sensitive.
    """
    try:
        computed = commit_string(nationality, salt)
    except EncodingError as e:
        raise PredicateInputError(
            f"Invalid nationality: {e.message}", predicate="nationality_matches"
        )

    if computed != nationality_commitment:
        raise CommitmentMismatch("nationality_matches", "nationality")

    return PredicateResult(
        predicate="nationality_matches",
        satisfied=nationality == target_nationality,
        public_inputs={
            "nationality_commitment": nationality_commitment,
            "target_nationality": target_nationality,
        },
    )


def membership_proof(
    leaf: int,
    witness: MerkleWitness,
    expected_root: int,
    depth: int = DEFAULT_TREE_DEPTH,
) -> PredicateResult:
    """
    Prove that ``leaf`` is in the tree with root ``expected_root``.

    The empty sentinel is never a member.

    Raises
    ------
    PredicateInputError
        If the witness length differs from ``depth``.
    """
    if witness.depth != depth:
        raise PredicateInputError(
            f"Witness has {witness.depth} entries, expected {depth}",
            predicate="membership_proof",
        )

    return PredicateResult(
        predicate="membership_proof",
        satisfied=leaf != EMPTY_LEAF and compute_root(witness, leaf) == expected_root,
        public_inputs={"expected_root": expected_root},
    )


def population_above(total: int, threshold: int) -> PredicateResult:
    """Prove that the population is at least ``threshold``."""
    if total < 0 or threshold < 0:
        raise PredicateInputError(
            "Population and threshold must be non-negative", predicate="population_above"
        )

    return PredicateResult(
        predicate="population_above",
        satisfied=total >= threshold,
        public_inputs={"threshold": threshold},
    )


def population_in_range(
    total: int, min_population: int, max_population: int
) -> PredicateResult:
    """
    Prove that ``min_population <= total <= max_population``.

    Examples
    --------
    >>> population_in_range(150, 100, 200).satisfied
    True
    >>> population_in_range(99, 100, 200).satisfied
    False
    """
    if total < 0 or min_population < 0:
        raise PredicateInputError(
            "Population bounds must be non-negative", predicate="population_in_range"
        )
    if min_population > max_population:
        raise PredicateInputError(
            f"Empty range [{min_population}, {max_population}]",
            predicate="population_in_range",
        )

    return PredicateResult(
        predicate="population_in_range",
        satisfied=min_population <= total <= max_population,
        public_inputs={
            "min_population": min_population,
            "max_population": max_population,
        },
    )


def demographics_consistent(
    aggregate: DemographicAggregate, stored_aggregate_hash: Optional[int]
) -> PredicateResult:
    """
    Prove that ``aggregate`` is the one recorded at the last snapshot and
    that its buckets sum to its total.

    Raises
    ------
    PredicateInputError
        If no aggregate hash has been stored yet.
    CommitmentMismatch
        If ``aggregate`` does not hash to ``stored_aggregate_hash``.
    """
    if stored_aggregate_hash is None:
        raise PredicateInputError(
            "No aggregate hash stored; take a snapshot first",
            predicate="demographics_consistent",
        )

    if aggregate.hash() != stored_aggregate_hash:
        raise CommitmentMismatch("demographics_consistent", "aggregate")

    return PredicateResult(
        predicate="demographics_consistent",
        satisfied=aggregate.verify_total(),
        public_inputs={"stored_aggregate_hash": stored_aggregate_hash},
    )


def _ledger_membership(
    predicate: str, ledger: Ledger, leaf: int, witness: MerkleWitness
) -> PredicateResult:
    root = ledger.root
    # Raises InvalidWitness if the path does not span the whole tree
    satisfied = leaf != EMPTY_LEAF and ledger.root_from_leaf(witness, leaf) == root

    logger.debug(
        "Ledger membership evaluated",
        predicate=predicate,
        ledger_id=ledger.ledger_id,
        root=short_hex(root),
        satisfied=satisfied,
    )

    return PredicateResult(predicate, satisfied, {"expected_root": root})


def passport_exists(ledger: Ledger, leaf: int, witness: MerkleWitness) -> PredicateResult:
    """Prove that a passport entry is registered under the ledger's current root."""
    return _ledger_membership("passport_exists", ledger, leaf, witness)


def participation(ledger: Ledger, leaf: int, witness: MerkleWitness) -> PredicateResult:
    """Prove that a census entry is registered under the ledger's current root."""
    return _ledger_membership("participation", ledger, leaf, witness)


# Predicates that can be replayed from their inputs alone
PREDICATES: Dict[str, Callable[..., PredicateResult]] = {
    "age_above": age_above,
    "nationality_matches": nationality_matches,
    "membership_proof": membership_proof,
    "population_above": population_above,
    "population_in_range": population_in_range,
    "demographics_consistent": demographics_consistent,
}
