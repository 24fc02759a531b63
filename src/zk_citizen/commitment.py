"""
Commitment scheme for the ZK-Citizen core.

Attribute values are bound to random salts with the field hash:

* strings: ``Hash(Hash(chunks(value)), salt)`` using the versioned chunk
  encoding from ``encoding.py``
* dates: ``Hash(year, month, day, salt)``
* numbers: ``Hash(value, salt)``

Nullifiers are derived from a stable identifier and a participant secret,
either for identity registration or bound to a census context so the same
secret yields unlinkable nullifiers across contexts.

Hiding and binding rest on the collision resistance of the field hash.
"""

from typing import Optional

import structlog

from .data_models import AttributeCommitment, AttributeKind, IdentityRecord
from .encoding import encode_string
from .exceptions import EncodingError
from .hashing import field_hash, field_hash_sequence, to_field
from .salts import generate_salt

# Initialize structured logger
logger = structlog.get_logger(__name__)


def hash_string(value: str) -> int:
    """
    Hash a string to a field element without a salt.

    Used for public codes (e.g. region codes) that must hash consistently
    across participants.
    """
    return field_hash_sequence(encode_string(value))


def commit_string(value: str, salt: int) -> int:
    """
    Commit to a string value.

    Parameters
    ----------
    value : str
        Value to commit to.
    salt : int
        Blinding salt (field element).

    Returns
    -------
    int
        ``Hash(hash_string(value), salt)``.

    Examples
    --------
    >>> commit_string("John Doe", 12345) == commit_string("John Doe", 12345)
    True
    >>> commit_string("John Doe", 12345) == commit_string("Jane Doe", 12345)
    False
    """
    return field_hash(hash_string(value), to_field(salt))


def validate_date(year: int, month: int, day: int) -> None:
    """Check that a (year, month, day) triple is in range for committing."""
    if not isinstance(year, int) or year < 0:
        raise EncodingError(f"Invalid year: {year}")
    if not isinstance(month, int) or not 1 <= month <= 12:
        raise EncodingError(f"Invalid month: {month}")
    if not isinstance(day, int) or not 1 <= day <= 31:
        raise EncodingError(f"Invalid day: {day}")


def commit_date(year: int, month: int, day: int, salt: int) -> int:
    """
    Commit to a calendar date.

    Each field already fits the hash domain, so no chunking is applied.

    Returns
    -------
    int
        ``Hash(year, month, day, salt)``.
    """
    validate_date(year, month, day)
    return field_hash(year, month, day, to_field(salt))


def commit_numeric(value: int, salt: int) -> int:
    """Commit to a numeric field value: ``Hash(value, salt)``."""
    return field_hash(to_field(value), to_field(salt))


def derive_nullifier(stable_id: str, secret: int) -> int:
    """
    Derive the identity-registration nullifier.

    Parameters
    ----------
    stable_id : str
        Stable identifier of the participant (e.g. passport number).
    secret : int
        Participant secret.

    Returns
    -------
    int
        ``Hash(commit_string(stable_id, secret), secret)``.
    """
    return field_hash(commit_string(stable_id, secret), to_field(secret))


def derive_census_nullifier(passport_commitment: int, context_id: int, secret: int) -> int:
    """
    Derive a context-bound census nullifier.

    Returns
    -------
    int
        ``Hash(passport_commitment, context_id, secret)``.
    """
    return field_hash(
        to_field(passport_commitment), to_field(context_id), to_field(secret)
    )


def passport_entry(identity_hash: int, nullifier: int) -> int:
    """Accumulator leaf of a passport registration: ``Hash(identity_hash, nullifier)``."""
    return field_hash(identity_hash, nullifier)


def census_entry(passport_commitment: int, demographic_hash: int, nullifier: int) -> int:
    """Accumulator leaf of a census registration."""
    return field_hash(passport_commitment, demographic_hash, nullifier)


def create_attribute_commitment(
    kind: AttributeKind, value: str, salt: int
) -> AttributeCommitment:
    """Commit to a string attribute and wrap it with its kind."""
    return AttributeCommitment(commit_string(value, salt), salt, kind)


def create_identity(
    name: str,
    dob: tuple,
    nationality: str,
    id_number: str,
    salt: Optional[int] = None,
) -> IdentityRecord:
    """
    Create the attribute commitments of one registrant.

    All four commitments share ``salt``, which intentionally links them to
    the same identity record.

    Parameters
    ----------
    name : str
        Full name.
    dob : tuple
        Date of birth as ``(year, month, day)``.
    nationality : str
        Nationality code or name (case-sensitive).
    id_number : str
        Stable identifier such as a passport number.
    salt : Optional[int], default=None
        Salt to use. If None, a fresh random salt is drawn.

    Returns
    -------
    IdentityRecord
        The commitments and the derived identity hash.

    Examples
    --------
    >>> record = create_identity("John Doe", (1990, 5, 15), "SG", "E1234567A")
    >>> record.identity_hash > 0
    True
    """
    if salt is None:
        salt = generate_salt()

    year, month, day = dob
    record = IdentityRecord(
        name_commitment=commit_string(name, salt),
        dob_commitment=commit_date(year, month, day, salt),
        nationality_commitment=commit_string(nationality, salt),
        id_commitment=commit_string(id_number, salt),
        salt=salt,
    )

    logger.debug(
        "Identity commitments created",
        identity_hash_preview=f"{record.identity_hash:064x}"[:16],
    )

    return record
