"""
Field-element hashing for the ZK-Citizen core.

All commitments, nullifiers and Merkle nodes are elements of the prime field
defined by ``FIELD_MODULUS``. ``field_hash`` maps a sequence of field
elements to a single field element with SHA-256: the domain tag, the input
count and every element as a fixed 32-byte big-endian integer are hashed,
and the digest is reduced modulo the field prime.

The input count and fixed-width encoding make the preimage unambiguous, so
``field_hash(a, b)`` and ``field_hash(a, b, 0)`` never collide by
construction.
"""

import hashlib
from typing import Iterable

from .constants import FIELD_ELEMENT_BYTES, FIELD_MODULUS, HASH_DOMAIN_TAG
from .exceptions import InvalidFieldElement


def is_field_element(value: object) -> bool:
    """Return True if ``value`` is an int in ``[0, FIELD_MODULUS)``."""
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and 0 <= value < FIELD_MODULUS
    )


def to_field(value: int) -> int:
    """
    Validate that an integer is a field element and return it.

    Parameters
    ----------
    value : int
        Candidate field element.

    Returns
    -------
    int
        The same value.

    Raises
    ------
    InvalidFieldElement
        If ``value`` is not an integer in ``[0, FIELD_MODULUS)``.
    """
    if not is_field_element(value):
        raise InvalidFieldElement(
            f"Value of type {type(value).__name__} is not a field element"
        )
    return value


def field_to_bytes(value: int) -> bytes:
    """Serialize a field element as 32 big-endian bytes."""
    return to_field(value).to_bytes(FIELD_ELEMENT_BYTES, "big")


def field_from_bytes(data: bytes) -> int:
    """Deserialize 32 big-endian bytes into a field element."""
    if len(data) != FIELD_ELEMENT_BYTES:
        raise InvalidFieldElement(
            f"Expected {FIELD_ELEMENT_BYTES} bytes, got {len(data)}"
        )
    return to_field(int.from_bytes(data, "big"))


def field_hash_sequence(elements: Iterable[int]) -> int:
    """Hash an iterable of field elements to one field element."""
    values = [to_field(element) for element in elements]

    hasher = hashlib.sha256()
    hasher.update(HASH_DOMAIN_TAG)
    hasher.update(len(values).to_bytes(4, "big"))
    for value in values:
        hasher.update(value.to_bytes(FIELD_ELEMENT_BYTES, "big"))

    return int.from_bytes(hasher.digest(), "big") % FIELD_MODULUS


def field_hash(*elements: int) -> int:
    """
    Hash field elements to a single field element.

    Examples
    --------
    >>> field_hash(1990, 5, 15, 12345) == field_hash(1990, 5, 15, 12345)
    True
    """
    return field_hash_sequence(elements)
