"""
Nullifier registry for the ZK-Citizen core.

A sparse set of used nullifiers. Marking is one-way: a marked nullifier
can never be unmarked, and marking it a second time is an error rather
than a no-op, since "already used" is exactly the signal that blocks a
second registration by the same participant.
"""

from typing import FrozenSet, Iterable, Iterator, Optional, Set

import structlog

from .exceptions import AlreadyUsed
from .hashing import field_hash_sequence, to_field
from .utils import short_hex

# Initialize structured logger
logger = structlog.get_logger(__name__)


class NullifierRegistry:
    """
    Set of used nullifiers.

    Parameters
    ----------
    used : Optional[Iterable[int]], default=None
        Nullifiers to preload, e.g. when restoring from a persisted record.

    Examples
    --------
    >>> registry = NullifierRegistry()
    >>> registry.mark_used(7)
    >>> registry.is_used(7)
    True
    """

    def __init__(self, used: Optional[Iterable[int]] = None) -> None:
        self._used: Set[int] = set()
        for nullifier in used or ():
            self.mark_used(nullifier)

    def is_used(self, nullifier: int) -> bool:
        return nullifier in self._used

    def mark_used(self, nullifier: int) -> None:
        """
        Mark ``nullifier`` as used.

        Raises
        ------
        AlreadyUsed
            If the nullifier is already marked.
        InvalidFieldElement
            If the nullifier is not a field element.
        """
        to_field(nullifier)
        if nullifier in self._used:
            raise AlreadyUsed(nullifier)

        self._used.add(nullifier)
        logger.debug(
            "Nullifier marked as used",
            nullifier_preview=short_hex(nullifier),
            used_count=len(self._used),
        )

    def snapshot(self) -> FrozenSet[int]:
        """Return an immutable copy of the used set."""
        return frozenset(self._used)

    def digest(self) -> int:
        """Order-independent hash of the used set."""
        return field_hash_sequence(sorted(self._used))

    def __contains__(self, nullifier: object) -> bool:
        return nullifier in self._used

    def __len__(self) -> int:
        return len(self._used)

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._used))
