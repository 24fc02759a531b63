"""
Data models for the ZK-Citizen core.

This module defines the immutable records exchanged between the commitment
scheme, the accumulator, the ledger and the proof predicates. All models
are frozen dataclasses: a record, once created, is never mutated, and a new
registration or snapshot always produces a new record.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .exceptions import ClaimFailed
from .hashing import field_hash, to_field


class AttributeKind(str, Enum):
    """Kinds of identity attributes that can be committed."""

    NAME = "name"
    DOB = "dob"
    NATIONALITY = "nationality"
    ID_NUMBER = "id_number"
    REGION = "region"


@dataclass(frozen=True)
class AttributeCommitment:
    """
    A commitment binding one hidden attribute value to a salt.

    Parameters
    ----------
    value : int
        The commitment, ``Hash(EncodeAttribute(raw), salt)``.
    salt : int
        Blinding salt used to create the commitment.
    kind : AttributeKind
        Which attribute this commitment hides.
    """

    value: int
    salt: int
    kind: AttributeKind

    def __post_init__(self) -> None:
        to_field(self.value)
        to_field(self.salt)


@dataclass(frozen=True)
class IdentityRecord:
    """
    The attribute commitments of one registrant.

    ``identity_hash`` is derived as
    ``Hash(name, dob, nationality, id, salt)`` and is what registration
    binds into the accumulator.

    Parameters
    ----------
    name_commitment : int
        Commitment to the full name.
    dob_commitment : int
        Commitment to the date of birth.
    nationality_commitment : int
        Commitment to the nationality.
    id_commitment : int
        Commitment to the stable identifier (passport number, etc.).
    salt : int
        Salt shared by the commitments above.

    Examples
    --------
    >>> record = IdentityRecord(1, 2, 3, 4, 5)
    >>> record.identity_hash == field_hash(1, 2, 3, 4, 5)
    True
    """

    name_commitment: int
    dob_commitment: int
    nationality_commitment: int
    id_commitment: int
    salt: int
    identity_hash: int = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "identity_hash",
            field_hash(
                self.name_commitment,
                self.dob_commitment,
                self.nationality_commitment,
                self.id_commitment,
                self.salt,
            ),
        )

    def commitments(self) -> Dict[AttributeKind, AttributeCommitment]:
        """Return the attribute commitments keyed by kind."""
        return {
            AttributeKind.NAME: AttributeCommitment(
                self.name_commitment, self.salt, AttributeKind.NAME
            ),
            AttributeKind.DOB: AttributeCommitment(
                self.dob_commitment, self.salt, AttributeKind.DOB
            ),
            AttributeKind.NATIONALITY: AttributeCommitment(
                self.nationality_commitment, self.salt, AttributeKind.NATIONALITY
            ),
            AttributeKind.ID_NUMBER: AttributeCommitment(
                self.id_commitment, self.salt, AttributeKind.ID_NUMBER
            ),
        }


class Direction(str, Enum):
    """Position of the current node relative to its sibling."""

    LEFT = "left"
    RIGHT = "right"


@dataclass(frozen=True)
class WitnessNode:
    """One level of a Merkle authentication path."""

    sibling: int
    direction: Direction


@dataclass(frozen=True)
class MerkleWitness:
    """
    Authentication path from a leaf up to the root.

    Entries are ordered from the leaf level upwards. ``Direction.LEFT``
    means the node being authenticated is the left child at that level.
    A witness is only meaningful against the root it was computed from.
    """

    path: Tuple[WitnessNode, ...]

    @property
    def depth(self) -> int:
        return len(self.path)

    @property
    def index(self) -> int:
        """Leaf index implied by the path directions."""
        index = 0
        for level, node in enumerate(self.path):
            if node.direction is Direction.RIGHT:
                index |= 1 << level
        return index

    def __len__(self) -> int:
        return len(self.path)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": [
                {
                    "sibling": format(node.sibling, "064x"),
                    "direction": node.direction.value,
                }
                for node in self.path
            ]
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MerkleWitness":
        return cls(
            tuple(
                WitnessNode(int(node["sibling"], 16), Direction(node["direction"]))
                for node in data["path"]
            )
        )


@dataclass(frozen=True)
class Snapshot:
    """
    Immutable point-in-time capture of the ledger.

    Parameters
    ----------
    timestamp : int
        Capture time in milliseconds since the epoch.
    total_population : int
        Number of registered participants.
    accumulator_root : int
        Accumulator root at capture time.
    aggregate_hash : int
        Hash of the demographic aggregate at capture time.
    """

    timestamp: int
    total_population: int
    accumulator_root: int
    aggregate_hash: int

    @property
    def snapshot_hash(self) -> int:
        """Hash committing to all snapshot fields."""
        return field_hash(
            self.timestamp,
            self.total_population,
            self.accumulator_root,
            self.aggregate_hash,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "captured_at": datetime.fromtimestamp(
                self.timestamp / 1000, tz=timezone.utc
            ).isoformat(),
            "total_population": self.total_population,
            "accumulator_root": format(self.accumulator_root, "064x"),
            "aggregate_hash": format(self.aggregate_hash, "064x"),
            "snapshot_hash": format(self.snapshot_hash, "064x"),
        }


@dataclass(frozen=True)
class PredicateResult:
    """
    Outcome of a proof predicate.

    ``satisfied`` is the predicate's honest answer. A False answer is a
    normal outcome; call ``require()`` to turn it into ``ClaimFailed``.

    Parameters
    ----------
    predicate : str
        Predicate name.
    satisfied : bool
        Whether the claim holds.
    public_inputs : Dict[str, Any]
        The public inputs the answer was computed against.
    """

    predicate: str
    satisfied: bool
    public_inputs: Dict[str, Any] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return self.satisfied

    def require(self) -> "PredicateResult":
        """Return self if satisfied, otherwise raise ``ClaimFailed``."""
        if not self.satisfied:
            raise ClaimFailed(self.predicate)
        return self


@dataclass(frozen=True)
class RegistrationReceipt:
    """
    Result of a successful registration.

    Parameters
    ----------
    index : int
        Accumulator index of the new leaf.
    leaf : int
        Participant entry stored at ``index``.
    previous_root : int
        Root before the registration.
    new_root : int
        Root after the registration.
    participant_count : int
        Participant count after the registration.
    registered_at : datetime
        Time of admission.
    receipt_id : Optional[str]
        Identifier for logs and audit trails.
    """

    index: int
    leaf: int
    previous_root: int
    new_root: int
    participant_count: int
    registered_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    receipt_id: Optional[str] = None
