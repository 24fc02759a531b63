"""
Authoritative registry state for the ZK-Citizen core.

A ``Ledger`` owns the accumulator, the nullifier registry, the participant
counter and the aggregate tracker of one scheme instance, and is the only
place they change. It exposes the storage contract the protocol relies on:

* ``read_state()`` returns a consistent, immutable ``LedgerView``;
* ``apply_if_root_matches(expected_root, admission)`` atomically compares
  the current root with ``expected_root`` and, if equal, validates and
  applies the admission, or fails without touching any state.

All writers are serialized by one lock held only for the compare-and-apply
step. Witness computation and predicate evaluation happen outside it.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import structlog

from .accumulator import MerkleAccumulator
from .aggregates import AggregateTracker, DemographicAggregate, DemographicData
from .constants import EMPTY_LEAF
from .data_models import MerkleWitness, RegistrationReceipt, Snapshot
from .exceptions import (
    AccumulatorFull,
    DuplicateRegistration,
    RegistrationError,
    SlotOccupied,
    StaleRoot,
)
from .hashing import to_field
from .nullifiers import NullifierRegistry
from .utils import generate_id, short_hex, timer, to_hex
from . import config

# Initialize structured logger
logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class LedgerView:
    """Consistent read-only view of the ledger."""

    root: int
    next_index: int
    leaf_count: int
    depth: int
    participant_count: int
    nullifier_count: int
    aggregate: DemographicAggregate
    aggregate_hash: Optional[int]


@dataclass(frozen=True)
class SlotTicket:
    """
    Root, index and witness of the next free slot, read in one step.

    Registration computes its proposed leaf against this ticket outside the
    ledger lock and presents ``expected_root`` at commit time.
    """

    expected_root: int
    index: int
    witness: MerkleWitness


@dataclass(frozen=True)
class Admission:
    """A fully computed admission waiting to be applied."""

    index: int
    leaf: int
    nullifier: int
    demographics: DemographicData


class Ledger:
    """
    State container for one registry instance.

    Parameters
    ----------
    depth : Optional[int], default=None
        Accumulator depth. Defaults to ``config.ACCUMULATOR_DEPTH``.
    scheme : str, default="passport"
        Label of the scheme this ledger serves ("passport" or "census").
    context_id : Optional[int], default=None
        Context identifier for context-bound nullifiers. Defaults to
        ``config.CENSUS_CONTEXT_ID``.

    Examples
    --------
    >>> ledger = Ledger(depth=20)
    >>> ledger.read_state().participant_count
    0
    """

    def __init__(
        self,
        depth: Optional[int] = None,
        scheme: str = "passport",
        context_id: Optional[int] = None,
    ) -> None:
        self.scheme = scheme
        self.context_id = to_field(
            config.CENSUS_CONTEXT_ID if context_id is None else context_id
        )
        self.ledger_id = generate_id(scheme)

        self._accumulator = MerkleAccumulator(
            config.ACCUMULATOR_DEPTH if depth is None else depth
        )
        self._nullifiers = NullifierRegistry()
        self._aggregates = AggregateTracker()
        self._participant_count = 0
        self._aggregate_hash: Optional[int] = None
        self._latest_snapshot: Optional[Snapshot] = None
        self._lock = threading.Lock()

        logger.info(
            "Ledger initialized",
            ledger_id=self.ledger_id,
            scheme=scheme,
            depth=self._accumulator.depth,
            capacity=self._accumulator.capacity,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def depth(self) -> int:
        return self._accumulator.depth

    @property
    def capacity(self) -> int:
        return self._accumulator.capacity

    @property
    def root(self) -> int:
        with self._lock:
            return self._accumulator.root

    @property
    def participant_count(self) -> int:
        with self._lock:
            return self._participant_count

    @property
    def latest_snapshot(self) -> Optional[Snapshot]:
        return self._latest_snapshot

    def read_state(self) -> LedgerView:
        """Return a consistent snapshot of the authoritative fields."""
        with self._lock:
            return self._view()

    def _view(self) -> LedgerView:
        return LedgerView(
            root=self._accumulator.root,
            next_index=self._accumulator.next_index,
            leaf_count=self._accumulator.leaf_count,
            depth=self._accumulator.depth,
            participant_count=self._participant_count,
            nullifier_count=len(self._nullifiers),
            aggregate=self._aggregates.snapshot(),
            aggregate_hash=self._aggregate_hash,
        )

    def is_nullifier_used(self, nullifier: int) -> bool:
        with self._lock:
            return self._nullifiers.is_used(nullifier)

    def leaf(self, index: int) -> int:
        with self._lock:
            return self._accumulator.leaf(index)

    def witness_for(self, index: int) -> MerkleWitness:
        """Authentication path of ``index`` under the current root."""
        with self._lock:
            return self._accumulator.witness_for(index)

    def next_slot(self) -> SlotTicket:
        """
        Read the current root and the next free slot's witness atomically.

        Raises
        ------
        AccumulatorFull
            If every slot is occupied.
        """
        with self._lock:
            index = self._accumulator.next_index
            witness = self._accumulator.witness_for(index)
            return SlotTicket(self._accumulator.root, index, witness)

    def root_from_leaf(self, witness: MerkleWitness, leaf: int) -> int:
        """Pure root recomputation against this ledger's depth."""
        return self._accumulator.root_from_leaf(witness, leaf)

    def region_distribution(self) -> Dict[int, int]:
        with self._lock:
            return self._aggregates.region_distribution()

    def tier_distribution(self) -> Dict[int, int]:
        with self._lock:
            return self._aggregates.tier_distribution()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def apply_if_root_matches(
        self, expected_root: int, admission: Admission
    ) -> RegistrationReceipt:
        """
        Atomically validate and apply one admission.

        Every check runs before any mutation, so a failure leaves the
        ledger exactly as it was.

        Parameters
        ----------
        expected_root : int
            Root the admission was computed against.
        admission : Admission
            Leaf, index, nullifier and demographics to apply.

        Returns
        -------
        RegistrationReceipt
            Receipt describing the applied admission.

        Raises
        ------
        StaleRoot
            If the current root differs from ``expected_root``.
        InvalidFieldElement
            If the nullifier is not a field element.
        RegistrationError
            If the demographics are not ``DemographicData``.
        DuplicateRegistration
            If the nullifier was already used.
        SlotOccupied
            If the target slot is occupied or not the next free slot.
        AccumulatorFull
            If the accumulator has no free slot.
        AggregateMismatch
            If the conservation invariant fails after applying.
        """
        with self._lock:
            current_root = self._accumulator.root
            if current_root != expected_root:
                raise StaleRoot(expected_root, current_root)

            nullifier = to_field(admission.nullifier)
            if not isinstance(admission.demographics, DemographicData):
                raise RegistrationError(
                    "Admission demographics must be DemographicData",
                    context={"index": admission.index},
                )

            if self._nullifiers.is_used(nullifier):
                raise DuplicateRegistration(nullifier)

            if self._accumulator.is_full:
                raise AccumulatorFull(admission.index, self._accumulator.capacity)
            self._accumulator.check_insertable(admission.index, admission.leaf)
            if admission.index != self._accumulator.next_index:
                raise SlotOccupied(admission.index, reason="not the next free slot")

            # Commit: nothing below raises on validated input
            new_root = self._accumulator.insert(admission.index, admission.leaf)
            self._nullifiers.mark_used(nullifier)
            self._participant_count += 1
            self._aggregates.record(admission.demographics)

            self._aggregates.check_conservation(self._participant_count)

            receipt = RegistrationReceipt(
                index=admission.index,
                leaf=admission.leaf,
                previous_root=current_root,
                new_root=new_root,
                participant_count=self._participant_count,
                receipt_id=generate_id("reg"),
            )

        logger.info(
            "Participant admitted",
            ledger_id=self.ledger_id,
            index=receipt.index,
            participant_count=receipt.participant_count,
            new_root=short_hex(new_root),
        )

        return receipt

    @timer
    def snapshot(self, timestamp: Optional[int] = None) -> Snapshot:
        """
        Capture an immutable snapshot and record its aggregate hash.

        Parameters
        ----------
        timestamp : Optional[int], default=None
            Capture time in milliseconds. Defaults to now.

        Raises
        ------
        AggregateMismatch
            If the conservation invariant does not hold.
        """
        if timestamp is None:
            timestamp = int(time.time() * 1000)

        with self._lock:
            self._aggregates.check_conservation(self._participant_count)
            aggregate = self._aggregates.snapshot()

            snapshot = Snapshot(
                timestamp=timestamp,
                total_population=self._participant_count,
                accumulator_root=self._accumulator.root,
                aggregate_hash=aggregate.hash(),
            )
            self._aggregate_hash = snapshot.aggregate_hash
            self._latest_snapshot = snapshot

        logger.info(
            "Snapshot created",
            ledger_id=self.ledger_id,
            total_population=snapshot.total_population,
            snapshot_hash=short_hex(snapshot.snapshot_hash),
        )

        return snapshot

    def to_record(self) -> Dict[str, Any]:
        """
        Export the persisted logical layout.

        Returns
        -------
        Dict[str, Any]
            ``root``, ``leafCount``, ``capacityDepth``, ``nullifiers`` and
            ``aggregate``, with occupied ``leaves`` for rebuilding the tree.
        """
        with self._lock:
            aggregate = self._aggregates.snapshot()
            return {
                "root": to_hex(self._accumulator.root),
                "leafCount": self._accumulator.leaf_count,
                "capacityDepth": self._accumulator.depth,
                "nullifiers": [to_hex(n) for n in self._nullifiers],
                "aggregate": aggregate.to_dict(),
                "leaves": {
                    str(index): to_hex(value)
                    for index, value in self._accumulator.leaves()
                    if value != EMPTY_LEAF
                },
            }
