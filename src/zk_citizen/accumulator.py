"""
Fixed-depth Merkle accumulator for the ZK-Citizen core.

The accumulator is a sparse binary Merkle tree of depth ``D`` holding
``2**D`` leaves. Unoccupied leaves hold the ``EMPTY_LEAF`` sentinel and
whole empty subtrees are represented by precomputed hashes, so memory
grows with the number of occupied leaves rather than with capacity.

Leaves are append-only by index: ``insert`` is the only mutator and it
refuses to overwrite a non-empty leaf. The root is maintained
incrementally, one path of ``D`` hashes per insert.
"""

from typing import Dict, Iterator, List, Optional, Tuple

import structlog

from .constants import DEFAULT_TREE_DEPTH, EMPTY_LEAF, MAX_TREE_DEPTH
from .data_models import Direction, MerkleWitness, WitnessNode
from .exceptions import AccumulatorError, AccumulatorFull, InvalidWitness, SlotOccupied
from .hashing import field_hash, is_field_element
from .utils import short_hex

# Initialize structured logger
logger = structlog.get_logger(__name__)


def compute_root(witness: MerkleWitness, leaf: int) -> int:
    """
    Recompute the root implied by a leaf and its authentication path.

    Pure function; depth checks are left to the caller.

    Parameters
    ----------
    witness : MerkleWitness
        Authentication path, leaf level first.
    leaf : int
        Leaf value to authenticate.

    Returns
    -------
    int
        The root the path leads to.
    """
    current = leaf
    for node in witness.path:
        if node.direction is Direction.LEFT:
            current = field_hash(current, node.sibling)
        else:
            current = field_hash(node.sibling, current)
    return current


class MerkleAccumulator:
    """
    Append-only sparse Merkle accumulator.

    Parameters
    ----------
    depth : int, default=DEFAULT_TREE_DEPTH
        Tree depth; capacity is ``2**depth`` leaves.

    Examples
    --------
    >>> acc = MerkleAccumulator(depth=20)
    >>> root = acc.insert(0, 42)
    >>> acc.root_from_leaf(acc.witness_for(0), 42) == acc.root
    True
    """

    def __init__(self, depth: int = DEFAULT_TREE_DEPTH) -> None:
        if not isinstance(depth, int) or not 1 <= depth <= MAX_TREE_DEPTH:
            raise AccumulatorError(
                f"depth must be between 1 and {MAX_TREE_DEPTH}", depth=depth
            )

        self.depth = depth
        self.capacity = 1 << depth

        # Hash of an all-empty subtree at each level, leaves at level 0
        self._empty_subtrees: List[int] = [EMPTY_LEAF]
        for _ in range(depth):
            previous = self._empty_subtrees[-1]
            self._empty_subtrees.append(field_hash(previous, previous))

        # Non-empty nodes keyed by (level, index)
        self._nodes: Dict[Tuple[int, int], int] = {}
        self._leaf_count = 0
        self._next_index = 0

        logger.debug(
            "MerkleAccumulator initialized",
            depth=depth,
            capacity=self.capacity,
            empty_root=short_hex(self.empty_root),
        )

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def root(self) -> int:
        """Current root."""
        return self._node(self.depth, 0)

    @property
    def empty_root(self) -> int:
        """Root of the tree with every leaf empty."""
        return self._empty_subtrees[self.depth]

    @property
    def leaf_count(self) -> int:
        """Number of occupied leaves."""
        return self._leaf_count

    @property
    def next_index(self) -> int:
        """Index following the highest occupied leaf (``capacity`` when full)."""
        return self._next_index

    @property
    def is_full(self) -> bool:
        return self._next_index >= self.capacity

    def _node(self, level: int, index: int) -> int:
        return self._nodes.get((level, index), self._empty_subtrees[level])

    def _check_index(self, index: int) -> None:
        if not isinstance(index, int) or isinstance(index, bool) or index < 0:
            raise AccumulatorError(f"Invalid leaf index {index!r}", depth=self.depth)
        if index >= self.capacity:
            raise AccumulatorFull(index, self.capacity)

    def leaf(self, index: int) -> int:
        """Return the value at ``index`` (``EMPTY_LEAF`` if unoccupied)."""
        self._check_index(index)
        return self._node(0, index)

    def is_empty(self, index: int) -> bool:
        return self.leaf(index) == EMPTY_LEAF

    def leaves(self) -> Iterator[Tuple[int, int]]:
        """Iterate over occupied ``(index, value)`` pairs in index order."""
        indices = sorted(index for level, index in self._nodes if level == 0)
        for index in indices:
            yield index, self._nodes[(0, index)]

    def witness_for(self, index: int) -> MerkleWitness:
        """
        Return the authentication path of ``index`` under the current root.

        Parameters
        ----------
        index : int
            Leaf index, occupied or not.

        Returns
        -------
        MerkleWitness
            Path of exactly ``depth`` entries.

        Raises
        ------
        AccumulatorFull
            If ``index`` is beyond capacity.
        """
        self._check_index(index)

        path = []
        current = index
        for level in range(self.depth):
            if current % 2 == 0:
                path.append(WitnessNode(self._node(level, current + 1), Direction.LEFT))
            else:
                path.append(WitnessNode(self._node(level, current - 1), Direction.RIGHT))
            current //= 2

        return MerkleWitness(tuple(path))

    def root_from_leaf(self, witness: MerkleWitness, leaf: int) -> int:
        """
        Compute the root implied by ``leaf`` at the witness position.

        Does not read or modify the tree beyond checking the witness depth.

        Raises
        ------
        InvalidWitness
            If the witness length differs from the tree depth.
        """
        if witness.depth != self.depth:
            raise InvalidWitness(
                f"Witness has {witness.depth} entries, expected {self.depth}",
                depth=self.depth,
            )
        return compute_root(witness, leaf)

    def verify(self, witness: MerkleWitness, leaf: int, root: Optional[int] = None) -> bool:
        """Return True if ``leaf`` and ``witness`` lead to ``root`` (default: current)."""
        if witness.depth != self.depth:
            return False
        expected = self.root if root is None else root
        return compute_root(witness, leaf) == expected

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def check_insertable(self, index: int, leaf: int) -> None:
        """
        Validate an insert without applying it.

        Raises
        ------
        AccumulatorFull
            If ``index`` is beyond capacity.
        SlotOccupied
            If the leaf at ``index`` is not empty.
        AccumulatorError
            If ``leaf`` is not a non-empty field element.
        """
        self._check_index(index)
        if not is_field_element(leaf) or leaf == EMPTY_LEAF:
            raise AccumulatorError(
                "Leaf value must be a non-empty field element", index=index
            )
        if self._node(0, index) != EMPTY_LEAF:
            raise SlotOccupied(index)

    def insert(self, index: int, leaf: int) -> int:
        """
        Store ``leaf`` at an empty ``index`` and return the new root.

        Parameters
        ----------
        index : int
            Target leaf index.
        leaf : int
            Non-empty field element.

        Returns
        -------
        int
            The new root.

        Raises
        ------
        SlotOccupied
            If the slot already holds a value.
        AccumulatorFull
            If ``index >= capacity``.
        """
        self.check_insertable(index, leaf)

        self._nodes[(0, index)] = leaf
        current = index
        value = leaf
        for level in range(self.depth):
            if current % 2 == 0:
                value = field_hash(value, self._node(level, current + 1))
            else:
                value = field_hash(self._node(level, current - 1), value)
            current //= 2
            self._nodes[(level + 1, current)] = value

        self._leaf_count += 1
        self._next_index = max(self._next_index, index + 1)

        logger.debug(
            "Leaf inserted into accumulator",
            index=index,
            leaf_count=self._leaf_count,
            new_root=short_hex(value),
        )

        return value
