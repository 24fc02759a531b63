import pytest

from zk_citizen.constants import FIELD_MODULUS
from zk_citizen.exceptions import AlreadyUsed, InvalidFieldElement
from zk_citizen.nullifiers import NullifierRegistry


def test_mark_and_query():
    registry = NullifierRegistry()
    assert not registry.is_used(5)

    registry.mark_used(5)
    assert registry.is_used(5)
    assert 5 in registry
    assert len(registry) == 1


def test_second_mark_is_an_error():
    registry = NullifierRegistry()
    registry.mark_used(5)

    with pytest.raises(AlreadyUsed) as exc_info:
        registry.mark_used(5)

    assert len(registry) == 1
    assert exc_info.value.error_code == "NULL_001"
    # Only a preview of the nullifier is exposed
    assert "nullifier_preview" in exc_info.value.context


def test_snapshot_is_immutable_copy():
    registry = NullifierRegistry([1, 2])
    snapshot = registry.snapshot()
    registry.mark_used(3)

    assert snapshot == frozenset({1, 2})
    assert list(registry) == [1, 2, 3]


def test_digest_is_order_independent():
    assert NullifierRegistry([3, 1, 2]).digest() == NullifierRegistry([1, 2, 3]).digest()
    assert NullifierRegistry([1]).digest() != NullifierRegistry([2]).digest()


def test_preload_rejects_duplicates():
    with pytest.raises(AlreadyUsed):
        NullifierRegistry([4, 4])


def test_rejects_non_field_values():
    with pytest.raises(InvalidFieldElement):
        NullifierRegistry().mark_used(FIELD_MODULUS)
