import threading

import pytest

from zk_citizen.aggregates import DemographicData
from zk_citizen.commitment import commit_string, derive_census_nullifier, hash_string
from zk_citizen.constants import EMPTY_LEAF, FIELD_MODULUS
from zk_citizen.exceptions import (
    AccumulatorError,
    AccumulatorFull,
    AdminSignatureInvalid,
    ConfigurationError,
    DuplicateRegistration,
    InvalidFieldElement,
    RegistrationError,
    SlotOccupied,
    StaleRoot,
)
from zk_citizen.ledger import Admission, Ledger
from zk_citizen.registration import CensusEntry, PassportEntry, RegistrationProtocol
from zk_citizen.signing import AdminSigner

# ═══════════════════════════════════════════════════════════════════════════════
# CONCRETE SCENARIO: DUPLICATE NULLIFIER
# ═══════════════════════════════════════════════════════════════════════════════


def test_duplicate_nullifier_is_rejected_and_population_unchanged(
    ledger, protocol, make_participant
):
    entry, nullifier = make_participant(1)

    ticket = protocol.prepare(entry, nullifier)
    receipt = protocol.register(entry, nullifier, ticket.expected_root, ticket.witness)
    assert receipt.participant_count == 1
    assert ledger.read_state().participant_count == 1

    ticket = protocol.prepare(entry, nullifier)
    with pytest.raises(DuplicateRegistration) as exc_info:
        protocol.register(entry, nullifier, ticket.expected_root, ticket.witness)

    assert not exc_info.value.retryable
    state = ledger.read_state()
    assert state.participant_count == 1
    assert state.root == receipt.new_root


def test_nullifier_reuse_rejected_with_different_attributes(ledger, protocol, make_participant):
    first, nullifier = make_participant(1)
    other, _ = make_participant(2)
    protocol.submit(first, nullifier)

    with pytest.raises(DuplicateRegistration):
        protocol.submit(other, nullifier)
    assert ledger.participant_count == 1


# ═══════════════════════════════════════════════════════════════════════════════
# REGISTRATION FLOW
# ═══════════════════════════════════════════════════════════════════════════════


def test_successful_registration_updates_all_state(ledger, protocol, make_participant):
    entry, nullifier = make_participant(1)
    before = ledger.read_state()

    ticket = protocol.prepare(entry, nullifier)
    assert ticket.index == 0
    assert ticket.leaf == entry.leaf(nullifier)

    receipt = protocol.register(entry, nullifier, ticket.expected_root, ticket.witness)
    after = ledger.read_state()

    assert receipt.index == 0
    assert receipt.previous_root == before.root
    assert receipt.new_root == after.root != before.root
    assert after.leaf_count == after.participant_count == after.nullifier_count == 1
    assert after.aggregate.total == 1
    assert after.next_index == 1
    assert ledger.is_nullifier_used(nullifier)
    assert ledger.leaf(0) == entry.leaf(nullifier)
    assert ledger.root_from_leaf(ledger.witness_for(0), ticket.leaf) == after.root


def test_stale_witness_is_rejected_without_mutation(ledger, protocol, make_participant):
    a, na = make_participant(1)
    b, nb = make_participant(2)

    stale_ticket = protocol.prepare(b, nb)
    protocol.submit(a, na)
    before = ledger.read_state()

    with pytest.raises(StaleRoot) as exc_info:
        protocol.register(b, nb, stale_ticket.expected_root, stale_ticket.witness)

    assert exc_info.value.retryable
    assert ledger.read_state() == before
    assert not ledger.is_nullifier_used(nb)


def test_witness_not_matching_expected_root_is_stale(ledger, protocol, make_participant):
    entry, nullifier = make_participant(1)
    ticket = protocol.prepare(entry, nullifier)

    with pytest.raises(StaleRoot):
        protocol.register(entry, nullifier, ticket.expected_root + 1, ticket.witness)
    assert ledger.participant_count == 0


def test_out_of_turn_slot_is_occupied(ledger, protocol, make_participant):
    entry, nullifier = make_participant(1)
    state = ledger.read_state()
    witness = ledger.witness_for(3)

    with pytest.raises(SlotOccupied):
        protocol.register(entry, nullifier, state.root, witness)
    assert ledger.participant_count == 0


def test_submit_retries_after_lost_race(ledger, make_participant):
    protocol = RegistrationProtocol(ledger, require_signature=False)
    a, na = make_participant(1)
    b, nb = make_participant(2)

    original_prepare = protocol.prepare
    calls = {"count": 0}

    def racing_prepare(entry, nullifier):
        ticket = original_prepare(entry, nullifier)
        calls["count"] += 1
        if calls["count"] == 1:
            # Another writer lands between snapshot and commit
            other = original_prepare(a, na)
            protocol.register(a, na, other.expected_root, other.witness)
        return ticket

    protocol.prepare = racing_prepare
    receipt = protocol.submit(b, nb, max_attempts=3)

    assert calls["count"] == 2
    assert receipt.index == 1
    assert ledger.participant_count == 2


def test_submit_gives_up_after_bound(ledger, make_participant):
    protocol = RegistrationProtocol(ledger, require_signature=False)
    entry, nullifier = make_participant(1)

    def always_stale(*args, **kwargs):
        raise StaleRoot(0)

    protocol.register = always_stale
    with pytest.raises(StaleRoot):
        protocol.submit(entry, nullifier, max_attempts=2)


def test_accumulator_full(make_participant):
    ledger = Ledger(depth=1)
    protocol = RegistrationProtocol(ledger, require_signature=False)
    for i in range(2):
        protocol.submit(*make_participant(i))

    entry, nullifier = make_participant(5)
    with pytest.raises(AccumulatorFull):
        protocol.submit(entry, nullifier)
    assert ledger.participant_count == 2


def test_scheme_mismatch(ledger, protocol, demographics):
    entry = CensusEntry(passport_commitment=123, demographics=demographics)
    with pytest.raises(RegistrationError):
        protocol.prepare(entry, 5)


# ═══════════════════════════════════════════════════════════════════════════════
# LEDGER COMPARE-AND-APPLY
# ═══════════════════════════════════════════════════════════════════════════════


def test_apply_checks_root_before_anything_else(ledger, demographics):
    admission = Admission(index=0, leaf=42, nullifier=7, demographics=demographics)
    with pytest.raises(StaleRoot):
        ledger.apply_if_root_matches(ledger.root + 1, admission)
    assert ledger.read_state().nullifier_count == 0


def test_apply_rejects_used_nullifier_before_slot(ledger, demographics):
    ledger.apply_if_root_matches(
        ledger.root, Admission(index=0, leaf=42, nullifier=7, demographics=demographics)
    )
    with pytest.raises(DuplicateRegistration):
        ledger.apply_if_root_matches(
            ledger.root, Admission(index=0, leaf=43, nullifier=7, demographics=demographics)
        )


@pytest.mark.parametrize("nullifier", [-1, FIELD_MODULUS, "7"])
def test_apply_rejects_bad_nullifier_without_mutation(ledger, demographics, nullifier):
    before = ledger.read_state()
    admission = Admission(index=0, leaf=123, nullifier=nullifier, demographics=demographics)

    with pytest.raises(InvalidFieldElement):
        ledger.apply_if_root_matches(ledger.root, admission)

    assert ledger.read_state() == before
    assert ledger.leaf(0) == EMPTY_LEAF


def test_apply_rejects_bad_demographics_without_mutation(ledger):
    before = ledger.read_state()
    admission = Admission(index=0, leaf=123, nullifier=7, demographics=None)

    with pytest.raises(RegistrationError):
        ledger.apply_if_root_matches(ledger.root, admission)

    assert ledger.read_state() == before
    assert not ledger.is_nullifier_used(7)


def test_ledger_depth_zero_is_rejected():
    with pytest.raises(AccumulatorError):
        Ledger(depth=0)


def test_to_record_layout(ledger, protocol, make_participant):
    entry, nullifier = make_participant(1)
    protocol.submit(entry, nullifier)

    record = ledger.to_record()
    assert set(record) >= {"root", "leafCount", "capacityDepth", "nullifiers", "aggregate"}
    assert record["leafCount"] == 1
    assert record["capacityDepth"] == 8
    assert record["nullifiers"] == [f"{nullifier:064x}"]
    assert record["aggregate"]["total"] == 1
    assert record["leaves"] == {"0": f"{entry.leaf(nullifier):064x}"}


def test_snapshot_records_aggregate_hash(ledger, protocol, make_participant):
    for i in range(3):
        protocol.submit(*make_participant(i))

    snapshot = ledger.snapshot(timestamp=1_700_000_000_000)
    state = ledger.read_state()

    assert snapshot.total_population == 3
    assert snapshot.accumulator_root == state.root
    assert snapshot.aggregate_hash == state.aggregate.hash() == state.aggregate_hash
    assert ledger.latest_snapshot is snapshot
    assert snapshot.to_dict()["snapshot_hash"] == f"{snapshot.snapshot_hash:064x}"


def test_independent_ledgers_do_not_share_state(make_participant):
    first = RegistrationProtocol(Ledger(depth=4), require_signature=False)
    second = RegistrationProtocol(Ledger(depth=4), require_signature=False)
    entry, nullifier = make_participant(1)

    first.submit(entry, nullifier)
    second.submit(entry, nullifier)

    assert first.ledger.participant_count == second.ledger.participant_count == 1


# ═══════════════════════════════════════════════════════════════════════════════
# CONSERVATION AND CONCURRENCY
# ═══════════════════════════════════════════════════════════════════════════════


def test_conservation_after_mixed_outcomes(ledger, protocol, make_participant):
    region = hash_string("south")
    successes = 0
    for i in range(20):
        bracket = i % 6
        entry, nullifier = make_participant(
            i % 15, demographics_override=DemographicData(bracket, region, 1, 0)
        )
        try:
            protocol.submit(entry, nullifier)
            successes += 1
        except DuplicateRegistration:
            pass

    state = ledger.read_state()
    assert successes == 15
    assert sum(state.aggregate.bucket_counts()) == state.aggregate.total
    assert state.aggregate.total == state.participant_count == successes


def test_concurrent_registrations_serialize(make_participant):
    ledger = Ledger(depth=8)
    protocol = RegistrationProtocol(ledger, require_signature=False)
    participants = [make_participant(i) for i in range(24)]
    errors = []

    def worker(chunk):
        for entry, nullifier in chunk:
            try:
                protocol.submit(entry, nullifier, max_attempts=50)
            except Exception as e:  # collected for the assertion below
                errors.append(e)

    threads = [
        threading.Thread(target=worker, args=(participants[i::4],)) for i in range(4)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    state = ledger.read_state()
    assert errors == []
    assert state.participant_count == state.leaf_count == 24
    assert state.next_index == 24
    assert state.aggregate.total == 24
    assert sorted(int(index) for index in ledger.to_record()["leaves"]) == list(range(24))


def test_racing_tickets_for_same_slot_exactly_one_wins(ledger, protocol, make_participant):
    a, na = make_participant(1)
    b, nb = make_participant(2)
    ticket_a = protocol.prepare(a, na)
    ticket_b = protocol.prepare(b, nb)
    assert ticket_a.index == ticket_b.index

    protocol.register(a, na, ticket_a.expected_root, ticket_a.witness)
    with pytest.raises(StaleRoot):
        protocol.register(b, nb, ticket_b.expected_root, ticket_b.witness)
    assert ledger.participant_count == 1


# ═══════════════════════════════════════════════════════════════════════════════
# CENSUS ENTRIES
# ═══════════════════════════════════════════════════════════════════════════════


def test_census_registration(demographics):
    ledger = Ledger(depth=6, scheme="census", context_id=9)
    protocol = RegistrationProtocol(ledger, require_signature=False)

    passport_commitment = commit_string("E1234567A", 4242)
    nullifier = derive_census_nullifier(passport_commitment, ledger.context_id, 31337)
    entry = CensusEntry(passport_commitment, demographics)

    receipt = protocol.submit(entry, nullifier)
    assert receipt.leaf == entry.leaf(nullifier)
    assert ledger.leaf(receipt.index) == receipt.leaf != EMPTY_LEAF

    # A different context yields a fresh nullifier for the same participant
    other_ledger = Ledger(depth=6, scheme="census", context_id=10)
    other_nullifier = derive_census_nullifier(
        passport_commitment, other_ledger.context_id, 31337
    )
    assert other_nullifier != nullifier


# ═══════════════════════════════════════════════════════════════════════════════
# ADMIN SIGNATURES
# ═══════════════════════════════════════════════════════════════════════════════


def test_signed_admission(ledger, make_participant):
    signer = AdminSigner()
    protocol = RegistrationProtocol(
        ledger, admin_public_key=signer.public_key_bytes, require_signature=True
    )
    entry, nullifier = make_participant(1)

    signature = signer.sign_admission(entry.identity_hash, nullifier)
    receipt = protocol.submit(entry, nullifier, signature=signature)
    assert receipt.participant_count == 1


def test_missing_or_wrong_signature_rejected(ledger, make_participant):
    signer = AdminSigner()
    protocol = RegistrationProtocol(
        ledger, admin_public_key=signer.public_key_bytes, require_signature=True
    )
    entry, nullifier = make_participant(1)

    with pytest.raises(AdminSignatureInvalid):
        protocol.submit(entry, nullifier)

    forged = AdminSigner().sign_admission(entry.identity_hash, nullifier)
    with pytest.raises(AdminSignatureInvalid):
        protocol.submit(entry, nullifier, signature=forged)

    other_pair = signer.sign_admission(entry.identity_hash, nullifier + 1)
    with pytest.raises(AdminSignatureInvalid):
        protocol.submit(entry, nullifier, signature=other_pair)

    assert ledger.participant_count == 0


def test_signature_required_needs_key(ledger):
    with pytest.raises(ConfigurationError):
        RegistrationProtocol(ledger, require_signature=True)


def test_passport_entry_leaf(demographics):
    entry = PassportEntry(identity_hash=11, demographics=demographics)
    assert entry.signing_hash == 11
    assert entry.leaf(22) != entry.leaf(23)
