import dataclasses
import hashlib
import json

import pytest

from zk_citizen.accumulator import MerkleAccumulator
from zk_citizen.aggregates import DemographicAggregate
from zk_citizen.circuits import PREDICATE_INPUTS, PredicateCircuit, validate_inputs
from zk_citizen.commitment import commit_date, commit_string
from zk_citizen.constants import WITNESS_BUNDLE_FORMAT
from zk_citizen.data_models import MerkleWitness
from zk_citizen.exceptions import (
    ClaimFailed,
    CommitmentMismatch,
    PredicateInputError,
    ProofGenerationError,
    ProofVerificationError,
)
from zk_citizen.prover import ProofArtifact, WitnessBundleProver

SALT = 12345


@pytest.fixture
def prover():
    return WitnessBundleProver(tree_depth=6)


def age_inputs(min_age=18):
    public = {
        "dob_commitment": commit_date(1990, 5, 15, SALT),
        "min_age": min_age,
        "current_year": 2024,
    }
    private = {"dob_year": 1990, "dob_month": 5, "dob_day": 15, "salt": SALT}
    return public, private


# ═══════════════════════════════════════════════════════════════════════════════
# CIRCUITS
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize("predicate", sorted(PREDICATE_INPUTS))
def test_every_circuit_builds_and_validates(predicate):
    circuit = PredicateCircuit(predicate, tree_depth=4)
    spec = circuit.build_circuit()

    assert circuit.validate_circuit()
    contract = PREDICATE_INPUTS[predicate]
    assert spec["public_inputs"] == [f"public_{name}" for name in contract.public_names]
    assert spec["private_inputs"] == [f"private_{name}" for name in contract.private_names]
    assert circuit.generate_circuit_summary()["total_constraints"] == spec["constraint_count"]


def test_private_values_never_public():
    contract = PREDICATE_INPUTS["age_above"]
    assert "dob_year" in contract.private_names
    assert "salt" in contract.private_names
    assert "dob_commitment" in contract.public_names

    assert PREDICATE_INPUTS["population_in_range"].private_names == ("total",)


def test_unknown_predicate_and_unbuilt_circuit():
    with pytest.raises(ProofGenerationError):
        PredicateCircuit("no_such_predicate")
    with pytest.raises(ProofGenerationError):
        PredicateCircuit("age_above").validate_circuit()


def test_validate_inputs_reports_missing_and_unexpected():
    public, private = age_inputs()
    validate_inputs("age_above", public, private)

    with pytest.raises(ProofGenerationError):
        validate_inputs("age_above", {"min_age": 18}, private)
    with pytest.raises(ProofGenerationError):
        validate_inputs("age_above", dict(public, extra=1), private)
    with pytest.raises(ProofGenerationError):
        validate_inputs("age_above", dict(public, salt=SALT), private)


# ═══════════════════════════════════════════════════════════════════════════════
# PROVE / VERIFY
# ═══════════════════════════════════════════════════════════════════════════════


def test_age_proof_round_trip(prover):
    public, private = age_inputs()
    artifact = prover.prove("age_above", public, private)

    assert artifact.format == WITNESS_BUNDLE_FORMAT
    assert artifact.zero_knowledge is False
    assert prover.verify("age_above", public, artifact)


def test_other_prover_instance_verifies(prover):
    public, private = age_inputs()
    artifact = prover.prove("age_above", public, private)
    assert WitnessBundleProver(tree_depth=6).verify("age_above", public, artifact)


def test_verify_rejects_different_public_inputs(prover):
    public, private = age_inputs(min_age=18)
    artifact = prover.prove("age_above", public, private)

    other_public, _ = age_inputs(min_age=21)
    assert not prover.verify("age_above", other_public, artifact)


def test_verify_rejects_tampered_bundle(prover):
    public, private = age_inputs()
    artifact = prover.prove("age_above", public, private)

    data = bytearray(artifact.data)
    data[10] ^= 0x01
    tampered = dataclasses.replace(artifact, data=bytes(data))
    assert not prover.verify("age_above", public, tampered)


def test_verify_rejects_wrong_predicate_or_format(prover):
    public, private = age_inputs()
    artifact = prover.prove("age_above", public, private)

    assert not prover.verify("population_above", {"threshold": 1}, artifact)
    assert not prover.verify(
        "age_above", public, dataclasses.replace(artifact, format="groth16")
    )


def test_verify_raises_on_unparseable_artifact(prover):
    artifact = ProofArtifact("population_above", WITNESS_BUNDLE_FORMAT, b"\x00", False)
    with pytest.raises(ProofVerificationError):
        prover.verify("population_above", {"threshold": 1}, artifact)


def test_false_claims_are_not_provable(prover):
    public, private = age_inputs(min_age=40)
    with pytest.raises(ClaimFailed):
        prover.prove("age_above", public, private)


def test_commitment_mismatch_propagates(prover):
    public, private = age_inputs()
    private["salt"] = SALT + 1
    with pytest.raises(CommitmentMismatch):
        prover.prove("age_above", public, private)


def test_missing_inputs_fail_generation(prover):
    public, private = age_inputs()
    del private["salt"]
    with pytest.raises(ProofGenerationError):
        prover.prove("age_above", public, private)


def test_population_and_nationality_proofs(prover):
    artifact = prover.prove(
        "population_in_range", {"min_population": 100, "max_population": 200}, {"total": 150}
    )
    assert prover.verify(
        "population_in_range", {"min_population": 100, "max_population": 200}, artifact
    )

    commitment = commit_string("SG", SALT)
    public = {"nationality_commitment": commitment, "target_nationality": "SG"}
    artifact = prover.prove(
        "nationality_matches", public, {"nationality": "SG", "salt": SALT}
    )
    assert prover.verify("nationality_matches", public, artifact)


def test_membership_and_demographics_proofs(prover):
    acc = MerkleAccumulator(depth=6)
    acc.insert(0, 77)
    public = {"expected_root": acc.root}
    artifact = prover.prove(
        "membership_proof", public, {"leaf": 77, "witness": acc.witness_for(0)}
    )
    assert prover.verify("membership_proof", public, artifact)

    aggregate = DemographicAggregate(0, 2, 1, 0, 0, 0, total=3)
    public = {"stored_aggregate_hash": aggregate.hash()}
    artifact = prover.prove("demographics_consistent", public, {"aggregate": aggregate})
    assert prover.verify("demographics_consistent", public, artifact)


def test_bundle_exposes_private_inputs(prover):
    public, private = age_inputs()
    artifact = prover.prove("age_above", public, private)
    # The bundled backend is not zero-knowledge
    assert b'"dob_year": 1990' in artifact.data


def test_setup_keys_are_deterministic(prover):
    assert prover.setup("age_above") == WitnessBundleProver(tree_depth=6).setup("age_above")
    assert prover.setup("age_above") != prover.setup("population_above")


def bundle_for(prover, predicate, public_inputs, private_inputs):
    """Assemble a bundle directly, bypassing the checks ``prove`` runs."""
    _, verifying_key = prover.setup(predicate)
    circuit_hash = json.loads(verifying_key.decode())["circuit_hash"]
    metadata = {
        "format": WITNESS_BUNDLE_FORMAT,
        "zero_knowledge": False,
        "predicate": predicate,
        "public_inputs": public_inputs,
        "private_inputs": private_inputs,
    }
    metadata_bytes = json.dumps(metadata, sort_keys=True).encode()
    digest = hashlib.sha256(circuit_hash.encode() + metadata_bytes).digest()
    data = len(metadata_bytes).to_bytes(4, "big") + metadata_bytes + digest
    return ProofArtifact(predicate, WITNESS_BUNDLE_FORMAT, data, False)


def test_short_witness_bundles_do_not_verify(prover):
    acc = MerkleAccumulator(depth=6)
    acc.insert(0, 77)
    root = acc.root
    public = {"expected_root": root}

    with pytest.raises(PredicateInputError):
        prover.prove("membership_proof", public, {"leaf": root, "witness": MerkleWitness(())})

    artifact = bundle_for(
        prover, "membership_proof", public, {"leaf": root, "witness": {"path": []}}
    )
    assert not prover.verify("membership_proof", public, artifact)


def test_empty_leaf_membership_is_not_provable(prover):
    acc = MerkleAccumulator(depth=6)
    acc.insert(0, 77)
    public = {"expected_root": acc.root}
    private = {"leaf": 0, "witness": acc.witness_for(1)}

    with pytest.raises(ClaimFailed):
        prover.prove("membership_proof", public, private)

    artifact = bundle_for(
        prover,
        "membership_proof",
        public,
        {"leaf": 0, "witness": acc.witness_for(1).to_dict()},
    )
    assert not prover.verify("membership_proof", public, artifact)
