"""
Prover/verifier capability for the ZK-Citizen core.

``ProofBackend`` is the interface a real zero-knowledge proving system
plugs into: ``prove`` turns a predicate's public and private inputs into an
opaque ``ProofArtifact`` and ``verify`` checks an artifact against the
public inputs.

``WitnessBundleProver`` is the backend shipped with the package. Its
artifacts are serialized witness bundles: they CONTAIN THE PRIVATE INPUTS
and carry no zero-knowledge or soundness guarantee. Verification replays
the predicate from the bundle. Artifacts say so in their ``format`` and
``zero_knowledge`` fields; use this backend only for testing and for
exercising the interface.

Bundle layout: a 4-byte big-endian metadata length, the JSON metadata,
then a 32-byte SHA-256 digest binding the metadata to the circuit key.
"""

import hashlib
import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Tuple

import structlog

from .aggregates import DemographicAggregate
from .circuits import PREDICATE_INPUTS, PredicateCircuit, validate_inputs
from .constants import DEFAULT_TREE_DEPTH, MAX_PROOF_SIZE, WITNESS_BUNDLE_FORMAT
from .data_models import MerkleWitness, PredicateResult
from .exceptions import (
    EncodingError,
    PredicateError,
    ProofGenerationError,
    ProofVerificationError,
    ZkCitizenError,
)
from .predicates import PREDICATES

# Initialize structured logger
logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ProofArtifact:
    """
    Opaque proof produced by a ``ProofBackend``.

    Parameters
    ----------
    predicate : str
        Predicate the artifact proves.
    format : str
        Backend-specific format identifier.
    data : bytes
        Serialized proof.
    zero_knowledge : bool
        Whether ``data`` hides the private inputs.
    """

    predicate: str
    format: str
    data: bytes
    zero_knowledge: bool

    def __len__(self) -> int:
        return len(self.data)


class ProofBackend(ABC):
    """Interface to a proving system."""

    @abstractmethod
    def prove(
        self,
        predicate: str,
        public_inputs: Dict[str, Any],
        private_inputs: Dict[str, Any],
    ) -> ProofArtifact:
        """Produce an artifact proving ``predicate`` on the given inputs."""

    @abstractmethod
    def verify(
        self, predicate: str, public_inputs: Dict[str, Any], artifact: ProofArtifact
    ) -> bool:
        """Return True if ``artifact`` proves ``predicate`` for ``public_inputs``."""


def _encode_value(kind: str, value: Any) -> Any:
    if value is None:
        return None
    if kind == "witness":
        return value.to_dict()
    if kind == "aggregate":
        return value.to_dict()
    return value


def _decode_value(kind: str, value: Any) -> Any:
    if value is None:
        return None
    if kind == "witness":
        return MerkleWitness.from_dict(value)
    if kind == "aggregate":
        return DemographicAggregate(**value)
    return value


def _encode_inputs(predicate: str, inputs: Dict[str, Any]) -> Dict[str, Any]:
    kinds = PREDICATE_INPUTS[predicate].kinds()
    return {name: _encode_value(kinds[name], value) for name, value in sorted(inputs.items())}


def _decode_inputs(predicate: str, inputs: Dict[str, Any]) -> Dict[str, Any]:
    kinds = PREDICATE_INPUTS[predicate].kinds()
    return {name: _decode_value(kinds[name], value) for name, value in inputs.items()}


class WitnessBundleProver(ProofBackend):
    """
    Non-zero-knowledge backend that ships the witness itself.

    Parameters
    ----------
    tree_depth : int, default=DEFAULT_TREE_DEPTH
        Depth used for membership circuits.

    Examples
    --------
    >>> prover = WitnessBundleProver()
    >>> artifact = prover.prove("population_above", {"threshold": 10}, {"total": 12})
    >>> prover.verify("population_above", {"threshold": 10}, artifact)
    True
    """

    def __init__(self, tree_depth: int = DEFAULT_TREE_DEPTH) -> None:
        self.tree_depth = tree_depth
        self._keys: Dict[str, Tuple[bytes, bytes]] = {}

        logger.info(
            "WitnessBundleProver initialized",
            format=WITNESS_BUNDLE_FORMAT,
            zero_knowledge=False,
        )

    def setup(self, predicate: str) -> Tuple[bytes, bytes]:
        """
        Derive the proving and verifying keys of a predicate circuit.

        Keys are deterministic in the circuit description, so independent
        prover instances agree on them.

        Returns
        -------
        Tuple[bytes, bytes]
            ``(proving_key, verifying_key)``.

        Raises
        ------
        ProofGenerationError
            If the predicate is unknown or its circuit is invalid.
        """
        if predicate in self._keys:
            return self._keys[predicate]

        circuit = PredicateCircuit(predicate, self.tree_depth)
        circuit_spec = circuit.build_circuit()
        circuit.validate_circuit()

        circuit_hash = hashlib.sha256(
            json.dumps(circuit_spec, sort_keys=True).encode()
        ).hexdigest()

        proving_key = json.dumps(
            {
                "circuit_hash": circuit_hash,
                "predicate": predicate,
                "key_type": "proving",
                "format": WITNESS_BUNDLE_FORMAT,
            },
            sort_keys=True,
        ).encode()
        verifying_key = json.dumps(
            {
                "circuit_hash": circuit_hash,
                "predicate": predicate,
                "public_inputs": circuit_spec["public_inputs"],
                "key_type": "verifying",
                "format": WITNESS_BUNDLE_FORMAT,
            },
            sort_keys=True,
        ).encode()

        self._keys[predicate] = (proving_key, verifying_key)

        logger.debug(
            "Circuit keys derived",
            predicate=predicate,
            constraint_count=circuit_spec["constraint_count"],
        )

        return proving_key, verifying_key

    def _replay(
        self,
        predicate: str,
        public_inputs: Dict[str, Any],
        private_inputs: Dict[str, Any],
    ) -> PredicateResult:
        kwargs = dict(public_inputs, **private_inputs)
        if predicate == "membership_proof":
            kwargs["depth"] = self.tree_depth
        return PREDICATES[predicate](**kwargs)

    @staticmethod
    def _circuit_hash(key: bytes) -> str:
        return json.loads(key.decode())["circuit_hash"]

    @staticmethod
    def _digest(circuit_hash: str, metadata_bytes: bytes) -> bytes:
        return hashlib.sha256(circuit_hash.encode() + metadata_bytes).digest()

    def prove(
        self,
        predicate: str,
        public_inputs: Dict[str, Any],
        private_inputs: Dict[str, Any],
    ) -> ProofArtifact:
        """
        Bundle the inputs of a satisfied predicate.

        Raises
        ------
        ProofGenerationError
            If the inputs do not fit the circuit or bundling fails.
        CommitmentMismatch
            If the private inputs do not open the public commitment.
        ClaimFailed
            If the predicate does not hold; false claims are not provable.
        """
        start_time = time.time()

        try:
            validate_inputs(predicate, public_inputs, private_inputs)
            proving_key, _ = self.setup(predicate)

            result = self._replay(predicate, public_inputs, private_inputs)
            result.require()

            metadata = {
                "format": WITNESS_BUNDLE_FORMAT,
                "zero_knowledge": False,
                "predicate": predicate,
                "public_inputs": _encode_inputs(predicate, public_inputs),
                "private_inputs": _encode_inputs(predicate, private_inputs),
            }
            metadata_bytes = json.dumps(metadata, sort_keys=True).encode()
            digest = self._digest(self._circuit_hash(proving_key), metadata_bytes)

            data = len(metadata_bytes).to_bytes(4, "big") + metadata_bytes + digest

            if len(data) > MAX_PROOF_SIZE:
                raise ProofGenerationError(
                    f"Generated proof too large: {len(data)} > {MAX_PROOF_SIZE} bytes",
                    predicate=predicate,
                )

        except ZkCitizenError:
            raise
        except Exception as e:
            raise ProofGenerationError(
                f"Unexpected error during proof generation: {str(e)}",
                predicate=predicate,
            )

        logger.info(
            "Witness bundle generated",
            predicate=predicate,
            proof_size_bytes=len(data),
            generation_time_seconds=time.time() - start_time,
        )

        return ProofArtifact(
            predicate=predicate,
            format=WITNESS_BUNDLE_FORMAT,
            data=data,
            zero_knowledge=False,
        )

    def _parse_bundle(self, data: bytes) -> Tuple[Dict[str, Any], bytes, bytes]:
        if len(data) < 4:
            raise ProofVerificationError("Proof too short to contain valid metadata")

        metadata_length = int.from_bytes(data[:4], "big")
        if len(data) != 4 + metadata_length + 32:
            raise ProofVerificationError("Proof corrupted: unexpected length")

        metadata_bytes = data[4 : 4 + metadata_length]
        try:
            metadata = json.loads(metadata_bytes.decode())
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise ProofVerificationError("Proof corrupted: invalid metadata format")

        return metadata, metadata_bytes, data[4 + metadata_length :]

    def verify(
        self, predicate: str, public_inputs: Dict[str, Any], artifact: ProofArtifact
    ) -> bool:
        """
        Check a witness bundle by replaying its predicate.

        Returns False for bundles that are well formed but do not prove the
        claim for ``public_inputs``.

        Raises
        ------
        ProofVerificationError
            If the artifact cannot be processed at all.
        """
        try:
            if artifact.format != WITNESS_BUNDLE_FORMAT:
                logger.warning(
                    "Proof format mismatch",
                    expected=WITNESS_BUNDLE_FORMAT,
                    actual=artifact.format,
                )
                return False

            if artifact.predicate != predicate:
                logger.warning(
                    "Proof predicate mismatch", expected=predicate, actual=artifact.predicate
                )
                return False

            try:
                validate_inputs(predicate, public_inputs)
                _, verifying_key = self.setup(predicate)
            except ProofGenerationError as e:
                raise ProofVerificationError(e.message)

            metadata, metadata_bytes, digest = self._parse_bundle(artifact.data)

            expected_digest = self._digest(self._circuit_hash(verifying_key), metadata_bytes)
            if digest != expected_digest:
                logger.warning("Bundle digest mismatch", predicate=predicate)
                return False

            if metadata.get("predicate") != predicate:
                logger.warning("Bundle predicate mismatch", predicate=predicate)
                return False

            if metadata.get("public_inputs") != _encode_inputs(predicate, public_inputs):
                logger.warning("Public input mismatch", predicate=predicate)
                return False

            raw_private = metadata.get("private_inputs", {})
            try:
                validate_inputs(predicate, public_inputs, raw_private)
            except ProofGenerationError:
                logger.warning("Bundle private inputs do not fit the circuit", predicate=predicate)
                return False
            private_inputs = _decode_inputs(predicate, raw_private)

            try:
                result = self._replay(predicate, public_inputs, private_inputs)
            except (PredicateError, EncodingError) as e:
                logger.warning(
                    "Bundle predicate replay rejected",
                    predicate=predicate,
                    error_code=e.error_code,
                )
                return False

            logger.info(
                "Witness bundle verified",
                predicate=predicate,
                verification_result=result.satisfied,
            )

            return result.satisfied

        except ProofVerificationError:
            raise
        except Exception as e:
            raise ProofVerificationError(
                f"Unexpected error during proof verification: {str(e)}"
            )
