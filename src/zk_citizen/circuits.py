"""
Predicate circuit descriptions for the ZK-Citizen core.

A circuit fixes, for one predicate, which inputs are public (known to the
verifier) and which are private (known only to the prover), and lists the
constraints a proving backend has to enforce. The descriptions here are
backend-neutral: they are the interface boundary handed to a real proving
system, and their hash keys the proving and verifying material produced by
``prover.WitnessBundleProver.setup``.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import structlog

from .constants import DEFAULT_TREE_DEPTH, ENCODING_VERSION, FIELD_MODULUS
from .exceptions import ProofGenerationError

# Initialize structured logger
logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CircuitInput:
    """
    One named circuit input.

    ``kind`` is one of "field", "uint", "string", "witness" or "aggregate"
    and tells backends how to serialize the value.
    """

    name: str
    kind: str
    optional: bool = False


@dataclass(frozen=True)
class InputContract:
    """Public/private split of one predicate's inputs."""

    public: Tuple[CircuitInput, ...]
    private: Tuple[CircuitInput, ...]

    @property
    def public_names(self) -> Tuple[str, ...]:
        return tuple(item.name for item in self.public)

    @property
    def private_names(self) -> Tuple[str, ...]:
        return tuple(item.name for item in self.private)

    def kinds(self) -> Dict[str, str]:
        return {item.name: item.kind for item in self.public + self.private}

    def required(self, visibility: str) -> Tuple[str, ...]:
        items = self.public if visibility == "public" else self.private
        return tuple(item.name for item in items if not item.optional)


PREDICATE_INPUTS: Dict[str, InputContract] = {
    "age_above": InputContract(
        public=(
            CircuitInput("dob_commitment", "field"),
            CircuitInput("min_age", "uint"),
            CircuitInput("current_year", "uint"),
            CircuitInput("current_month", "uint", optional=True),
            CircuitInput("current_day", "uint", optional=True),
        ),
        private=(
            CircuitInput("dob_year", "uint"),
            CircuitInput("dob_month", "uint"),
            CircuitInput("dob_day", "uint"),
            CircuitInput("salt", "field"),
        ),
    ),
    "nationality_matches": InputContract(
        public=(
            CircuitInput("nationality_commitment", "field"),
            CircuitInput("target_nationality", "string"),
        ),
        private=(
            CircuitInput("nationality", "string"),
            CircuitInput("salt", "field"),
        ),
    ),
    "membership_proof": InputContract(
        public=(CircuitInput("expected_root", "field"),),
        private=(
            CircuitInput("leaf", "field"),
            CircuitInput("witness", "witness"),
        ),
    ),
    "population_above": InputContract(
        public=(CircuitInput("threshold", "uint"),),
        private=(CircuitInput("total", "uint"),),
    ),
    "population_in_range": InputContract(
        public=(
            CircuitInput("min_population", "uint"),
            CircuitInput("max_population", "uint"),
        ),
        private=(CircuitInput("total", "uint"),),
    ),
    "demographics_consistent": InputContract(
        public=(CircuitInput("stored_aggregate_hash", "field"),),
        private=(CircuitInput("aggregate", "aggregate"),),
    ),
}


class PredicateCircuit:
    """
    Constraint description of one predicate.

    Parameters
    ----------
    predicate : str
        Predicate name, a key of ``PREDICATE_INPUTS``.
    tree_depth : int, default=DEFAULT_TREE_DEPTH
        Depth of the Merkle paths checked by membership circuits.

    Examples
    --------
    >>> circuit = PredicateCircuit("age_above")
    >>> spec = circuit.build_circuit()
    >>> spec["public_inputs"][0]
    'public_dob_commitment'
    """

    def __init__(self, predicate: str, tree_depth: int = DEFAULT_TREE_DEPTH) -> None:
        if predicate not in PREDICATE_INPUTS:
            raise ProofGenerationError(
                f"Unknown predicate '{predicate}'", predicate=predicate
            )

        self.predicate = predicate
        self.tree_depth = tree_depth
        self.contract = PREDICATE_INPUTS[predicate]

        self.circuit_constraints: List[Dict[str, Any]] = []
        self.public_inputs: List[str] = []
        self.private_inputs: List[str] = []
        self.intermediate_variables: List[str] = []

        self.is_built = False
        self.constraint_count = 0

    def _add_constraint(
        self,
        constraint_type: str,
        inputs: List[str],
        outputs: List[str],
        parameters: Optional[Dict[str, Any]] = None,
    ) -> str:
        constraint_id = f"constraint_{self.constraint_count}"

        self.circuit_constraints.append(
            {
                "id": constraint_id,
                "type": constraint_type,
                "inputs": inputs,
                "outputs": outputs,
                "parameters": parameters or {},
            }
        )
        self.constraint_count += 1

        return constraint_id

    def _create_variable(self, name: str, var_type: str = "intermediate") -> str:
        """
        Create a variable and register it under its visibility.

        ``var_type`` is "public", "private" or "intermediate".
        """
        full_name = f"{var_type}_{name}"

        if var_type == "public":
            self.public_inputs.append(full_name)
        elif var_type == "private":
            self.private_inputs.append(full_name)
        else:
            self.intermediate_variables.append(full_name)

        return full_name

    def _add_commitment_check(
        self, opening: List[str], commitment: str, encoding: Optional[str] = None
    ) -> None:
        computed = self._create_variable("computed_commitment")
        parameters = {"hash": "field_hash"}
        if encoding:
            parameters["encoding"] = encoding
            parameters["encoding_version"] = ENCODING_VERSION
        self._add_constraint("hash", opening, [computed], parameters)
        self._add_constraint(
            "assert_equal",
            [computed, commitment],
            [],
            {"error": "CommitmentMismatch"},
        )

    def _add_merkle_path(self, leaf: str, witness: str, root: str) -> None:
        current = leaf
        for level in range(self.tree_depth):
            node = self._create_variable(f"path_node_{level}")
            self._add_constraint(
                "merkle_step", [current, witness], [node], {"level": level}
            )
            current = node
        self._add_constraint("claim_equal", [current, root], [])

    def _build_constraints(self) -> None:
        public = {name: self._create_variable(name, "public") for name in self.contract.public_names}
        private = {
            name: self._create_variable(name, "private") for name in self.contract.private_names
        }

        if self.predicate == "age_above":
            self._add_commitment_check(
                [private["dob_year"], private["dob_month"], private["dob_day"], private["salt"]],
                public["dob_commitment"],
            )
            age = self._create_variable("age")
            self._add_constraint("sub", [public["current_year"], private["dob_year"]], [age])
            self._add_constraint("claim_gte", [age, public["min_age"]], [])

        elif self.predicate == "nationality_matches":
            self._add_commitment_check(
                [private["nationality"], private["salt"]],
                public["nationality_commitment"],
                encoding="utf8_chunks_31",
            )
            self._add_constraint(
                "claim_equal", [private["nationality"], public["target_nationality"]], []
            )

        elif self.predicate == "membership_proof":
            self._add_merkle_path(private["leaf"], private["witness"], public["expected_root"])

        elif self.predicate == "population_above":
            self._add_constraint("claim_gte", [private["total"], public["threshold"]], [])

        elif self.predicate == "population_in_range":
            self._add_constraint("claim_gte", [private["total"], public["min_population"]], [])
            self._add_constraint("claim_lte", [private["total"], public["max_population"]], [])

        elif self.predicate == "demographics_consistent":
            self._add_commitment_check(
                [private["aggregate"]], public["stored_aggregate_hash"]
            )
            self._add_constraint("claim_sum_equals_total", [private["aggregate"]], [])

    def build_circuit(self) -> Dict[str, Any]:
        """
        Build the constraint description.

        Returns
        -------
        Dict[str, Any]
            Constraints, variable lists and circuit metadata.
        """
        self.circuit_constraints = []
        self.public_inputs = []
        self.private_inputs = []
        self.intermediate_variables = []
        self.constraint_count = 0

        self._build_constraints()
        self.is_built = True

        circuit_spec = {
            "predicate": self.predicate,
            "constraint_count": self.constraint_count,
            "public_inputs": self.public_inputs,
            "private_inputs": self.private_inputs,
            "intermediate_variables": self.intermediate_variables,
            "constraints": self.circuit_constraints,
            "circuit_metadata": {
                "version": "1.0",
                "tree_depth": self.tree_depth,
                "field_size": str(FIELD_MODULUS),
            },
        }

        logger.debug(
            "Predicate circuit built",
            predicate=self.predicate,
            constraint_count=self.constraint_count,
            public_inputs=len(self.public_inputs),
            private_inputs=len(self.private_inputs),
        )

        return circuit_spec

    def validate_circuit(self) -> bool:
        """
        Check the built circuit against the input contract.

        Raises
        ------
        ProofGenerationError
            If the circuit is not built or is inconsistent.
        """
        if not self.is_built:
            raise ProofGenerationError(
                "Circuit must be built before validation", predicate=self.predicate
            )

        validation_errors = []

        for name in self.contract.public_names:
            if f"public_{name}" not in self.public_inputs:
                validation_errors.append(f"Missing public input: {name}")
        for name in self.contract.private_names:
            if f"private_{name}" not in self.private_inputs:
                validation_errors.append(f"Missing private input: {name}")

        overlap = set(self.contract.public_names) & set(self.contract.private_names)
        if overlap:
            validation_errors.append(f"Inputs both public and private: {sorted(overlap)}")

        output_vars = set()
        for constraint in self.circuit_constraints:
            for output in constraint["outputs"]:
                if output in output_vars:
                    validation_errors.append(f"Variable {output} defined multiple times")
                output_vars.add(output)

        if not any(c["type"].startswith("claim_") for c in self.circuit_constraints):
            validation_errors.append("Circuit asserts no claim")

        if validation_errors:
            raise ProofGenerationError(
                "Circuit validation failed: " + "; ".join(validation_errors),
                predicate=self.predicate,
            )

        return True

    def generate_circuit_summary(self) -> Dict[str, Any]:
        if not self.is_built:
            return {"error": "Circuit not built"}

        constraint_types: Dict[str, int] = {}
        for constraint in self.circuit_constraints:
            ctype = constraint["type"]
            constraint_types[ctype] = constraint_types.get(ctype, 0) + 1

        return {
            "predicate": self.predicate,
            "total_constraints": self.constraint_count,
            "constraint_types": constraint_types,
            "public_inputs": len(self.public_inputs),
            "private_inputs": len(self.private_inputs),
            "intermediate_variables": len(self.intermediate_variables),
        }


def validate_inputs(
    predicate: str,
    public_inputs: Dict[str, Any],
    private_inputs: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Check supplied inputs against a predicate's contract.

    Raises
    ------
    ProofGenerationError
        On missing, unknown or misplaced inputs.
    """
    if predicate not in PREDICATE_INPUTS:
        raise ProofGenerationError(f"Unknown predicate '{predicate}'", predicate=predicate)

    contract = PREDICATE_INPUTS[predicate]
    errors = []

    checks = [("public", public_inputs, contract.public_names)]
    if private_inputs is not None:
        checks.append(("private", private_inputs, contract.private_names))

    for visibility, supplied, allowed in checks:
        for name in contract.required(visibility):
            if name not in supplied:
                errors.append(f"missing {visibility} input '{name}'")
        for name in supplied:
            if name not in allowed:
                errors.append(f"unexpected {visibility} input '{name}'")

    if errors:
        raise ProofGenerationError(
            f"Invalid inputs: {'; '.join(errors)}", predicate=predicate
        )
