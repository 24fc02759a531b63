"""
Custom exception classes for the ZK-Citizen core.

This module defines the error taxonomy of the registration and proof
protocol. Every exception carries a stable error code so transport layers
can map it to a user-facing status, plus ``retryable`` / ``fatal`` flags
describing how a caller is expected to react.

Exception contexts only ever hold public values (indices, short hash
previews, predicate names). Salts, secrets and raw attributes never appear
in messages or contexts.
"""

from typing import Optional, Dict, Any


def _preview(value: Optional[int]) -> Optional[str]:
    """Return a short hex preview of a field element for error contexts."""
    if value is None:
        return None
    return f"{value:064x}"[:16]


class ZkCitizenError(Exception):
    """
    Base exception class for all ZK-Citizen errors.

    Parameters
    ----------
    message : str
        Human-readable error message.
    context : dict, optional
        Additional public context information about the error.
    error_code : str, optional
        Unique error code for programmatic handling.
    """

    # Whether the caller may retry (possibly with fresh inputs)
    retryable: bool = False

    # Whether the error leaves the component unusable until operators act
    fatal: bool = False

    # Whether the error signals a fault, as opposed to an honest "no" answer
    is_fault: bool = True

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message = message
        self.context = context or {}
        self.error_code = error_code
        super().__init__(self.message)

    def __str__(self) -> str:
        """Return a formatted string representation of the error."""
        parts = [self.message]

        if self.error_code:
            parts.append(f"[Error Code: {self.error_code}]")

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"[Context: {context_str}]")

        return " ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the exception to a dictionary for structured logging.

        Returns
        -------
        dict
            Dictionary representation of the exception.
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "retryable": self.retryable,
            "fatal": self.fatal,
            "context": self.context,
        }


class EncodingError(ZkCitizenError):
    """Exception raised when a value cannot be encoded into field elements."""

    def __init__(self, message: str, **kwargs) -> None:
        super().__init__(
            message, kwargs.get("context"), kwargs.get("error_code", "ENCODE_001")
        )


class InvalidFieldElement(EncodingError):
    """Exception raised when an integer lies outside the hash field."""

    def __init__(self, message: str, **kwargs) -> None:
        super().__init__(message, error_code="ENCODE_002")


# =============================================================================
# Accumulator Errors
# =============================================================================


class AccumulatorError(ZkCitizenError):
    """
    Exception raised for errors in the Merkle accumulator.

    This includes occupied slots, exhausted capacity and malformed witnesses.
    """

    def __init__(
        self,
        message: str,
        index: Optional[int] = None,
        depth: Optional[int] = None,
        **kwargs,
    ) -> None:
        context = kwargs.get("context", {})
        if index is not None:
            context["index"] = index
        if depth is not None:
            context["depth"] = depth

        super().__init__(message, context, kwargs.get("error_code", "ACC_000"))


class SlotOccupied(AccumulatorError):
    """Exception raised when inserting into a leaf that is not empty."""

    retryable = True

    def __init__(self, index: int, reason: str = "already occupied", **kwargs) -> None:
        super().__init__(
            f"Accumulator slot {index} is not available: {reason}",
            index=index,
            context={"reason": reason},
            error_code="ACC_001",
        )


class AccumulatorFull(AccumulatorError):
    """
    Exception raised when an insert targets an index beyond capacity.

    The accumulator instance cannot admit more leaves; operators must
    migrate to a new tree.
    """

    fatal = True

    def __init__(self, index: int, capacity: int, **kwargs) -> None:
        super().__init__(
            f"Accumulator capacity {capacity} exhausted (index {index})",
            index=index,
            context={"capacity": capacity},
            error_code="ACC_002",
        )


class InvalidWitness(AccumulatorError):
    """Exception raised for structurally invalid Merkle witnesses."""

    def __init__(self, message: str, depth: Optional[int] = None, **kwargs) -> None:
        super().__init__(message, depth=depth, error_code="ACC_003")


# =============================================================================
# Nullifier Errors
# =============================================================================


class NullifierError(ZkCitizenError):
    """Exception raised for nullifier registry errors."""

    def __init__(self, message: str, nullifier: Optional[int] = None, **kwargs) -> None:
        context = kwargs.get("context", {})
        if nullifier is not None:
            context["nullifier_preview"] = _preview(nullifier)

        super().__init__(message, context, kwargs.get("error_code", "NULL_000"))


class AlreadyUsed(NullifierError):
    """Exception raised when marking a nullifier that is already marked."""

    def __init__(self, nullifier: int, **kwargs) -> None:
        super().__init__(
            "Nullifier has already been used",
            nullifier=nullifier,
            error_code="NULL_001",
        )


# =============================================================================
# Registration Errors
# =============================================================================


class RegistrationError(ZkCitizenError):
    """
    Exception raised when a registration attempt is rejected.

    Registration errors are always detected before any state mutation.
    """

    def __init__(self, message: str, **kwargs) -> None:
        super().__init__(
            message, kwargs.get("context"), kwargs.get("error_code", "REG_000")
        )


class DuplicateRegistration(RegistrationError):
    """
    Exception raised when a nullifier was already used for registration.

    Not retryable with the same identity/secret pair.
    """

    def __init__(self, nullifier: int, **kwargs) -> None:
        super().__init__(
            "Participant is already registered",
            context={"nullifier_preview": _preview(nullifier)},
            error_code="REG_001",
        )


class StaleRoot(RegistrationError):
    """
    Exception raised when a witness or root snapshot is outdated.

    The accumulator changed since the snapshot was taken; the caller must
    fetch a fresh snapshot and retry.
    """

    retryable = True

    def __init__(
        self, expected_root: int, current_root: Optional[int] = None, **kwargs
    ) -> None:
        super().__init__(
            "Accumulator root changed since the witness was produced",
            context={
                "expected_root_preview": _preview(expected_root),
                "current_root_preview": _preview(current_root),
            },
            error_code="REG_002",
        )


class AdminSignatureInvalid(RegistrationError):
    """Exception raised when the admin co-signature is missing or invalid."""

    def __init__(self, reason: str = "invalid signature", **kwargs) -> None:
        super().__init__(
            f"Admin admission signature rejected: {reason}",
            context={"reason": reason},
            error_code="REG_003",
        )


# =============================================================================
# Predicate Errors
# =============================================================================


class PredicateError(ZkCitizenError):
    """Exception raised while evaluating a proof predicate."""

    def __init__(self, message: str, predicate: Optional[str] = None, **kwargs) -> None:
        context = kwargs.get("context", {})
        if predicate:
            context["predicate"] = predicate

        super().__init__(message, context, kwargs.get("error_code", "PRED_000"))


class CommitmentMismatch(PredicateError):
    """
    Exception raised when a recomputed commitment differs from the stored one.

    Signals tampering or caller error; always rejected, never retried.
    """

    def __init__(self, predicate: str, commitment_kind: str, **kwargs) -> None:
        super().__init__(
            f"Recomputed {commitment_kind} commitment does not match",
            predicate=predicate,
            context={"commitment_kind": commitment_kind},
            error_code="PRED_001",
        )


class ClaimFailed(PredicateError):
    """
    Raised on request when a predicate's honest answer is "false".

    This is an expected outcome rather than a system error; ``is_fault``
    is False so callers can tell it apart from the other errors.
    """

    is_fault = False

    def __init__(self, predicate: str, **kwargs) -> None:
        super().__init__(
            f"Claim '{predicate}' does not hold",
            predicate=predicate,
            error_code="PRED_002",
        )


class PredicateInputError(PredicateError):
    """Exception raised for malformed predicate inputs."""

    def __init__(self, message: str, predicate: Optional[str] = None, **kwargs) -> None:
        super().__init__(message, predicate=predicate, error_code="PRED_003")


# =============================================================================
# Integrity Errors
# =============================================================================


class IntegrityError(ZkCitizenError):
    """
    Exception raised when internal state invariants are violated.

    Integrity errors indicate a bug; processing must stop and alert.
    """

    fatal = True

    def __init__(self, message: str, **kwargs) -> None:
        super().__init__(
            message, kwargs.get("context"), kwargs.get("error_code", "INTEG_000")
        )


class AggregateMismatch(IntegrityError):
    """Exception raised when the aggregate conservation invariant fails."""

    def __init__(self, reason: str, expected: int, actual: int, **kwargs) -> None:
        super().__init__(
            f"Aggregate conservation violated: {reason}",
            context={"expected": expected, "actual": actual},
            error_code="INTEG_001",
        )


# =============================================================================
# Cryptography Errors
# =============================================================================


class CryptographyError(ZkCitizenError):
    """
    Exception raised for errors in cryptographic operations.

    This includes secret derivation, signing and proof handling.
    """

    def __init__(self, message: str, operation: Optional[str] = None, **kwargs) -> None:
        context = kwargs.get("context", {})
        if operation:
            context["cryptographic_operation"] = operation

        super().__init__(message, context, kwargs.get("error_code"))


class SecretDerivationError(CryptographyError):
    """Exception raised when a nullifier secret cannot be derived."""

    def __init__(self, message: str, algorithm: str = "argon2id", **kwargs) -> None:
        super().__init__(
            message,
            operation="secret_derivation",
            context={"algorithm": algorithm},
            error_code="CRYPTO_001",
        )


class ProofGenerationError(CryptographyError):
    """Exception raised during proof generation."""

    def __init__(
        self,
        message: str,
        predicate: str = "unknown",
        backend: str = "witness_bundle",
        **kwargs,
    ) -> None:
        context = {"predicate": predicate, "backend": backend}
        super().__init__(
            message,
            operation="proof_generation",
            context=context,
            error_code="CRYPTO_002",
        )


class ProofVerificationError(CryptographyError):
    """Exception raised when a proof cannot be processed for verification."""

    def __init__(self, message: str, **kwargs) -> None:
        super().__init__(
            message, operation="proof_verification", error_code="CRYPTO_003"
        )


class SigningError(CryptographyError):
    """Exception raised for malformed keys or signing failures."""

    def __init__(self, message: str, **kwargs) -> None:
        super().__init__(message, operation="signing", error_code="CRYPTO_004")


class ConfigurationError(ZkCitizenError):
    """Exception raised for invalid component configuration."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[str] = None,
        **kwargs,
    ) -> None:
        context = kwargs.get("context", {})
        if config_key:
            context["config_key"] = config_key
        if config_value:
            context["config_value"] = config_value

        super().__init__(message, context, kwargs.get("error_code", "CONFIG_001"))
