"""
Admission signing authority for the ZK-Citizen core.

When registration requires an admin co-signature, the admin signs the pair
``(identity_hash, nullifier)`` with Ed25519. The core itself only needs to
verify signatures; ``AdminSigner`` exists so tests, simulations and
operators can produce them.

The signed message is the domain tag followed by both field elements as
32-byte big-endian integers.
"""

from typing import Optional, Protocol

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
import structlog

from .constants import (
    ADMISSION_SIGNATURE_TAG,
    ED25519_PUBLIC_KEY_BYTES,
    ED25519_SIGNATURE_BYTES,
)
from .exceptions import SigningError
from .hashing import field_to_bytes

# Initialize structured logger
logger = structlog.get_logger(__name__)


class SignatureVerifier(Protocol):
    """Capability to check a signature over a message."""

    def verify(self, public_key: bytes, message: bytes, signature: bytes) -> bool:
        ...


def admission_message(identity_hash: int, nullifier: int) -> bytes:
    """Canonical bytes signed to authorize one admission."""
    return ADMISSION_SIGNATURE_TAG + field_to_bytes(identity_hash) + field_to_bytes(nullifier)


class Ed25519Verifier:
    """Ed25519 implementation of ``SignatureVerifier``."""

    def verify(self, public_key: bytes, message: bytes, signature: bytes) -> bool:
        """
        Verify an Ed25519 signature.

        Returns False for malformed keys or signatures as well as for
        signatures that do not verify.
        """
        if len(public_key) != ED25519_PUBLIC_KEY_BYTES:
            logger.warning("Rejecting public key of wrong length", length=len(public_key))
            return False
        if len(signature) != ED25519_SIGNATURE_BYTES:
            logger.warning("Rejecting signature of wrong length", length=len(signature))
            return False

        try:
            key = Ed25519PublicKey.from_public_bytes(public_key)
        except ValueError:
            logger.warning("Rejecting malformed public key")
            return False

        try:
            key.verify(signature, message)
        except InvalidSignature:
            return False

        return True


class AdminSigner:
    """
    Ed25519 signer for admission messages.

    Parameters
    ----------
    private_key : Optional[Ed25519PrivateKey], default=None
        Key to sign with. If None, a fresh key is generated.

    Examples
    --------
    >>> signer = AdminSigner()
    >>> sig = signer.sign_admission(1, 2)
    >>> Ed25519Verifier().verify(signer.public_key_bytes, admission_message(1, 2), sig)
    True
    """

    def __init__(self, private_key: Optional[Ed25519PrivateKey] = None) -> None:
        self._private_key = private_key or Ed25519PrivateKey.generate()
        self.public_key_bytes = self._private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )

    @classmethod
    def from_private_bytes(cls, data: bytes) -> "AdminSigner":
        """Load a signer from a raw 32-byte Ed25519 private key."""
        try:
            return cls(Ed25519PrivateKey.from_private_bytes(data))
        except ValueError as e:
            raise SigningError(f"Invalid Ed25519 private key: {str(e)}")

    def sign(self, message: bytes) -> bytes:
        return self._private_key.sign(message)

    def sign_admission(self, identity_hash: int, nullifier: int) -> bytes:
        """Sign the admission of ``(identity_hash, nullifier)``."""
        signature = self.sign(admission_message(identity_hash, nullifier))
        logger.debug("Admission signed")
        return signature
