"""
Salt and secret generation for the ZK-Citizen core.

Salts are uniform field elements drawn from the operating system's CSPRNG.
Nullifier secrets can either be random or stretched from a participant
passphrase with Argon2id, so that a participant can re-derive the same
secret later without storing it.
"""

import secrets
from typing import Optional

from argon2.exceptions import Argon2Error
from argon2.low_level import Type, hash_secret_raw
import structlog

from . import config
from .constants import ARGON2_HASH_LENGTH, ARGON2_SALT_LENGTH, FIELD_MODULUS
from .exceptions import SecretDerivationError

# Initialize structured logger
logger = structlog.get_logger(__name__)


def generate_salt() -> int:
    """
    Draw a uniformly random field element.

    Returns
    -------
    int
        Random value in ``[1, FIELD_MODULUS)``.
    """
    return secrets.randbelow(FIELD_MODULUS - 1) + 1


def generate_secret() -> int:
    """Draw a random nullifier secret."""
    return generate_salt()


def generate_kdf_salt() -> bytes:
    """Draw a random salt for passphrase stretching."""
    return secrets.token_bytes(ARGON2_SALT_LENGTH)


class SecretDeriver:
    """
    Derive nullifier secrets from passphrases with Argon2id.

    Parameters
    ----------
    time_cost : Optional[int], default=None
        Argon2 iterations. Defaults to the configured value.
    memory_cost : Optional[int], default=None
        Argon2 memory in KB. Defaults to the configured value.
    parallelism : Optional[int], default=None
        Argon2 lanes. Defaults to the configured value.

    Examples
    --------
    >>> deriver = SecretDeriver(time_cost=1, memory_cost=8)
    >>> kdf_salt = generate_kdf_salt()
    >>> deriver.derive("correct horse", kdf_salt) == deriver.derive("correct horse", kdf_salt)
    True
    """

    def __init__(
        self,
        time_cost: Optional[int] = None,
        memory_cost: Optional[int] = None,
        parallelism: Optional[int] = None,
    ) -> None:
        self.time_cost = time_cost or config.ARGON2_TIME_COST_SETTING
        self.memory_cost = memory_cost or config.ARGON2_MEMORY_COST_SETTING
        self.parallelism = parallelism or config.ARGON2_PARALLELISM_SETTING

        if self.time_cost < 1:
            raise SecretDerivationError(f"time_cost must be at least 1, got {self.time_cost}")
        if self.memory_cost < 8 * self.parallelism:
            raise SecretDerivationError(
                f"memory_cost must be at least {8 * self.parallelism} KB, got {self.memory_cost}"
            )
        if self.parallelism < 1:
            raise SecretDerivationError(
                f"parallelism must be at least 1, got {self.parallelism}"
            )

        logger.debug(
            "SecretDeriver initialized",
            time_cost=self.time_cost,
            memory_cost=self.memory_cost,
            parallelism=self.parallelism,
        )

    def derive(self, passphrase: str, kdf_salt: bytes) -> int:
        """
        Stretch a passphrase into a nullifier secret.

        Parameters
        ----------
        passphrase : str
            Participant passphrase.
        kdf_salt : bytes
            Salt for the key derivation, at least 8 bytes.

        Returns
        -------
        int
            Field element derived from the passphrase.

        Raises
        ------
        SecretDerivationError
            If inputs are invalid or Argon2 fails.
        """
        if not passphrase:
            raise SecretDerivationError("passphrase cannot be empty")
        if len(kdf_salt) < 8:
            raise SecretDerivationError(
                f"kdf_salt must be at least 8 bytes, got {len(kdf_salt)}"
            )

        try:
            raw = hash_secret_raw(
                secret=passphrase.encode("utf-8"),
                salt=kdf_salt,
                time_cost=self.time_cost,
                memory_cost=self.memory_cost,
                parallelism=self.parallelism,
                hash_len=ARGON2_HASH_LENGTH,
                type=Type.ID,
            )
        except Argon2Error as e:
            raise SecretDerivationError(f"Argon2 hashing failed: {str(e)}")

        secret = int.from_bytes(raw, "big") % FIELD_MODULUS

        logger.debug("Nullifier secret derived", hash_length=len(raw))

        return secret


def derive_secret(passphrase: str, kdf_salt: bytes) -> int:
    """Derive a nullifier secret with the configured Argon2 parameters."""
    return SecretDeriver().derive(passphrase, kdf_salt)
