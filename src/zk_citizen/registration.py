"""
Registration protocol for the ZK-Citizen core.

Admits a participant into a ledger exactly once. A registration is computed
against a snapshot (expected root plus the witness of the next free slot)
and committed with the ledger's compare-and-apply:

1. the witness must recompute ``expected_root`` for the empty sentinel,
   otherwise the snapshot is stale (``StaleRoot``);
2. a used nullifier is rejected (``DuplicateRegistration``);
3. the participant entry is inserted; an occupied or out-of-turn slot is
   rejected (``SlotOccupied``);
4. the nullifier is marked used;
5. the participant counter and the aggregate tracker are updated.

Steps 2-5 run inside the ledger lock after every check has passed, so a
rejected attempt never leaves partial state behind.
"""

from dataclasses import dataclass
from typing import ClassVar, Optional, Union

import structlog

from . import config
from .aggregates import DemographicData
from .commitment import census_entry, passport_entry
from .constants import EMPTY_LEAF
from .data_models import MerkleWitness, RegistrationReceipt
from .exceptions import (
    AdminSignatureInvalid,
    ConfigurationError,
    RegistrationError,
    SlotOccupied,
    StaleRoot,
    ZkCitizenError,
)
from .hashing import to_field
from .ledger import Admission, Ledger
from .signing import Ed25519Verifier, SignatureVerifier, admission_message
from .utils import retry, short_hex

# Initialize structured logger
logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PassportEntry:
    """
    Identity registration: the leaf is ``Hash(identity_hash, nullifier)``.

    Demographics are counted by the aggregate tracker but are not part of
    the leaf.
    """

    identity_hash: int
    demographics: DemographicData

    scheme: ClassVar[str] = "passport"

    @property
    def signing_hash(self) -> int:
        return self.identity_hash

    def leaf(self, nullifier: int) -> int:
        return passport_entry(to_field(self.identity_hash), to_field(nullifier))


@dataclass(frozen=True)
class CensusEntry:
    """
    Census registration: the leaf binds the passport commitment, the
    demographic hash and the nullifier.
    """

    passport_commitment: int
    demographics: DemographicData

    scheme: ClassVar[str] = "census"

    @property
    def signing_hash(self) -> int:
        return self.passport_commitment

    def leaf(self, nullifier: int) -> int:
        return census_entry(
            to_field(self.passport_commitment),
            self.demographics.hash(),
            to_field(nullifier),
        )


Entry = Union[PassportEntry, CensusEntry]


@dataclass(frozen=True)
class RegistrationTicket:
    """Everything needed to attempt one registration, prepared off the lock."""

    expected_root: int
    index: int
    witness: MerkleWitness
    leaf: int


class RegistrationProtocol:
    """
    Admits participants into a ledger.

    Parameters
    ----------
    ledger : Ledger
        Authoritative state to register into.
    admin_public_key : Optional[bytes], default=None
        Raw Ed25519 public key of the admitting admin.
    verifier : Optional[SignatureVerifier], default=None
        Signature verifier. Defaults to ``Ed25519Verifier``.
    require_signature : Optional[bool], default=None
        Whether every admission needs an admin co-signature. Defaults to
        ``config.REQUIRE_ADMIN_SIGNATURE``.

    Examples
    --------
    >>> protocol = RegistrationProtocol(Ledger(depth=8))
    >>> ticket = protocol.prepare(entry, nullifier)
    >>> receipt = protocol.register(entry, nullifier, ticket.expected_root, ticket.witness)
    """

    def __init__(
        self,
        ledger: Ledger,
        admin_public_key: Optional[bytes] = None,
        verifier: Optional[SignatureVerifier] = None,
        require_signature: Optional[bool] = None,
    ) -> None:
        self.ledger = ledger
        self.admin_public_key = admin_public_key
        self.verifier = verifier or Ed25519Verifier()
        self.require_signature = (
            config.REQUIRE_ADMIN_SIGNATURE if require_signature is None else require_signature
        )

        if self.require_signature and admin_public_key is None:
            raise ConfigurationError(
                "An admin public key is required when admin signatures are enforced",
                config_key="REQUIRE_ADMIN_SIGNATURE",
            )

        logger.info(
            "RegistrationProtocol initialized",
            ledger_id=ledger.ledger_id,
            scheme=ledger.scheme,
            require_signature=self.require_signature,
        )

    def _check_entry(self, entry: Entry) -> None:
        if entry.scheme != self.ledger.scheme:
            raise RegistrationError(
                f"Cannot register a {entry.scheme} entry into a {self.ledger.scheme} ledger",
                context={"entry_scheme": entry.scheme, "ledger_scheme": self.ledger.scheme},
            )

    def _check_signature(
        self, entry: Entry, nullifier: int, signature: Optional[bytes]
    ) -> None:
        if signature is None:
            if self.require_signature:
                raise AdminSignatureInvalid("signature missing")
            return

        if self.admin_public_key is None:
            raise AdminSignatureInvalid("no admin key configured")

        message = admission_message(entry.signing_hash, nullifier)
        if not self.verifier.verify(self.admin_public_key, message, signature):
            raise AdminSignatureInvalid("verification failed")

    def prepare(self, entry: Entry, nullifier: int) -> RegistrationTicket:
        """
        Snapshot the ledger and compute the proposed leaf.

        Raises
        ------
        AccumulatorFull
            If the ledger has no free slot.
        """
        self._check_entry(entry)
        slot = self.ledger.next_slot()
        return RegistrationTicket(
            expected_root=slot.expected_root,
            index=slot.index,
            witness=slot.witness,
            leaf=entry.leaf(nullifier),
        )

    def register(
        self,
        entry: Entry,
        nullifier: int,
        expected_root: int,
        witness: MerkleWitness,
        signature: Optional[bytes] = None,
    ) -> RegistrationReceipt:
        """
        Register one participant.

        Parameters
        ----------
        entry : Entry
            Passport or census entry to admit.
        nullifier : int
            Participant nullifier.
        expected_root : int
            Root the witness was taken against.
        witness : MerkleWitness
            Witness of the target (empty) slot under ``expected_root``.
        signature : Optional[bytes], default=None
            Admin co-signature over ``(entry.signing_hash, nullifier)``.

        Returns
        -------
        RegistrationReceipt
            Receipt of the admission.

        Raises
        ------
        AdminSignatureInvalid
            If a required signature is missing or does not verify.
        StaleRoot
            If the witness or ``expected_root`` is outdated.
        DuplicateRegistration
            If the nullifier was already used.
        SlotOccupied
            If the target slot is not available.
        AccumulatorFull
            If the ledger has no free slot.
        """
        self._check_entry(entry)
        to_field(nullifier)
        self._check_signature(entry, nullifier, signature)

        if self.ledger.root_from_leaf(witness, EMPTY_LEAF) != expected_root:
            raise StaleRoot(expected_root)

        admission = Admission(
            index=witness.index,
            leaf=entry.leaf(nullifier),
            nullifier=nullifier,
            demographics=entry.demographics,
        )

        try:
            receipt = self.ledger.apply_if_root_matches(expected_root, admission)
        except ZkCitizenError as e:
            logger.warning(
                "Registration rejected",
                ledger_id=self.ledger.ledger_id,
                error_code=e.error_code,
                retryable=e.retryable,
                index=admission.index,
            )
            raise

        logger.info(
            "Registration completed",
            ledger_id=self.ledger.ledger_id,
            receipt_id=receipt.receipt_id,
            index=receipt.index,
            leaf=short_hex(receipt.leaf),
        )

        return receipt

    def submit(
        self,
        entry: Entry,
        nullifier: int,
        signature: Optional[bytes] = None,
        max_attempts: Optional[int] = None,
    ) -> RegistrationReceipt:
        """
        Prepare and register, retrying on lost races.

        Only ``StaleRoot`` and ``SlotOccupied`` are retried, each time with a
        fresh snapshot; every other error propagates immediately.

        Parameters
        ----------
        max_attempts : Optional[int], default=None
            Attempt bound. Defaults to ``config.MAX_REGISTRATION_ATTEMPTS``.
        """
        attempts = max_attempts or config.MAX_REGISTRATION_ATTEMPTS

        @retry(max_attempts=attempts, exceptions=(StaleRoot, SlotOccupied))
        def attempt() -> RegistrationReceipt:
            ticket = self.prepare(entry, nullifier)
            return self.register(
                entry, nullifier, ticket.expected_root, ticket.witness, signature
            )

        return attempt()
