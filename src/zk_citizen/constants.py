"""
Constants and protocol parameters for the ZK-Citizen core.

Everything here is part of the commitment format: changing a value changes
every commitment, nullifier and root derived from it. Tunable runtime
settings live in ``config.py`` instead.
"""

from typing import Final, Tuple

# =============================================================================
# Field Parameters
# =============================================================================

# Pallas base field prime; all hashes and committed values are elements of it
FIELD_MODULUS: Final[int] = (
    28948022309329048855892746252171976963363056481941560715954676764349967630337
)

# Width of a serialized field element in bytes
FIELD_ELEMENT_BYTES: Final[int] = 32

# Domain tag mixed into every field hash
HASH_DOMAIN_TAG: Final[bytes] = b"zk-citizen/field-hash/v1"

# =============================================================================
# String Encoding
# =============================================================================

# Version of the string-to-chunk encoding below
ENCODING_VERSION: Final[int] = 1

# Bytes per chunk; 31 bytes (248 bits) always fit below FIELD_MODULUS
CHUNK_BYTES: Final[int] = 31

# Chunk used in place of an empty chunk list
EMPTY_CHUNK: Final[int] = 0

# =============================================================================
# Accumulator Parameters
# =============================================================================

# Reference tree depth (capacity 2**20 = 1,048,576 leaves)
DEFAULT_TREE_DEPTH: Final[int] = 20

# Largest depth accepted by the accumulator
MAX_TREE_DEPTH: Final[int] = 64

# Sentinel value of an unoccupied leaf
EMPTY_LEAF: Final[int] = 0

# =============================================================================
# Demographic Brackets
# =============================================================================

# Number of mutually exclusive age buckets
AGE_BRACKET_COUNT: Final[int] = 6

# Inclusive upper bound of each age bucket except the last (open-ended) one
AGE_BRACKET_UPPER_BOUNDS: Final[Tuple[int, ...]] = (17, 25, 35, 50, 65)

# Human-readable labels, in bucket order
AGE_BRACKET_LABELS: Final[Tuple[str, ...]] = (
    "age_0_17",
    "age_18_25",
    "age_26_35",
    "age_36_50",
    "age_51_65",
    "age_65_plus",
)

# Exclusive upper bounds (days of membership) of each join-time bucket
JOIN_TIME_BRACKET_DAYS: Final[Tuple[int, ...]] = (30, 90, 180, 365, 730)

# Valid membership tiers
MIN_MEMBERSHIP_TIER: Final[int] = 1
MAX_MEMBERSHIP_TIER: Final[int] = 5

MILLISECONDS_PER_DAY: Final[int] = 24 * 60 * 60 * 1000

# =============================================================================
# Signing
# =============================================================================

# Ed25519 key and signature sizes in bytes
ED25519_PUBLIC_KEY_BYTES: Final[int] = 32
ED25519_SIGNATURE_BYTES: Final[int] = 64

# Domain tag prepended to admission messages before signing
ADMISSION_SIGNATURE_TAG: Final[bytes] = b"zk-citizen/admission/v1"

# =============================================================================
# Secret Derivation (Argon2id)
# =============================================================================

ARGON2_TIME_COST: Final[int] = 3

# Memory cost in KB (64 MB)
ARGON2_MEMORY_COST: Final[int] = 65536

ARGON2_PARALLELISM: Final[int] = 1

ARGON2_HASH_LENGTH: Final[int] = 32

ARGON2_SALT_LENGTH: Final[int] = 16

# =============================================================================
# Proof Artifacts
# =============================================================================

# Format tag of the witness-bundle artifacts produced by the bundled backend
WITNESS_BUNDLE_FORMAT: Final[str] = "witness-bundle/v1"

# Upper bound for a serialized proof artifact in bytes
MAX_PROOF_SIZE: Final[int] = 64 * 1024
