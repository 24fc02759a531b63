"""
Configuration management for the ZK-Citizen core.

Runtime settings are read from environment variables and an optional .env
file. Protocol constants that affect commitment formats are not configurable
here; see ``constants.py``.
"""

import os
from typing import Optional
from dotenv import load_dotenv

from .constants import (
    ARGON2_MEMORY_COST,
    ARGON2_PARALLELISM,
    ARGON2_TIME_COST,
    DEFAULT_TREE_DEPTH,
    FIELD_MODULUS,
    MAX_TREE_DEPTH,
)

# Load environment variables from .env file if it exists
load_dotenv()

# =============================================================================
# Logging Configuration
# =============================================================================
# Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# Render log events as JSON instead of console key/value pairs
STRUCTURED_LOGGING: bool = os.getenv("STRUCTURED_LOGGING", "true").lower() == "true"

# =============================================================================
# Accumulator Configuration
# =============================================================================
# Depth of newly created accumulators (capacity 2**depth)
ACCUMULATOR_DEPTH: int = int(os.getenv("ACCUMULATOR_DEPTH", str(DEFAULT_TREE_DEPTH)))

# =============================================================================
# Registration Configuration
# =============================================================================
# Require an admin co-signature over (identity_hash, nullifier) for admission
REQUIRE_ADMIN_SIGNATURE: bool = (
    os.getenv("REQUIRE_ADMIN_SIGNATURE", "false").lower() == "true"
)

# Upper bound on attempts made by RegistrationProtocol.submit()
MAX_REGISTRATION_ATTEMPTS: int = int(os.getenv("MAX_REGISTRATION_ATTEMPTS", "3"))

# Context identifier mixed into census nullifiers
CENSUS_CONTEXT_ID: int = int(os.getenv("CENSUS_CONTEXT_ID", "1"))

# =============================================================================
# Secret Derivation Configuration
# =============================================================================
ARGON2_TIME_COST_SETTING: int = int(
    os.getenv("ARGON2_TIME_COST", str(ARGON2_TIME_COST))
)
ARGON2_MEMORY_COST_SETTING: int = int(
    os.getenv("ARGON2_MEMORY_COST", str(ARGON2_MEMORY_COST))
)
ARGON2_PARALLELISM_SETTING: int = int(
    os.getenv("ARGON2_PARALLELISM", str(ARGON2_PARALLELISM))
)

# =============================================================================
# Testing and Development Configuration
# =============================================================================
# Seed for the synthetic population generator (for reproducible simulations)
RANDOM_SEED: Optional[int] = None
if seed_str := os.getenv("RANDOM_SEED"):
    RANDOM_SEED = int(seed_str)

# Enable debug mode (skips import-time validation)
DEBUG_MODE: bool = os.getenv("DEBUG_MODE", "false").lower() == "true"


# =============================================================================
# Configuration Validation
# =============================================================================
def validate_configuration() -> bool:
    """
    Validate the current configuration settings.

    Returns
    -------
    bool
        True if configuration is valid.

    Raises
    ------
    ValueError
        If any configuration parameter is invalid.
    """
    errors = []

    if not 1 <= ACCUMULATOR_DEPTH <= MAX_TREE_DEPTH:
        errors.append(f"ACCUMULATOR_DEPTH must be between 1 and {MAX_TREE_DEPTH}")

    if MAX_REGISTRATION_ATTEMPTS < 1:
        errors.append("MAX_REGISTRATION_ATTEMPTS must be at least 1")

    if not 0 <= CENSUS_CONTEXT_ID < FIELD_MODULUS:
        errors.append("CENSUS_CONTEXT_ID must be a field element")

    if ARGON2_TIME_COST_SETTING < 1:
        errors.append("ARGON2_TIME_COST must be at least 1")

    if ARGON2_MEMORY_COST_SETTING < 8:
        errors.append("ARGON2_MEMORY_COST must be at least 8 KB")

    if ARGON2_PARALLELISM_SETTING < 1:
        errors.append("ARGON2_PARALLELISM must be at least 1")

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if LOG_LEVEL not in valid_log_levels:
        errors.append(f"LOG_LEVEL must be one of {valid_log_levels}")

    if errors:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"- {error}" for error in errors)
        )

    return True


def get_config_summary() -> dict:
    """
    Get a summary of the current configuration.

    Returns
    -------
    dict
        Dictionary containing key configuration parameters.
    """
    return {
        "accumulator": {
            "depth": ACCUMULATOR_DEPTH,
            "capacity": 2**ACCUMULATOR_DEPTH,
        },
        "registration": {
            "require_admin_signature": REQUIRE_ADMIN_SIGNATURE,
            "max_attempts": MAX_REGISTRATION_ATTEMPTS,
            "census_context_id": CENSUS_CONTEXT_ID,
        },
        "secret_derivation": {
            "argon2_time_cost": ARGON2_TIME_COST_SETTING,
            "argon2_memory_cost": ARGON2_MEMORY_COST_SETTING,
            "argon2_parallelism": ARGON2_PARALLELISM_SETTING,
        },
        "logging": {
            "level": LOG_LEVEL,
            "structured": STRUCTURED_LOGGING,
        },
        "debug_mode": DEBUG_MODE,
    }


# Validate configuration on import
if not DEBUG_MODE:
    validate_configuration()
