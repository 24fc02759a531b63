import pytest
import structlog

from zk_citizen.aggregates import DemographicData
from zk_citizen.commitment import create_identity, derive_nullifier, hash_string
from zk_citizen.ledger import Ledger
from zk_citizen.registration import PassportEntry, RegistrationProtocol


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop logging configuration installed by a test, e.g. the CLI's stderr binding."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def demographics():
    return DemographicData(
        age_bracket=2,
        region_code=hash_string("north"),
        membership_tier=3,
        join_time_bracket=1,
    )


@pytest.fixture
def ledger():
    return Ledger(depth=8)


@pytest.fixture
def protocol(ledger):
    return RegistrationProtocol(ledger, require_signature=False)


@pytest.fixture
def make_participant(demographics):
    """Build a (PassportEntry, nullifier) pair for participant ``i``."""

    def _make(i, secret=None, demographics_override=None):
        id_number = f"E{i:07d}A"
        record = create_identity(
            f"Participant {i}", (1990, 5, 15), "SG", id_number, salt=1000 + i
        )
        nullifier = derive_nullifier(id_number, 777 + i if secret is None else secret)
        entry = PassportEntry(record.identity_hash, demographics_override or demographics)
        return entry, nullifier

    return _make
