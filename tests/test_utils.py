import pytest

from zk_citizen import config
from zk_citizen.exceptions import SlotOccupied, StaleRoot
from zk_citizen.utils import generate_id, retry, short_hex, timer, to_hex

# ═══════════════════════════════════════════════════════════════════════════════
# DECORATORS
# ═══════════════════════════════════════════════════════════════════════════════


def test_retry_stops_after_success():
    calls = []

    @retry(max_attempts=3, exceptions=(StaleRoot,))
    def flaky():
        calls.append(1)
        if len(calls) < 2:
            raise StaleRoot(1, 2)
        return "ok"

    assert flaky() == "ok"
    assert len(calls) == 2


def test_retry_reraises_last_error():
    calls = []

    @retry(max_attempts=2, exceptions=(StaleRoot,))
    def always_stale():
        calls.append(1)
        raise StaleRoot(1, 2)

    with pytest.raises(StaleRoot):
        always_stale()
    assert len(calls) == 2


def test_retry_ignores_unlisted_errors():
    calls = []

    @retry(max_attempts=5, exceptions=(StaleRoot,))
    def occupied():
        calls.append(1)
        raise SlotOccupied(0)

    with pytest.raises(SlotOccupied):
        occupied()
    assert len(calls) == 1


def test_retry_requires_an_attempt():
    with pytest.raises(ValueError):
        retry(max_attempts=0)


def test_timer_preserves_result_and_errors():
    @timer
    def double(x):
        return 2 * x

    @timer
    def broken():
        raise KeyError("missing")

    assert double(4) == 8
    assert double.__name__ == "double"
    with pytest.raises(KeyError):
        broken()


# ═══════════════════════════════════════════════════════════════════════════════
# HELPERS AND CONFIG
# ═══════════════════════════════════════════════════════════════════════════════


def test_hex_helpers():
    assert to_hex(255) == "0" * 62 + "ff"
    assert short_hex(255) == "0" * 16 + "..."
    assert generate_id("snap").startswith("snap_")
    assert generate_id() != generate_id()


def test_config_summary_and_validation():
    assert config.validate_configuration()
    summary = config.get_config_summary()
    assert summary["accumulator"]["capacity"] == 2 ** summary["accumulator"]["depth"]
    assert summary["registration"]["max_attempts"] >= 1


def test_error_serialization_hides_values():
    error = StaleRoot(2**200, 7)
    data = error.to_dict()

    assert data["error_type"] == "StaleRoot"
    assert data["retryable"] is True
    assert data["fatal"] is False
    assert len(data["context"]["expected_root_preview"]) == 16
    assert "REG_002" in str(error)
