import json

import pytest
import structlog

from zk_citizen.cli import ZkCitizenCLI
from zk_citizen.commitment import commit_date, commit_string
from zk_citizen.ledger import Ledger
from zk_citizen.utils import to_hex


@pytest.fixture
def cli():
    return ZkCitizenCLI()


def test_commit_string(cli, capsys):
    code = cli.run_from_args(["commit", "--string", "John Doe", "--salt", "12345"])
    output = json.loads(capsys.readouterr().out)

    assert code == 0
    assert output == {
        "kind": "string",
        "salt": "12345",
        "commitment": to_hex(commit_string("John Doe", 12345)),
    }


def test_commit_date(cli, capsys):
    code = cli.run_from_args(["commit", "--date", "1990-05-15", "--salt", "12345"])
    output = json.loads(capsys.readouterr().out)

    assert code == 0
    assert output["commitment"] == to_hex(commit_date(1990, 5, 15, 12345))


@pytest.mark.parametrize("value", ["1990-13-15", "1990/05/15", "yesterday"])
def test_commit_rejects_bad_dates(cli, capsys, value):
    assert cli.run_from_args(["commit", "--date", value, "--salt", "1"]) == 1
    assert "[ERROR]" in capsys.readouterr().err


def test_simulate_with_proofs(cli, capsys):
    code = cli.run_from_args(
        [
            "simulate",
            "--participants", "5",
            "--depth", "6",
            "--threshold", "3",
            "--range", "1", "10",
            "--seed", "1",
            "--prove",
        ]
    )
    output = json.loads(capsys.readouterr().out)

    assert code == 0
    assert output["snapshot"]["total_population"] == 5
    assert output["aggregate"]["total"] == 5
    assert all(output["predicates"].values())
    assert output["proofs"]["population_above"]["verified"]
    assert output["proofs"]["population_in_range"]["zero_knowledge"] is False


def test_simulate_reports_unprovable_claims(cli, capsys):
    code = cli.run_from_args(
        ["simulate", "--participants", "2", "--depth", "4", "--threshold", "3", "--prove"]
    )
    output = json.loads(capsys.readouterr().out)

    assert code == 0
    assert output["predicates"]["population_above"] is False
    assert output["proofs"]["population_above"] == {"proved": False}


def test_simulate_over_capacity_fails(cli, capsys):
    code = cli.run_from_args(["simulate", "--participants", "5", "--depth", "2"])
    assert code == 1
    assert "[ERROR]" in capsys.readouterr().err


def test_cli_logging_does_not_outlive_the_test(cli, capsys):
    assert not structlog.is_configured()

    # Runs after the CLI tests above; logging here must not hit a closed stream
    ledger = Ledger(depth=4)
    ledger.snapshot()
    assert cli.run_from_args(["commit", "--string", "x", "--salt", "1"]) == 0
    assert structlog.is_configured()
