import sys
import json
import time
import argparse
from typing import Any, Dict, List, Optional

import numpy as np
import structlog

from . import config
from .aggregates import DemographicData
from .commitment import commit_date, commit_string, create_identity, derive_nullifier
from .constants import MILLISECONDS_PER_DAY
from .exceptions import ZkCitizenError
from .ledger import Ledger
from .predicates import demographics_consistent, population_above, population_in_range
from .prover import WitnessBundleProver
from .registration import PassportEntry, RegistrationProtocol
from .salts import generate_salt
from .utils import configure_logging, to_hex

# Initialize structured logger
logger = structlog.get_logger(__name__)

REGIONS = ("north", "south", "east", "west", "central")


class ZkCitizenCLI:
    """Command-line interface for the ZK-Citizen core."""

    def __init__(self) -> None:
        self.parser = self._create_argument_parser()

    def _create_argument_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog="zk-citizen",
            description="ZK-Citizen - privacy-preserving identity and census core",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        parser.add_argument(
            "--log-level",
            default=None,
            help=f"Log level (default: {config.LOG_LEVEL}).",
        )

        subparsers = parser.add_subparsers(dest="command", required=True)
        self._add_commit_command(subparsers)
        self._add_simulate_command(subparsers)

        return parser

    def _add_commit_command(self, subparsers) -> None:
        commit_parser = subparsers.add_parser(
            "commit", help="Print the commitment of a string or a date."
        )
        value_group = commit_parser.add_mutually_exclusive_group(required=True)
        value_group.add_argument("--string", dest="string_value", help="String to commit to.")
        value_group.add_argument("--date", help="Date to commit to, as YYYY-MM-DD.")
        commit_parser.add_argument(
            "--salt",
            type=int,
            default=None,
            help="Salt as a decimal field element (random if omitted).",
        )

    def _add_simulate_command(self, subparsers) -> None:
        simulate_parser = subparsers.add_parser(
            "simulate",
            help="Register synthetic participants, snapshot and evaluate population predicates.",
        )
        simulate_parser.add_argument(
            "--participants", type=int, default=100, help="Number of participants. Default: 100."
        )
        simulate_parser.add_argument(
            "--depth",
            type=int,
            default=config.ACCUMULATOR_DEPTH,
            help=f"Accumulator depth. Default: {config.ACCUMULATOR_DEPTH}.",
        )
        simulate_parser.add_argument(
            "--threshold", type=int, default=50, help="Population threshold. Default: 50."
        )
        simulate_parser.add_argument(
            "--range",
            type=int,
            nargs=2,
            metavar=("MIN", "MAX"),
            default=(1, 1000),
            help="Population range. Default: 1 1000.",
        )
        simulate_parser.add_argument(
            "--seed",
            type=int,
            default=config.RANDOM_SEED,
            help="Random seed for the synthetic population.",
        )
        simulate_parser.add_argument(
            "--prove",
            action="store_true",
            help="Also bundle and verify the population proofs.",
        )

    def _execute_commit_command(self, args: argparse.Namespace) -> int:
        salt = args.salt if args.salt is not None else generate_salt()

        try:
            if args.string_value is not None:
                commitment = commit_string(args.string_value, salt)
                kind = "string"
            else:
                try:
                    year, month, day = (int(part) for part in args.date.split("-"))
                except ValueError:
                    print(
                        f"\n[ERROR] Invalid date '{args.date}', expected YYYY-MM-DD",
                        file=sys.stderr,
                    )
                    return 1
                commitment = commit_date(year, month, day, salt)
                kind = "date"
        except ZkCitizenError as e:
            print(f"\n[ERROR] {e}", file=sys.stderr)
            return 1

        self._print_json({"kind": kind, "salt": str(salt), "commitment": to_hex(commitment)})
        return 0

    def _synthetic_entries(self, count: int, seed: Optional[int]) -> List[Dict[str, Any]]:
        rng = np.random.default_rng(seed)
        current_year = time.gmtime().tm_year
        now_ms = int(time.time() * 1000)

        birth_years = rng.integers(current_year - 90, current_year - 5, size=count)
        regions = rng.integers(0, len(REGIONS), size=count)
        tiers = rng.integers(1, 6, size=count)
        tenure_days = rng.integers(0, 1500, size=count)

        entries = []
        for i in range(count):
            birth_year = int(birth_years[i])
            record = create_identity(
                f"participant-{i}", (birth_year, 1, 1), "XX", f"ID{i:08d}"
            )
            demographics = DemographicData.create(
                birth_year=birth_year,
                region=REGIONS[int(regions[i])],
                membership_tier=int(tiers[i]),
                join_timestamp_ms=now_ms - int(tenure_days[i]) * MILLISECONDS_PER_DAY,
                current_year=current_year,
                current_timestamp_ms=now_ms,
            )
            entries.append(
                {
                    "entry": PassportEntry(record.identity_hash, demographics),
                    "nullifier": derive_nullifier(f"ID{i:08d}", generate_salt()),
                }
            )
        return entries

    def _execute_simulate_command(self, args: argparse.Namespace) -> int:
        logger.info(
            "Starting census simulation",
            participants=args.participants,
            depth=args.depth,
            seed=args.seed,
        )

        try:
            ledger = Ledger(depth=args.depth)
            protocol = RegistrationProtocol(ledger, require_signature=False)

            for item in self._synthetic_entries(args.participants, args.seed):
                protocol.submit(item["entry"], item["nullifier"])

            snapshot = ledger.snapshot()
            state = ledger.read_state()
            min_population, max_population = args.range

            results = [
                population_above(state.participant_count, args.threshold),
                population_in_range(state.participant_count, min_population, max_population),
                demographics_consistent(state.aggregate, state.aggregate_hash),
            ]

            summary = {
                "snapshot": snapshot.to_dict(),
                "aggregate": state.aggregate.to_dict(),
                "predicates": {result.predicate: result.satisfied for result in results},
            }

            if args.prove:
                summary["proofs"] = self._prove_population(
                    state.participant_count, args.threshold, min_population, max_population
                )

            self._print_json(summary)

            logger.info("Census simulation completed", total_population=snapshot.total_population)
            return 0

        except ZkCitizenError as e:
            logger.error(f"A known application error occurred: {e}", exc_info=True)
            print(f"\n[ERROR] {e}", file=sys.stderr)
            return 1

    def _prove_population(
        self, total: int, threshold: int, min_population: int, max_population: int
    ) -> Dict[str, Any]:
        prover = WitnessBundleProver()
        claims = {
            "population_above": ({"threshold": threshold}, {"total": total}),
            "population_in_range": (
                {"min_population": min_population, "max_population": max_population},
                {"total": total},
            ),
        }

        proofs = {}
        for predicate, (public_inputs, private_inputs) in claims.items():
            try:
                artifact = prover.prove(predicate, public_inputs, private_inputs)
            except ZkCitizenError as e:
                if e.is_fault:
                    raise
                proofs[predicate] = {"proved": False}
                continue

            proofs[predicate] = {
                "proved": True,
                "format": artifact.format,
                "zero_knowledge": artifact.zero_knowledge,
                "size_bytes": len(artifact),
                "verified": prover.verify(predicate, public_inputs, artifact),
            }
        return proofs

    @staticmethod
    def _print_json(data: Dict[str, Any]) -> None:
        print(json.dumps(data, indent=2, sort_keys=True))

    def run_from_args(self, args_list: Optional[List[str]] = None) -> int:
        """Run the CLI with provided arguments."""
        try:
            args = self.parser.parse_args(args_list)
            configure_logging(level=args.log_level)

            if args.command == "commit":
                return self._execute_commit_command(args)
            elif args.command == "simulate":
                return self._execute_simulate_command(args)
            else:
                self.parser.print_help()
                return 1
        except KeyboardInterrupt:
            print("\nOperation cancelled by user.", file=sys.stderr)
            return 130


def main() -> int:
    """Main entry point for the CLI."""
    cli = ZkCitizenCLI()
    return cli.run_from_args()


if __name__ == "__main__":
    sys.exit(main())
