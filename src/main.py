import argparse
import logging
import sys
from typing import List, Optional

from csv_io import write_accounts
from processor import ProcessorConfig
from runner import PartitionedRunner, Runner, RunnerError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="payments-ledger",
        description="Apply a CSV stream of client transactions and print final account balances.",
    )
    parser.add_argument("input", help="CSV file with columns type, client, tx, amount")
    parser.add_argument(
        "--workers",
        type=int,
        default=0,
        help="worker threads partitioned by client id (0 processes sequentially)",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="logging level for stderr diagnostics",
    )
    parser.add_argument(
        "--lock-blocks-disputes",
        action="store_true",
        help="reject dispute, resolve and chargeback on locked accounts",
    )
    parser.add_argument(
        "--allow-withdrawal-disputes",
        action="store_true",
        help="allow withdrawals to be disputed",
    )
    return parser


def create_runner(args: argparse.Namespace) -> Runner:
    config = ProcessorConfig(
        locked_account_blocks_disputes=args.lock_blocks_disputes,
        allow_withdrawal_disputes=args.allow_withdrawal_disputes,
    )
    if args.workers > 0:
        return PartitionedRunner(num_workers=args.workers, config=config)
    return Runner(config=config)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.workers < 0:
        parser.error("--workers must not be negative")

    logging.basicConfig(
        level=args.log_level,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    runner = create_runner(args)
    try:
        accounts = runner.process_file(args.input)
    except RunnerError as e:
        print(e, file=sys.stderr)
        return 1

    write_accounts((accounts[client_id] for client_id in sorted(accounts)), sys.stdout)
    return 0


if __name__ == "__main__":
    sys.exit(main())
