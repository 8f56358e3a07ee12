"""Commissions CLI — command-line interface for the commission engines.

Usage:
    python -m commissions.cli calculate --amount 10000 --structure '{"kind": "percentage", "rate": "15"}'
    python -m commissions.cli evaluate --id T-001 --type ats-subscription --amount 8100 \
        --consultant sales-agent=c-001 --consultant account-manager=c-002
    python -m commissions.cli split --amount 1000 --participant c-001=60 --participant c-002=40
    python -m commissions.cli check-invariants

Environment (a .env file in the working directory is loaded first):
    COMMISSIONS_CONFIG_DIR  config directory (default: config/)
    COMMISSIONS_LOG_LEVEL   logging level (default: WARNING)
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from datetime import date
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from commissions.allocation.allocator import SplitParticipant
from commissions.models.commission import TransactionAttributes
from commissions.policy.resolver import PolicyResolver, parse_structure, to_decimal
from commissions.service import CommissionService, ServiceResult


DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "config"


def _make_service(config_dir: Path) -> CommissionService:
    resolver = PolicyResolver.from_config_dir(config_dir)
    return CommissionService(resolver)


def _pairs(values: list[str] | None, label: str) -> list[tuple[str, str]]:
    """Split repeated KEY=VALUE arguments."""
    pairs = []
    for raw in values or []:
        key, sep, value = raw.partition("=")
        if not sep or not key or not value:
            raise ValueError(f"{label} must look like KEY=VALUE, got {raw!r}")
        pairs.append((key, value))
    return pairs


def _emit(result: ServiceResult) -> int:
    if result.success:
        print(json.dumps(result.data, indent=2))
        return 0
    print(f"Failed: {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def cmd_calculate(args: argparse.Namespace) -> int:
    service = _make_service(args.config)
    structure = parse_structure(json.loads(args.structure))
    return _emit(service.calculate(to_decimal(args.amount, "amount"), structure))


def cmd_evaluate(args: argparse.Namespace) -> int:
    service = _make_service(args.config)
    metadata: dict[str, Any] = dict(_pairs(args.meta, "--meta"))
    transaction = TransactionAttributes(
        transaction_id=args.id,
        transaction_type=args.type,
        base_amount=to_decimal(args.amount, "amount"),
        employer_id=args.employer,
        subscription_tier=args.subscription_tier,
        service_type=args.service_type,
        transaction_date=date.fromisoformat(args.date) if args.date else date.today(),
        metadata=metadata,
    )
    structure = parse_structure(json.loads(args.structure)) if args.structure else None
    result = service.evaluate_transaction(
        transaction,
        structure=structure,
        consultants=_pairs(args.consultant, "--consultant"),
        require_exact=args.require_exact,
    )
    return _emit(result)


def cmd_split(args: argparse.Namespace) -> int:
    service = _make_service(args.config)
    participants = [
        SplitParticipant(consultant_id=cid, split_percentage=to_decimal(pct, "split"))
        for cid, pct in _pairs(args.participant, "--participant")
    ]
    transaction = TransactionAttributes(
        transaction_id=args.id,
        transaction_type="split",
        base_amount=to_decimal(args.amount, "amount"),
    )
    return _emit(service.split_fixed_total(transaction, transaction.base_amount, participants))


def cmd_check_invariants(args: argparse.Namespace) -> int:
    """Run policy invariant checks."""
    tools_dir = Path(__file__).resolve().parents[2] / "tools"
    sys.path.insert(0, str(tools_dir))
    from check_invariants import check
    return check(args.config)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="commissions",
        description="Multi-role commission engine CLI",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path(os.environ.get("COMMISSIONS_CONFIG_DIR", DEFAULT_CONFIG)),
        help="Path to config directory (default: config/)",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("COMMISSIONS_LOG_LEVEL", "WARNING"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )
    sub = parser.add_subparsers(dest="command")

    # calculate
    p_calc = sub.add_parser("calculate", help="Calculate a commission for an amount")
    p_calc.add_argument("--amount", required=True, help="Base amount")
    p_calc.add_argument("--structure", required=True, help="Structure as JSON")

    # evaluate
    p_eval = sub.add_parser("evaluate", help="Match rules and allocate a transaction")
    p_eval.add_argument("--id", required=True, help="Transaction ID")
    p_eval.add_argument("--type", required=True, help="Transaction type")
    p_eval.add_argument("--amount", required=True, help="Base amount")
    p_eval.add_argument("--date", help="Transaction date, YYYY-MM-DD (default: today)")
    p_eval.add_argument("--employer", help="Employer ID")
    p_eval.add_argument("--subscription-tier", help="Subscription tier")
    p_eval.add_argument("--service-type", help="Service type")
    p_eval.add_argument("--structure", help="Structure as JSON (default: whole amount)")
    p_eval.add_argument(
        "--consultant", action="append",
        help="ROLE_TYPE=CONSULTANT_ID, repeatable",
    )
    p_eval.add_argument("--meta", action="append", help="KEY=VALUE metadata, repeatable")
    p_eval.add_argument(
        "--require-exact", action="store_true",
        help="Require percentage actions to sum to exactly 100",
    )

    # split
    p_split = sub.add_parser("split", help="Split a fixed total among consultants")
    p_split.add_argument("--id", default="split", help="Transaction ID")
    p_split.add_argument("--amount", required=True, help="Total to split")
    p_split.add_argument(
        "--participant", action="append", required=True,
        help="CONSULTANT_ID=PERCENT, repeatable",
    )

    # check-invariants
    sub.add_parser("check-invariants", help="Validate the commission policy file")

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "calculate": cmd_calculate,
        "evaluate": cmd_evaluate,
        "split": cmd_split,
        "check-invariants": cmd_check_invariants,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    try:
        return handler(args)
    except (KeyError, ValueError) as e:
        print(f"Invalid input: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
