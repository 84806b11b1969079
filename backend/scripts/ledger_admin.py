import argparse
import json
import sys
from datetime import datetime

from dateutil import parser as date_parser
from loguru import logger

from bountymarket.core.config import get_settings
from bountymarket.core.logging import configure_logging
from bountymarket.domain import LedgerError, MarketStatus, ensure_utc, normalize_identity
from bountymarket.runtime import Runtime, build_runtime
from bountymarket.transfers import InMemoryVault
from bountymarket.units import format_amount, parse_amount


def _parse_datetime(value: str) -> datetime:
    try:
        return ensure_utc(date_parser.isoparse(value))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid ISO-8601 timestamp: {value}") from exc


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Operate the bounty market ledger")
    parser.add_argument("--as", dest="account", default="", help="Calling account identity")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create the ledger tables")

    create = subparsers.add_parser("create-market", help="Open a new market")
    create.add_argument("question")
    create.add_argument("--description", default="")
    create.add_argument("--deadline", type=_parse_datetime, required=True)
    create.add_argument("--resolution-date", type=_parse_datetime, required=True)

    stake = subparsers.add_parser("stake", help="Stake on a market as --as")
    stake.add_argument("market_id", type=int)
    stake.add_argument("side", choices=["yes", "no"])
    stake.add_argument("amount", help="Amount in whole tokens, e.g. 1.5")
    stake.add_argument("--guess", type=_parse_datetime, required=True, help="Timestamp guess")
    stake.add_argument(
        "--fund",
        action="store_true",
        help="Deposit the amount into the staker's in-memory balance first",
    )

    verify = subparsers.add_parser("verify-bounty", help="Record a verified bounty claim")
    verify.add_argument("market_id", type=int)
    verify.add_argument("claimant")
    verify.add_argument("--timestamp", type=_parse_datetime, required=True)

    resolve = subparsers.add_parser("resolve", help="Resolve a market and pay out")
    resolve.add_argument("market_id", type=int)
    resolve.add_argument("answer", choices=["yes", "no"])
    resolve.add_argument("--timestamp", type=_parse_datetime, required=True)

    set_admin = subparsers.add_parser("set-admin", help="Hand the admin role to another account")
    set_admin.add_argument("new_admin")

    show = subparsers.add_parser("show", help="Print a market with its odds and stakes")
    show.add_argument("market_id", type=int)

    return parser.parse_args(argv)


def _hydrate_vault(runtime: Runtime) -> None:
    """The in-memory vault starts empty each run; escrow is rebuilt from the open pools."""

    vault = runtime.transfers
    if not isinstance(vault, InMemoryVault):
        return
    held = 0
    for status in (MarketStatus.ACTIVE, MarketStatus.CLOSED):
        markets, _ = runtime.service.ledger.list_markets(status=status, limit=1_000_000)
        held += sum(market.yes_pool + market.no_pool + market.bounty_pool for market in markets)
    if held:
        vault.deposit(vault.escrow_account, held)
        logger.debug("Seeded in-memory escrow with {}", held)


def _market_payload(runtime: Runtime, market_id: int) -> dict:
    service = runtime.service
    decimals = runtime.settings.token_decimals
    view = service.get_market(market_id)
    market = view.market
    return {
        "id": market.id,
        "question": market.question,
        "creator": market.creator,
        "status": view.status.value,
        "deadline": market.deadline.isoformat(),
        "resolution_date": market.resolution_date.isoformat(),
        "yes_pool": format_amount(market.yes_pool, decimals=decimals),
        "no_pool": format_amount(market.no_pool, decimals=decimals),
        "bounty_pool": format_amount(market.bounty_pool, decimals=decimals),
        "total_pool": format_amount(view.total_pool, decimals=decimals),
        "odds": {"yes": str(view.odds.yes), "no": str(view.odds.no)},
        "bounty_claimant": market.bounty_claimant,
        "correct_answer": market.correct_answer.value if market.correct_answer else None,
        "unclaimed": format_amount(market.unclaimed_amount, decimals=decimals),
        "stakes": [
            {
                "id": stake.id,
                "staker": stake.staker,
                "side": stake.side.value,
                "amount": format_amount(stake.amount, decimals=decimals),
                "timestamp_guess": stake.timestamp_guess.isoformat(),
            }
            for stake in service.list_stakes(market_id)
        ],
    }


def run(args: argparse.Namespace, runtime: Runtime) -> dict:
    service = runtime.service
    settings = runtime.settings

    if args.command == "init-db":
        return {"database": runtime.engine.url.render_as_string(hide_password=True)}

    if args.command == "create-market":
        view = service.create_market(
            question=args.question,
            description=args.description,
            deadline=args.deadline,
            resolution_date=args.resolution_date,
            creator=args.account,
        )
        return {"market_id": view.market.id}

    if args.command == "stake":
        amount = parse_amount(args.amount, decimals=settings.token_decimals)
        if args.fund and isinstance(runtime.transfers, InMemoryVault) and amount > 0:
            runtime.transfers.deposit(normalize_identity(args.account), amount)
        stake = service.place_stake(
            args.market_id,
            side=args.side,
            amount=amount,
            timestamp_guess=args.guess,
            staker=args.account,
        )
        return {"stake_id": stake.id, "pool_share": stake.pool_share, "bounty_share": stake.bounty_share}

    if args.command == "verify-bounty":
        view = service.verify_bounty_claim(
            args.market_id, claimant=args.claimant, actual_timestamp=args.timestamp, caller=args.account
        )
        return {"market_id": view.market.id, "bounty_claimant": view.market.bounty_claimant}

    if args.command == "resolve":
        report = service.resolve_market(
            args.market_id, correct_answer=args.answer, actual_timestamp=args.timestamp, caller=args.account
        )
        return report.to_dict()

    if args.command == "set-admin":
        return {"admin": service.set_admin(args.new_admin, caller=args.account)}

    return _market_payload(runtime, args.market_id)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    configure_logging(settings)

    runtime = build_runtime(settings)
    try:
        _hydrate_vault(runtime)
        result = run(args, runtime)
    except LedgerError as exc:
        logger.error("{} failed: {}", args.command, exc.message)
        print(json.dumps({"error": exc.code, "detail": exc.message}), file=sys.stderr)
        return 1
    finally:
        runtime.close()

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
