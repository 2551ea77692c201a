"""CLI and main logic."""

import argparse
import os
import sys
from pathlib import Path

from time_vault.clock import Clock, ManualClock, connect_web3_clock
from time_vault.console import (
    format_event,
    print_deposit_info,
    print_deposit_receipt,
    print_vault_stats,
    print_withdrawal_receipt,
)
from time_vault.constants import DEFAULT_OWNER, DEFAULT_TIMEOUT, LOCK_TIERS
from time_vault.errors import VaultError
from time_vault.formatters import format_tier, format_units, parse_units
from time_vault.ledger import VaultLedger
from time_vault.scenario import load_scenario, run_scenario
from time_vault.store import clear_state, default_state_path, load_vault, save_vault
from time_vault.validation import check_solvency, validate_ledger

# Commands that change the stored vault and must be saved afterwards.
MUTATING_COMMANDS = {"init", "deposit", "withdraw", "fund", "pause", "faucet", "mine", "replay"}


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse command-line arguments."""
    p = argparse.ArgumentParser(description="Time-locked value vault: lock deposits by tier, withdraw with yield.")
    p.add_argument(
        "--state",
        default=None,
        help="Vault state file. Default: $XDG_DATA_HOME/time_vault/state.json.",
    )
    p.add_argument(
        "--rpc-url",
        default=None,
        help="Read block height from this execution-layer RPC instead of the local clock. "
        "Defaults to the ETH_RPC_URL environment variable when set.",
    )
    p.add_argument(
        "--as",
        dest="caller",
        default=None,
        help="Account performing owner-only commands (init, fund, pause). Default: the vault owner.",
    )
    sub = p.add_subparsers(dest="command", required=True)

    init = sub.add_parser("init", help="Deploy and initialize a new vault.")
    init.add_argument("--owner", default=DEFAULT_OWNER, help=f"Owner account. Default: {DEFAULT_OWNER}.")

    deposit = sub.add_parser("deposit", help="Lock an amount for a tier.")
    deposit.add_argument("account")
    deposit.add_argument("amount", help="Whole units (e.g. 1.5), or micro-units with a `u` suffix (e.g. 1500000u).")
    deposit.add_argument("tier", help="One of: " + ", ".join(format_tier(t) for t in LOCK_TIERS))

    withdraw = sub.add_parser("withdraw", help="Withdraw a matured deposit with its yield.")
    withdraw.add_argument("account")

    fund = sub.add_parser("fund", help="Top up the vault's yield funding (owner only).")
    fund.add_argument("amount")

    sub.add_parser("pause", help="Toggle whether new deposits are accepted (owner only).")

    faucet = sub.add_parser("faucet", help="Credit an account with spendable balance.")
    faucet.add_argument("account")
    faucet.add_argument("amount")

    mine = sub.add_parser("mine", help="Advance the local clock.")
    mine.add_argument("blocks", type=int, nargs="?", default=1)

    info = sub.add_parser("info", help="Show an account's deposit and statistics.")
    info.add_argument("account")

    sub.add_parser("stats", help="Show vault statistics.")

    yld = sub.add_parser("yield", help="Show the yield an account's deposit has accrued.")
    yld.add_argument("account")

    events = sub.add_parser("events", help="List emitted events.")
    events.add_argument("--limit", type=int, default=20)

    sub.add_parser("check", help="Check ledger invariants and vault solvency.")

    replay = sub.add_parser("replay", help="Replay a JSON scenario of operations.")
    replay.add_argument("scenario")
    replay.add_argument("--dry-run", action="store_true", help="Do not save the resulting state.")

    sub.add_parser("reset", help="Delete the stored vault.")
    return p.parse_args(argv)


def run_command(args: argparse.Namespace, ledger: VaultLedger) -> int:
    """Run a single command against a loaded ledger."""
    caller = args.caller or ledger.owner
    cmd = args.command

    if cmd == "init":
        ledger.initialize_vault(args.caller or args.owner)
    elif cmd == "deposit":
        receipt = ledger.deposit(args.account, parse_units(args.amount), args.tier)
        print_deposit_receipt(args.account, receipt)
    elif cmd == "withdraw":
        print_withdrawal_receipt(args.account, ledger.withdraw(args.account))
    elif cmd == "fund":
        balance = ledger.fund_vault(caller, parse_units(args.amount))
        print(f"🏦 Vault funded. Custody balance: {format_units(balance)}")
    elif cmd == "pause":
        paused = ledger.toggle_pause(caller)
        print("⏸️  Deposits paused." if paused else "▶️  Deposits resumed.")
    elif cmd == "faucet":
        balance = ledger.custody.credit(args.account, parse_units(args.amount))
        print(f"🚰 {args.account} balance: {format_units(balance)}")
    elif cmd == "mine":
        if not isinstance(ledger.clock, ManualClock):
            print("Error: cannot mine blocks while reading height from an RPC node.", file=sys.stderr)
            return 2
        print(f"⛏️  Height: {ledger.clock.mine(args.blocks)}")
    elif cmd == "info":
        print_deposit_info(ledger, args.account)
    elif cmd == "stats":
        print_vault_stats(ledger.get_vault_stats(), ledger.get_vault_balance())
    elif cmd == "yield":
        print(f"{format_units(ledger.calculate_yield(args.account))} at height {ledger.clock.height}")
    elif cmd == "events":
        for event in ledger.events[-args.limit :] if args.limit > 0 else ledger.events:
            print(format_event(event))
    elif cmd == "check":
        issues = validate_ledger(ledger, warn_only=True)
        for issue in issues:
            print(f"❌ {issue}", file=sys.stderr)
        for warning in check_solvency(ledger):
            print(f"⚠️  {warning}", file=sys.stderr)
        if issues:
            return 1
        print("✅ Ledger invariants hold.")
    elif cmd == "replay":
        outcomes = run_scenario(ledger, load_scenario(Path(args.scenario)))
        failed = [o for o in outcomes if not o.ok]
        print(f"Replayed {len(outcomes)} steps, {len(failed)} unexpected outcome(s).")
        if failed:
            return 1
    return 0


def main(argv: list[str]) -> int:
    """Main entry point."""
    args = parse_args(argv)
    state_path = Path(args.state) if args.state else default_state_path()

    if args.command == "reset":
        clear_state(state_path)
        return 0

    clock: Clock | None = None
    rpc_url = args.rpc_url or os.getenv("ETH_RPC_URL")
    if rpc_url:
        try:
            clock = connect_web3_clock(rpc_url, timeout_s=DEFAULT_TIMEOUT)
        except Exception as ex:  # pylint: disable=broad-exception-caught
            print(f"Error: {ex}", file=sys.stderr)
            return 2

    try:
        ledger = load_vault(state_path, clock=clock)
    except ValueError as ex:
        print(f"Error: {ex}", file=sys.stderr)
        return 2

    if ledger is None:
        if args.command != "init":
            print("No vault found. Run: time-vault init", file=sys.stderr)
            return 2
        ledger = VaultLedger.deploy(args.owner, clock or ManualClock())
        save_vault(ledger, state_path)
        print(f"✅ Vault initialized at height {ledger.vault_state.creation_height}, owner {ledger.owner}")
        return 0

    try:
        rc = run_command(args, ledger)
    except VaultError as ex:
        print(f"❌ {ex}", file=sys.stderr)
        return 1
    except ValueError as ex:
        print(f"Error: {ex}", file=sys.stderr)
        return 2

    if rc == 0 and args.command in MUTATING_COMMANDS and not getattr(args, "dry_run", False):
        save_vault(ledger, state_path)
    return rc


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
