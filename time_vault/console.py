"""Console output formatting."""

from time_vault.formatters import format_bp, format_units, lock_state
from time_vault.ledger import VaultLedger
from time_vault.models import DepositReceipt, VaultEvent, VaultStats, WithdrawalReceipt


def print_deposit_receipt(account: str, receipt: DepositReceipt) -> None:
    print(f"🔒 Deposit accepted for {account}")
    print(f"   Amount:        {format_units(receipt.amount)}")
    print(f"   Yield rate:    {format_bp(receipt.yield_rate)}")
    print(f"   Unlock height: {receipt.unlock_height}")


def print_withdrawal_receipt(account: str, receipt: WithdrawalReceipt) -> None:
    print(f"💸 Withdrawal paid to {account}")
    print(f"   Principal: {format_units(receipt.principal)}")
    print(f"   Yield:     {format_units(receipt.yield_amount)}")
    print(f"   Total:     {format_units(receipt.total)}")


def print_deposit_info(ledger: VaultLedger, account: str) -> None:
    """Print an account's deposit, lock progress and statistics."""
    record = ledger.get_deposit_info(account)
    stats = ledger.get_user_stats(account)
    print("=" * 60)
    print(f"👤 {account}")
    print("=" * 60)
    if record is None:
        print("   No deposit.")
    else:
        remaining = ledger.get_blocks_remaining(account)
        emoji, state = lock_state(record.withdrawn, remaining)
        print(f"   {emoji} {state}")
        print(f"   Amount:         {format_units(record.amount)}")
        print(f"   Yield rate:     {format_bp(record.yield_rate)} over {record.lock_period} blocks")
        print(f"   Deposit height: {record.deposit_height}")
        print(f"   Unlock height:  {record.unlock_height}")
        if record.active:
            print(f"   Blocks left:    {remaining}")
            print(f"   Accrued yield:  {format_units(ledger.calculate_yield(account))}")
    print("   " + "─" * 40)
    print(f"   Total deposited:    {format_units(stats.total_deposited)}")
    print(f"   Total withdrawn:    {format_units(stats.total_withdrawn)}")
    print(f"   Total yield earned: {format_units(stats.total_yield_earned)}")
    print(f"   Deposits made:      {stats.deposit_count}")


def print_vault_stats(stats: VaultStats, vault_balance: int) -> None:
    status = "⏸️  paused" if stats.vault_paused else "▶️  accepting deposits"
    print("=" * 60)
    print("🏦 TIME VAULT")
    print(f"   height={stats.current_height}  •  created at {stats.creation_height}  •  {status}")
    print("=" * 60)
    print(f"   Total locked:            {format_units(stats.total_locked)}")
    print(f"   Total yield distributed: {format_units(stats.total_yield_distributed)}")
    print(f"   Custody balance:         {format_units(vault_balance)}")


def format_event(event: VaultEvent) -> str:
    fields = " ".join(f"{k}={v}" for k, v in event.payload.items())
    return f"[{event.height}] {event.event} {event.account} {fields}".rstrip()
