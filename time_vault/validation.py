"""Invariant checks over a vault ledger."""

from time_vault.constants import MAX_DEPOSIT
from time_vault.ledger import VaultLedger, compute_yield


def validate_ledger(ledger: VaultLedger, *, warn_only: bool = True) -> list[str]:
    """
    Validate ledger invariants.

    Returns list of validation issues. If warn_only=False, raises ValueError on the first one.
    """
    issues: list[str] = []

    def report(msg: str) -> None:
        issues.append(msg)
        if not warn_only:
            raise ValueError(msg)

    state = ledger.vault_state
    deposits = ledger.deposits()

    # 1. totalLocked == sum of amounts over deposits that are not withdrawn
    active_sum = sum(r.amount for r in deposits.values() if r.active)
    if state.total_locked != active_sum:
        report(f"total locked mismatch: vault={state.total_locked} != active deposits sum={active_sum}")

    # 2. Vault-wide cap
    if state.total_locked > MAX_DEPOSIT:
        report(f"total locked {state.total_locked} exceeds maximum {MAX_DEPOSIT}")

    # 3. Per-record consistency
    for account, r in sorted(deposits.items()):
        if not 0 < r.amount <= MAX_DEPOSIT:
            report(f"{account}: deposit amount out of range: {r.amount}")
        if r.lock_period <= 0:
            report(f"{account}: non-positive lock period: {r.lock_period}")
        # Terms are fixed per record; they need not match the current tier table.
        if r.yield_rate < 0:
            report(f"{account}: negative yield rate: {r.yield_rate}")
        if r.unlock_height != r.deposit_height + r.lock_period:
            report(
                f"{account}: unlock height {r.unlock_height} != "
                f"deposit height({r.deposit_height}) + lock period({r.lock_period})"
            )

    # 4. Custody must at least hold all locked principal
    balance = ledger.get_vault_balance()
    if balance < state.total_locked:
        report(f"vault balance {balance} below total locked {state.total_locked}")

    return issues


def unrealized_yield(ledger: VaultLedger) -> int:
    """Yield owed to active deposits if they all withdrew at the current height."""
    height = ledger.clock.height
    return sum(compute_yield(r, height) for r in ledger.deposits().values() if r.active)


def check_solvency(ledger: VaultLedger) -> list[str]:
    """Warn when custody cannot cover principal plus unrealized yield (not enforced by the ledger)."""
    obligations = ledger.vault_state.total_locked + unrealized_yield(ledger)
    balance = ledger.get_vault_balance()
    if balance < obligations:
        return [f"vault balance {balance} below obligations {obligations} (shortfall {obligations - balance})"]
    return []
