import random
import threading

import pytest

from time_vault.constants import LOCK_TIERS, MAX_DEPOSIT, VAULT_ACCOUNT
from time_vault.custody import Custody
from time_vault.errors import ErrorCode, InsufficientFunds, VaultError
from time_vault.ledger import VaultLedger, compute_yield, resolve_tier
from time_vault.models import DepositReceipt, DepositRecord, UserStats, VaultStats, WithdrawalReceipt
from time_vault.validation import validate_ledger

DEPLOYER = "deployer"
WALLET_1 = "wallet_1"
WALLET_2 = "wallet_2"
STARTING_BALANCE = 100_000_000_000

SHORT_LOCK_BLOCKS = 4320
MEDIUM_LOCK_BLOCKS = 8640
LONG_LOCK_BLOCKS = 17280


def _error_code(fn, *args) -> ErrorCode:
    with pytest.raises(VaultError) as exc_info:
        fn(*args)
    return exc_info.value.code


# Initialization


def test_vault_is_initialized_on_deployment(ledger, clock):
    assert ledger.get_vault_stats() == VaultStats(
        total_locked=0,
        total_yield_distributed=0,
        vault_paused=False,
        current_height=clock.height,
        creation_height=clock.height,
    )


def test_double_initialization_is_rejected(ledger):
    assert _error_code(ledger.initialize_vault, DEPLOYER) == ErrorCode.ALREADY_EXISTS


def test_non_owner_cannot_initialize(ledger):
    assert _error_code(ledger.initialize_vault, WALLET_1) == ErrorCode.OWNER_ONLY


def test_owner_check_precedes_initialized_check(clock, custody):
    fresh = VaultLedger(DEPLOYER, clock, custody)
    assert _error_code(fresh.initialize_vault, WALLET_1) == ErrorCode.OWNER_ONLY
    clock.mine(5)
    assert fresh.initialize_vault(DEPLOYER) == 8
    assert fresh.get_vault_stats().creation_height == 8


# Deposit


@pytest.mark.parametrize(
    ("tier", "amount", "lock_blocks", "rate"),
    [
        ("short", 1_000_000, SHORT_LOCK_BLOCKS, 500),
        ("medium", 2_000_000, MEDIUM_LOCK_BLOCKS, 1000),
        ("long", 5_000_000, LONG_LOCK_BLOCKS, 1500),
    ],
)
def test_deposit_returns_tier_terms(ledger, clock, tier, amount, lock_blocks, rate):
    receipt = ledger.deposit(WALLET_1, amount, tier)
    assert receipt == DepositReceipt(amount=amount, unlock_height=clock.height + lock_blocks, yield_rate=rate)
    assert resolve_tier(tier) == (lock_blocks, rate)


def test_tier_table_is_exact():
    assert LOCK_TIERS == {"short": (4320, 500), "medium": (8640, 1000), "long": (17280, 1500)}


def test_deposit_stores_record(ledger, clock):
    height = clock.height
    ledger.deposit(WALLET_1, 1_000_000, "short")
    assert ledger.get_deposit_info(WALLET_1) == DepositRecord(
        amount=1_000_000,
        lock_period=SHORT_LOCK_BLOCKS,
        deposit_height=height,
        unlock_height=height + SHORT_LOCK_BLOCKS,
        yield_rate=500,
        withdrawn=False,
    )


def test_deposit_moves_value_into_custody(ledger, custody):
    ledger.deposit(WALLET_1, 1_000_000, "short")
    assert custody.balance_of(WALLET_1) == STARTING_BALANCE - 1_000_000
    assert ledger.get_vault_balance() == 1_000_000
    assert ledger.get_vault_stats().total_locked == 1_000_000
    assert ledger.get_user_stats(WALLET_1) == UserStats(total_deposited=1_000_000, deposit_count=1)


def test_zero_amount_is_rejected(ledger):
    assert _error_code(ledger.deposit, WALLET_1, 0, "short") == ErrorCode.ZERO_AMOUNT


def test_invalid_tier_is_rejected(ledger):
    assert _error_code(ledger.deposit, WALLET_1, 1_000_000, "invalid") == ErrorCode.INVALID_LOCK_PERIOD


def test_amount_above_maximum_is_rejected(ledger):
    assert _error_code(ledger.deposit, WALLET_1, MAX_DEPOSIT + 1, "short") == ErrorCode.INVALID_AMOUNT


def test_duplicate_active_deposit_is_rejected(ledger):
    ledger.deposit(WALLET_1, 1_000_000, "short")
    assert _error_code(ledger.deposit, WALLET_1, 1_000_000, "short") == ErrorCode.ALREADY_EXISTS


def test_insufficient_balance_is_rejected(ledger):
    assert _error_code(ledger.deposit, "pauper", 1_000_000, "short") == ErrorCode.INSUFFICIENT_BALANCE


def test_paused_vault_rejects_deposits(ledger):
    assert ledger.toggle_pause(DEPLOYER) is True
    assert _error_code(ledger.deposit, WALLET_1, 1_000_000, "short") == ErrorCode.VAULT_PAUSED
    assert ledger.toggle_pause(DEPLOYER) is False
    ledger.deposit(WALLET_1, 1_000_000, "short")


@pytest.mark.parametrize(
    ("setup", "account", "amount", "tier", "expected"),
    [
        ("pause", WALLET_1, 0, "invalid", ErrorCode.VAULT_PAUSED),
        (None, WALLET_1, 0, "invalid", ErrorCode.ZERO_AMOUNT),
        (None, WALLET_1, MAX_DEPOSIT + 1, "invalid", ErrorCode.INVALID_AMOUNT),
        ("deposit", WALLET_1, 1_000_000, "invalid", ErrorCode.INVALID_LOCK_PERIOD),
        ("deposit", WALLET_1, STARTING_BALANCE * 2, "short", ErrorCode.ALREADY_EXISTS),
    ],
)
def test_deposit_checks_run_in_order(ledger, setup, account, amount, tier, expected):
    if setup == "pause":
        ledger.toggle_pause(DEPLOYER)
    elif setup == "deposit":
        ledger.deposit(account, 1_000_000, "short")
    assert _error_code(ledger.deposit, account, amount, tier) == expected


def test_total_locked_overflow_aborts_whole_deposit(ledger, custody):
    custody.credit(WALLET_1, MAX_DEPOSIT)
    ledger.deposit(WALLET_1, MAX_DEPOSIT, "long")
    vault_balance = ledger.get_vault_balance()

    assert _error_code(ledger.deposit, WALLET_2, 1, "short") == ErrorCode.INVALID_AMOUNT
    assert custody.balance_of(WALLET_2) == STARTING_BALANCE
    assert ledger.get_vault_balance() == vault_balance
    assert ledger.get_deposit_info(WALLET_2) is None
    assert ledger.get_user_stats(WALLET_2) == UserStats()
    assert ledger.get_vault_stats().total_locked == MAX_DEPOSIT


# Yield


def test_yield_reference_value():
    record = DepositRecord(
        amount=1_000_000, lock_period=4320, deposit_height=0, unlock_height=4320, yield_rate=500
    )
    assert compute_yield(record, 4321) == 50011


def test_yield_accrues_past_maturity():
    record = DepositRecord(amount=1_000_000, lock_period=4320, deposit_height=0, unlock_height=4320, yield_rate=500)
    assert compute_yield(record, 4320) == 50_000
    assert compute_yield(record, 8640) == 100_000


def test_yield_is_floored():
    record = DepositRecord(amount=3, lock_period=4320, deposit_height=0, unlock_height=4320, yield_rate=500)
    assert compute_yield(record, 4320) == 0


def test_zero_lock_period_is_guarded():
    record = DepositRecord(amount=1, lock_period=0, deposit_height=0, unlock_height=0, yield_rate=500)
    assert _error_code(compute_yield, record, 10) == ErrorCode.INVALID_LOCK_PERIOD


def test_calculate_yield_without_deposit_is_not_found(ledger):
    assert _error_code(ledger.calculate_yield, WALLET_1) == ErrorCode.NOT_FOUND


def test_calculate_yield_tracks_height(ledger, clock):
    ledger.deposit(WALLET_1, 1_000_000, "short")
    assert ledger.calculate_yield(WALLET_1) == 0
    clock.mine(2160)
    assert ledger.calculate_yield(WALLET_1) == 25_000


# Withdraw


def test_withdraw_before_unlock_is_rejected(ledger, clock):
    ledger.deposit(WALLET_1, 1_000_000, "short")
    clock.mine(SHORT_LOCK_BLOCKS - 1)
    assert _error_code(ledger.withdraw, WALLET_1) == ErrorCode.LOCK_PERIOD_NOT_MET


def test_withdraw_after_unlock_pays_principal_and_yield(ledger, clock, custody):
    ledger.fund_vault(DEPLOYER, 10_000_000)
    ledger.deposit(WALLET_1, 1_000_000, "short")
    clock.mine(SHORT_LOCK_BLOCKS + 1)

    receipt = ledger.withdraw(WALLET_1)

    assert receipt == WithdrawalReceipt(principal=1_000_000, yield_amount=50011, total=1_050_011)
    assert custody.balance_of(WALLET_1) == STARTING_BALANCE + 50011
    assert ledger.get_vault_balance() == 10_000_000 - 50011
    assert ledger.get_deposit_info(WALLET_1).withdrawn is True
    assert ledger.get_vault_stats().total_locked == 0
    assert ledger.get_vault_stats().total_yield_distributed == 50011
    assert ledger.get_user_stats(WALLET_1) == UserStats(
        total_deposited=1_000_000, total_withdrawn=1_050_011, total_yield_earned=50011, deposit_count=1
    )


def test_withdraw_medium_tier_yield(ledger, clock):
    ledger.fund_vault(DEPLOYER, 20_000_000)
    ledger.deposit(WALLET_1, 2_000_000, "medium")
    clock.mine(MEDIUM_LOCK_BLOCKS + 1)
    receipt = ledger.withdraw(WALLET_1)
    assert receipt.yield_amount == (2_000_000 * 1000 * (MEDIUM_LOCK_BLOCKS + 1)) // (MEDIUM_LOCK_BLOCKS * 10000)
    assert receipt.yield_amount == 200023


def test_withdraw_without_deposit_is_not_found(ledger):
    assert _error_code(ledger.withdraw, WALLET_1) == ErrorCode.NOT_FOUND


def test_double_withdrawal_is_not_found(ledger, clock):
    ledger.fund_vault(DEPLOYER, 10_000_000)
    ledger.deposit(WALLET_1, 1_000_000, "short")
    clock.mine(SHORT_LOCK_BLOCKS + 1)
    ledger.withdraw(WALLET_1)
    with pytest.raises(VaultError) as exc_info:
        ledger.withdraw(WALLET_1)
    assert exc_info.value.code == ErrorCode.NOT_FOUND
    assert "already withdrawn" in exc_info.value.message


def test_unfunded_yield_is_insufficient_vault_balance(ledger, clock):
    ledger.deposit(WALLET_1, 1_000_000, "short")
    clock.mine(SHORT_LOCK_BLOCKS)
    assert _error_code(ledger.withdraw, WALLET_1) == ErrorCode.INSUFFICIENT_VAULT_BALANCE
    assert ledger.get_deposit_info(WALLET_1).withdrawn is False


class _FailingPayoutCustody(Custody):
    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        if sender == VAULT_ACCOUNT:
            raise InsufficientFunds(sender, self.balance_of(sender), amount)
        super().transfer(sender, recipient, amount)


def test_failed_payout_rolls_back_withdrawn_flag(clock):
    custody = _FailingPayoutCustody({DEPLOYER: STARTING_BALANCE, WALLET_1: STARTING_BALANCE})
    ledger = VaultLedger.deploy(DEPLOYER, clock, custody)
    ledger.fund_vault(DEPLOYER, 10_000_000)
    ledger.deposit(WALLET_1, 1_000_000, "short")
    clock.mine(SHORT_LOCK_BLOCKS)
    events_before = list(ledger.events)

    assert _error_code(ledger.withdraw, WALLET_1) == ErrorCode.INSUFFICIENT_VAULT_BALANCE

    assert ledger.get_deposit_info(WALLET_1).withdrawn is False
    assert ledger.get_vault_stats().total_locked == 1_000_000
    assert ledger.get_vault_stats().total_yield_distributed == 0
    assert ledger.get_user_stats(WALLET_1).total_withdrawn == 0
    assert ledger.events == events_before


def test_redeposit_after_withdrawal_restarts_cycle(ledger, clock):
    ledger.fund_vault(DEPLOYER, 10_000_000)
    ledger.deposit(WALLET_1, 1_000_000, "short")
    clock.mine(SHORT_LOCK_BLOCKS)
    ledger.withdraw(WALLET_1)

    receipt = ledger.deposit(WALLET_1, 3_000_000, "long")

    assert receipt.unlock_height == clock.height + LONG_LOCK_BLOCKS
    record = ledger.get_deposit_info(WALLET_1)
    assert record.withdrawn is False
    assert record.amount == 3_000_000
    assert ledger.get_user_stats(WALLET_1).deposit_count == 2
    assert ledger.get_vault_stats().total_locked == 3_000_000


# Administrative path


def test_fund_vault_is_owner_only(ledger):
    assert _error_code(ledger.fund_vault, WALLET_1, 1_000) == ErrorCode.OWNER_ONLY
    assert _error_code(ledger.fund_vault, DEPLOYER, 0) == ErrorCode.ZERO_AMOUNT
    assert ledger.fund_vault(DEPLOYER, 1_000) == 1_000


def test_pause_is_owner_only(ledger):
    assert _error_code(ledger.toggle_pause, WALLET_1) == ErrorCode.OWNER_ONLY
    assert ledger.get_vault_stats().vault_paused is False


# Queries


def test_lock_progress_queries(ledger, clock):
    assert ledger.is_lock_expired(WALLET_1) is False
    assert ledger.get_blocks_remaining(WALLET_1) == 0

    ledger.deposit(WALLET_1, 1_000_000, "short")
    assert ledger.is_lock_expired(WALLET_1) is False
    assert ledger.get_blocks_remaining(WALLET_1) == SHORT_LOCK_BLOCKS

    clock.mine(SHORT_LOCK_BLOCKS - 1)
    assert ledger.get_blocks_remaining(WALLET_1) == 1

    clock.mine(1)
    assert ledger.is_lock_expired(WALLET_1) is True
    assert ledger.get_blocks_remaining(WALLET_1) == 0

    clock.mine(100)
    assert ledger.get_blocks_remaining(WALLET_1) == 0


def test_queries_are_idempotent(ledger):
    ledger.deposit(WALLET_1, 1_000_000, "short")
    assert ledger.get_vault_stats() == ledger.get_vault_stats()
    assert ledger.get_deposit_info(WALLET_1) == ledger.get_deposit_info(WALLET_1)
    assert ledger.get_deposit_info(WALLET_2) is None
    assert ledger.get_user_stats(WALLET_2) == UserStats()


# Events


def test_events_are_emitted_on_commit_only(ledger, clock):
    seen = []
    ledger.subscribe(seen.append)
    ledger.fund_vault(DEPLOYER, 10_000_000)
    ledger.deposit(WALLET_1, 1_000_000, "short")
    with pytest.raises(VaultError):
        ledger.deposit(WALLET_1, 1_000_000, "short")
    clock.mine(SHORT_LOCK_BLOCKS)
    ledger.withdraw(WALLET_1)

    assert [e.event for e in ledger.events] == ["vault-initialized", "vault-funded", "deposit", "withdraw"]
    assert [e.event for e in seen] == ["vault-funded", "deposit", "withdraw"]
    deposit_event = ledger.events[2]
    assert deposit_event.account == WALLET_1
    assert deposit_event.payload["unlock_height"] == deposit_event.height + SHORT_LOCK_BLOCKS
    assert deposit_event.payload["yield_rate"] == 500
    assert ledger.events[3].payload == {"principal": 1_000_000, "yield_amount": 50_000, "total": 1_050_000}


def test_failing_listener_does_not_fail_committed_operation(ledger, capsys):
    def _broken(event):
        raise RuntimeError("listener exploded")

    seen = []
    ledger.subscribe(_broken)
    ledger.subscribe(seen.append)

    receipt = ledger.deposit(WALLET_1, 1_000_000, "short")

    assert receipt.amount == 1_000_000
    assert ledger.get_deposit_info(WALLET_1).amount == 1_000_000
    assert ledger.vault_state.total_locked == 1_000_000
    assert [e.event for e in seen] == ["deposit"]
    err = capsys.readouterr().err
    assert "listener failed" in err
    assert "listener exploded" in err


# Invariants


def test_total_locked_matches_active_deposits_after_random_operations(clock):
    rng = random.Random(1234)
    accounts = [f"wallet_{i}" for i in range(8)]
    custody = Custody({a: 10**10 for a in accounts} | {DEPLOYER: 10**12})
    ledger = VaultLedger.deploy(DEPLOYER, clock, custody)
    ledger.fund_vault(DEPLOYER, 10**11)

    for _ in range(400):
        account = rng.choice(accounts)
        action = rng.random()
        try:
            if action < 0.45:
                ledger.deposit(account, rng.randint(0, 10**9), rng.choice(["short", "medium", "long", "bogus"]))
            elif action < 0.8:
                ledger.withdraw(account)
            else:
                clock.mine(rng.randint(1, 6000))
        except VaultError:
            pass

        active = sum(r.amount for r in ledger.deposits().values() if not r.withdrawn)
        assert ledger.get_vault_stats().total_locked == active
        assert validate_ledger(ledger) == []


def test_concurrent_deposits_are_serialized(clock):
    accounts = [f"acct_{i}" for i in range(32)]
    custody = Custody({a: 1_000_000 for a in accounts})
    ledger = VaultLedger.deploy(DEPLOYER, clock, custody)
    barrier = threading.Barrier(len(accounts))

    def worker(account: str) -> None:
        barrier.wait()
        ledger.deposit(account, 1_000_000, "short")

    threads = [threading.Thread(target=worker, args=(a,)) for a in accounts]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert ledger.get_vault_stats().total_locked == 32_000_000
    assert ledger.get_vault_balance() == 32_000_000
    assert validate_ledger(ledger) == []
