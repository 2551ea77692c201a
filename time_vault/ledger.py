"""Vault ledger: deposits, lock maturity, yield and withdrawal.

The ledger owns all mutable vault state. Every state-changing operation runs as one
unit of work under a single re-entrant lock: the deposit map, the counters, the
custody balances and the event log are snapshotted on entry and restored if anything
raises, so an operation commits all of its effects or none of them.
"""

import sys
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import replace

from time_vault.clock import Clock
from time_vault.constants import (
    EVENT_DEPOSIT,
    EVENT_PAUSE_TOGGLED,
    EVENT_VAULT_FUNDED,
    EVENT_VAULT_INITIALIZED,
    EVENT_WITHDRAW,
    LOCK_TIERS,
    MAX_DEPOSIT,
    TOTAL_BASIS_POINTS,
    VAULT_ACCOUNT,
)
from time_vault.custody import Custody
from time_vault.errors import ErrorCode, InsufficientFunds, VaultError
from time_vault.models import (
    DepositReceipt,
    DepositRecord,
    UserStats,
    VaultEvent,
    VaultState,
    VaultStats,
    WithdrawalReceipt,
)

EventListener = Callable[[VaultEvent], None]


def resolve_tier(tier: str) -> tuple[int, int]:
    """Look up (lock period in blocks, yield rate in bps) for a tier name."""
    try:
        return LOCK_TIERS[tier]
    except (KeyError, TypeError):
        raise VaultError(ErrorCode.INVALID_LOCK_PERIOD, f"unknown lock tier: {tier!r}") from None


def compute_yield(record: DepositRecord, current_height: int) -> int:
    """
    Yield accrued by `record` at `current_height`.

    floor(amount * rate * blocks_elapsed / (lock_period * 10000)), with every
    multiplication done before the single floor division. Elapsed blocks are not
    capped at the lock period, so yield keeps accruing after maturity.
    """
    if record.lock_period <= 0:
        raise VaultError(ErrorCode.INVALID_LOCK_PERIOD, "deposit has a zero lock period")
    blocks_elapsed = max(0, current_height - record.deposit_height)
    return (record.amount * record.yield_rate * blocks_elapsed) // (record.lock_period * TOTAL_BASIS_POINTS)


class VaultLedger:
    """Time-locked vault: one active deposit per account, withdrawn once after maturity."""

    def __init__(
        self,
        owner: str,
        clock: Clock,
        custody: Custody | None = None,
        *,
        vault_account: str = VAULT_ACCOUNT,
    ) -> None:
        self.owner = owner
        self.clock = clock
        self.custody = custody if custody is not None else Custody()
        self.vault_account = vault_account

        self._deposits: dict[str, DepositRecord] = {}
        self._user_stats: dict[str, UserStats] = {}
        self._vault = VaultState()
        self.events: list[VaultEvent] = []

        self._pending: list[VaultEvent] = []
        self._listeners: list[EventListener] = []
        self._lock = threading.RLock()

    @classmethod
    def deploy(cls, owner: str, clock: Clock, custody: Custody | None = None, **kwargs) -> "VaultLedger":
        """Create a ledger and initialize it as its owner, like a contract deployment."""
        ledger = cls(owner, clock, custody, **kwargs)
        ledger.initialize_vault(owner)
        return ledger

    @classmethod
    def from_records(
        cls,
        owner: str,
        clock: Clock,
        custody: Custody,
        *,
        deposits: dict[str, DepositRecord],
        user_stats: dict[str, UserStats],
        vault_state: VaultState,
        events: list[VaultEvent] | None = None,
        vault_account: str = VAULT_ACCOUNT,
    ) -> "VaultLedger":
        """Rebuild a ledger from previously exported records."""
        ledger = cls(owner, clock, custody, vault_account=vault_account)
        ledger._deposits = dict(deposits)
        ledger._user_stats = dict(user_stats)
        ledger._vault = vault_state
        ledger.events = list(events or [])
        return ledger

    def subscribe(self, listener: EventListener) -> None:
        """Call `listener` with every event once its operation has committed."""
        self._listeners.append(listener)

    @contextmanager
    def _unit_of_work(self) -> Iterator[int]:
        """Run one operation atomically; yields the block height it executes at."""
        with self._lock:
            saved = (dict(self._deposits), dict(self._user_stats), self._vault, self.custody.snapshot())
            self._pending = []
            try:
                yield self.clock.height
            except BaseException:
                self._deposits, self._user_stats, self._vault, custody_balances = saved
                self.custody.restore(custody_balances)
                self._pending = []
                raise
            committed, self._pending = self._pending, []
            self.events.extend(committed)
        # The operation has committed; a failing listener must not look like a failed operation.
        for event in committed:
            for listener in self._listeners:
                try:
                    listener(event)
                except Exception as ex:  # pylint: disable=broad-exception-caught
                    print(f"⚠️  Event listener failed on {event.event} for {event.account}: {ex}", file=sys.stderr)

    def _emit(self, event: str, account: str, height: int, **payload) -> None:
        self._pending.append(VaultEvent(event=event, account=account, height=height, payload=payload))

    def _require_owner(self, caller: str) -> None:
        if caller != self.owner:
            raise VaultError(ErrorCode.OWNER_ONLY, f"{caller} is not the vault owner")

    # Administrative path

    def initialize_vault(self, caller: str) -> int:
        """Record the creation height. Owner only, once. Returns the creation height."""
        with self._unit_of_work() as height:
            self._require_owner(caller)
            if self._vault.initialized:
                raise VaultError(ErrorCode.ALREADY_EXISTS, "vault is already initialized")
            self._vault = replace(self._vault, creation_height=height, initialized=True)
            self._emit(EVENT_VAULT_INITIALIZED, caller, height, creation_height=height)
            return height

    def toggle_pause(self, caller: str) -> bool:
        """Flip the gate on new deposits. Owner only. Returns the new paused flag."""
        with self._unit_of_work() as height:
            self._require_owner(caller)
            paused = not self._vault.vault_paused
            self._vault = replace(self._vault, vault_paused=paused)
            self._emit(EVENT_PAUSE_TOGGLED, caller, height, vault_paused=paused)
            return paused

    def fund_vault(self, caller: str, amount: int) -> int:
        """Top up custody to cover yield payouts. Owner only. Returns the new vault balance."""
        with self._unit_of_work() as height:
            self._require_owner(caller)
            if amount <= 0:
                raise VaultError(ErrorCode.ZERO_AMOUNT, "funding amount must be positive")
            self._transfer_in(caller, amount)
            balance = self.custody.balance_of(self.vault_account)
            self._emit(EVENT_VAULT_FUNDED, caller, height, amount=amount, vault_balance=balance)
            return balance

    # Deposit / withdraw

    def deposit(self, caller: str, amount: int, tier: str) -> DepositReceipt:
        """Lock `amount` for `tier`. At most one active deposit per account."""
        with self._unit_of_work() as height:
            if self._vault.vault_paused:
                raise VaultError(ErrorCode.VAULT_PAUSED, "deposits are paused")
            if amount <= 0:
                raise VaultError(ErrorCode.ZERO_AMOUNT, "deposit amount must be positive")
            if amount > MAX_DEPOSIT:
                raise VaultError(ErrorCode.INVALID_AMOUNT, f"deposit exceeds maximum of {MAX_DEPOSIT}")
            lock_period, yield_rate = resolve_tier(tier)
            existing = self._deposits.get(caller)
            if existing is not None and existing.active:
                raise VaultError(ErrorCode.ALREADY_EXISTS, f"{caller} already has an active deposit")

            self._transfer_in(caller, amount)

            record = DepositRecord(
                amount=amount,
                lock_period=lock_period,
                deposit_height=height,
                unlock_height=height + lock_period,
                yield_rate=yield_rate,
            )
            self._deposits[caller] = record

            stats = self._user_stats.get(caller, UserStats())
            self._user_stats[caller] = replace(
                stats,
                total_deposited=stats.total_deposited + amount,
                deposit_count=stats.deposit_count + 1,
            )

            total_locked = self._vault.total_locked + amount
            if total_locked > MAX_DEPOSIT:
                raise VaultError(ErrorCode.INVALID_AMOUNT, "vault total locked would exceed maximum")
            self._vault = replace(self._vault, total_locked=total_locked)

            receipt = DepositReceipt(amount=amount, unlock_height=record.unlock_height, yield_rate=yield_rate)
            self._emit(
                EVENT_DEPOSIT,
                caller,
                height,
                amount=amount,
                unlock_height=receipt.unlock_height,
                yield_rate=yield_rate,
                tier=tier,
            )
            return receipt

    def withdraw(self, caller: str) -> WithdrawalReceipt:
        """Pay out principal plus accrued yield for a matured deposit, exactly once."""
        with self._unit_of_work() as height:
            record = self._deposits.get(caller)
            if record is None:
                raise VaultError(ErrorCode.NOT_FOUND, f"no deposit for {caller}")
            # Already-withdrawn deposits report NOT_FOUND for compatibility; the message tells them apart.
            if record.withdrawn:
                raise VaultError(ErrorCode.NOT_FOUND, f"deposit for {caller} was already withdrawn")
            if height < record.unlock_height:
                raise VaultError(
                    ErrorCode.LOCK_PERIOD_NOT_MET,
                    f"deposit unlocks at height {record.unlock_height} (current {height})",
                )
            yield_amount = compute_yield(record, height)
            total = record.amount + yield_amount
            if self.custody.balance_of(self.vault_account) < total:
                raise VaultError(ErrorCode.INSUFFICIENT_VAULT_BALANCE, f"vault cannot cover payout of {total}")

            # Close the record before value leaves custody.
            self._deposits[caller] = replace(record, withdrawn=True)
            try:
                self.custody.transfer(self.vault_account, caller, total)
            except InsufficientFunds as ex:
                raise VaultError(ErrorCode.INSUFFICIENT_VAULT_BALANCE, str(ex)) from ex

            stats = self._user_stats.get(caller, UserStats())
            self._user_stats[caller] = replace(
                stats,
                total_withdrawn=stats.total_withdrawn + total,
                total_yield_earned=stats.total_yield_earned + yield_amount,
            )
            self._vault = replace(
                self._vault,
                total_locked=self._vault.total_locked - record.amount,
                total_yield_distributed=self._vault.total_yield_distributed + yield_amount,
            )

            self._emit(EVENT_WITHDRAW, caller, height, principal=record.amount, yield_amount=yield_amount, total=total)
            return WithdrawalReceipt(principal=record.amount, yield_amount=yield_amount, total=total)

    def _transfer_in(self, caller: str, amount: int) -> None:
        try:
            self.custody.transfer(caller, self.vault_account, amount)
        except InsufficientFunds as ex:
            raise VaultError(ErrorCode.INSUFFICIENT_BALANCE, str(ex)) from ex

    # Read-only queries

    def get_deposit_info(self, account: str) -> DepositRecord | None:
        with self._lock:
            return self._deposits.get(account)

    def get_user_stats(self, account: str) -> UserStats:
        with self._lock:
            return self._user_stats.get(account, UserStats())

    def get_vault_stats(self) -> VaultStats:
        with self._lock:
            return VaultStats(
                total_locked=self._vault.total_locked,
                total_yield_distributed=self._vault.total_yield_distributed,
                vault_paused=self._vault.vault_paused,
                current_height=self.clock.height,
                creation_height=self._vault.creation_height,
            )

    def is_lock_expired(self, account: str) -> bool:
        with self._lock:
            record = self._deposits.get(account)
            return record is not None and self.clock.height >= record.unlock_height

    def get_blocks_remaining(self, account: str) -> int:
        with self._lock:
            record = self._deposits.get(account)
            if record is None:
                return 0
            return max(0, record.unlock_height - self.clock.height)

    def calculate_yield(self, account: str) -> int:
        with self._lock:
            record = self._deposits.get(account)
            if record is None:
                raise VaultError(ErrorCode.NOT_FOUND, f"no deposit for {account}")
            return compute_yield(record, self.clock.height)

    def get_vault_balance(self) -> int:
        with self._lock:
            return self.custody.balance_of(self.vault_account)

    @property
    def vault_state(self) -> VaultState:
        with self._lock:
            return self._vault

    def deposits(self) -> dict[str, DepositRecord]:
        with self._lock:
            return dict(self._deposits)

    def user_stats(self) -> dict[str, UserStats]:
        with self._lock:
            return dict(self._user_stats)
