"""Data models for the time-locked vault."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class DepositRecord:
    """A single account's deposit. Replaced, never edited in place."""

    amount: int
    lock_period: int
    deposit_height: int
    unlock_height: int
    # Basis-point rate fixed at deposit time by the chosen tier.
    yield_rate: int
    withdrawn: bool = False

    @property
    def active(self) -> bool:
        return not self.withdrawn


@dataclass(frozen=True)
class UserStats:
    """Cumulative per-account counters. Bookkeeping only, never consulted by the rules."""

    total_deposited: int = 0
    total_withdrawn: int = 0
    total_yield_earned: int = 0
    deposit_count: int = 0


@dataclass(frozen=True)
class VaultState:
    """Vault-wide aggregates."""

    # Sum of amounts over deposits that are not withdrawn.
    total_locked: int = 0
    total_yield_distributed: int = 0
    vault_paused: bool = False
    creation_height: int = 0
    initialized: bool = False


@dataclass(frozen=True)
class DepositReceipt:
    amount: int
    unlock_height: int
    yield_rate: int


@dataclass(frozen=True)
class WithdrawalReceipt:
    principal: int
    yield_amount: int
    total: int


@dataclass(frozen=True)
class VaultStats:
    """Read-only view of the vault aggregates at the current height."""

    total_locked: int
    total_yield_distributed: int
    vault_paused: bool
    current_height: int
    creation_height: int


@dataclass(frozen=True)
class VaultEvent:
    """Record of a committed state-changing operation, for external indexing."""

    event: str
    account: str
    height: int
    payload: dict[str, Any] = field(default_factory=dict)
