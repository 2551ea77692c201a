"""Error taxonomy of the vault ledger."""

from enum import IntEnum


class ErrorCode(IntEnum):
    """Numeric error codes, stable across integrations."""

    OWNER_ONLY = 100
    NOT_FOUND = 101
    INSUFFICIENT_BALANCE = 102
    LOCK_PERIOD_NOT_MET = 103
    ALREADY_EXISTS = 104
    INVALID_AMOUNT = 105
    VAULT_PAUSED = 106
    INVALID_LOCK_PERIOD = 107
    ZERO_AMOUNT = 108
    INSUFFICIENT_VAULT_BALANCE = 109


class VaultError(Exception):
    """A ledger operation was rejected; nothing it touched was committed."""

    def __init__(self, code: ErrorCode, message: str = "") -> None:
        self.code = ErrorCode(code)
        self.message = message or self.code.name.lower().replace("_", " ")
        super().__init__(f"err u{int(self.code)}: {self.message}")


class InsufficientFunds(Exception):
    """Raised by custody when a sender cannot cover a transfer."""

    def __init__(self, account: str, balance: int, amount: int) -> None:
        self.account = account
        self.balance = balance
        self.amount = amount
        super().__init__(f"{account} holds {balance}, cannot transfer {amount}")

    @property
    def shortfall(self) -> int:
        return self.amount - self.balance
