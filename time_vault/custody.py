"""Account balances and the atomic value-transfer primitive."""

from time_vault.errors import InsufficientFunds


class Custody:
    """In-memory balances of every account, including the vault's custody account."""

    def __init__(self, balances: dict[str, int] | None = None) -> None:
        self._balances: dict[str, int] = {}
        for account, amount in (balances or {}).items():
            self.credit(account, amount)

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def credit(self, account: str, amount: int) -> int:
        """Mint `amount` into `account` (faucet). Returns the new balance."""
        if amount < 0:
            raise ValueError("amount must be >= 0")
        self._balances[account] = self.balance_of(account) + int(amount)
        return self._balances[account]

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        """Move `amount` from `sender` to `recipient`, or change nothing and raise InsufficientFunds."""
        if amount < 0:
            raise ValueError("amount must be >= 0")
        balance = self.balance_of(sender)
        if balance < amount:
            raise InsufficientFunds(sender, balance, amount)
        self._balances[sender] = balance - amount
        self._balances[recipient] = self.balance_of(recipient) + amount

    def balances(self) -> dict[str, int]:
        return {k: v for k, v in self._balances.items() if v}

    def snapshot(self) -> dict[str, int]:
        return dict(self._balances)

    def restore(self, snapshot: dict[str, int]) -> None:
        self._balances = dict(snapshot)
