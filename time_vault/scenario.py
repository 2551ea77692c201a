"""Replay of scripted vault scenarios.

A scenario is a JSON list of steps (or an object with a "steps" list). Each step names
an operation and its arguments; amounts are integer micro-units:

    {"op": "faucet", "account": "wallet_1", "amount": 1000000}
    {"op": "deposit", "account": "wallet_1", "amount": 1000000, "tier": "short"}
    {"op": "mine", "blocks": 4321}
    {"op": "withdraw", "account": "wallet_1"}
    {"op": "fund", "amount": 10000000}
    {"op": "pause"}

A step may carry "expect_error": <code> to assert that it is rejected with that code.
"""

import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from tqdm import tqdm

from time_vault.clock import ManualClock
from time_vault.errors import VaultError
from time_vault.formatters import as_int
from time_vault.ledger import VaultLedger


@dataclass(frozen=True)
class StepOutcome:
    """Result of replaying one scenario step."""

    index: int
    op: str
    result: Any
    error_code: int | None
    expected_error: int | None

    @property
    def ok(self) -> bool:
        return self.error_code == self.expected_error


def load_scenario(path: Path) -> list[dict[str, Any]]:
    data = json.loads(path.read_text(encoding="utf-8"))
    steps = data.get("steps") if isinstance(data, dict) else data
    if not isinstance(steps, list):
        raise ValueError("Unexpected scenario format (expected a list of steps)")
    return steps


def apply_step(ledger: VaultLedger, step: dict[str, Any]) -> Any:
    """Apply one step to `ledger` and return the operation's result."""
    op = step.get("op")
    caller = step.get("caller") or step.get("account") or ledger.owner
    if op == "deposit":
        return ledger.deposit(caller, as_int(step.get("amount")), str(step.get("tier")))
    if op == "withdraw":
        return ledger.withdraw(caller)
    if op == "fund":
        return ledger.fund_vault(caller, as_int(step.get("amount")))
    if op == "pause":
        return ledger.toggle_pause(caller)
    if op == "init":
        return ledger.initialize_vault(caller)
    if op == "faucet":
        return ledger.custody.credit(caller, as_int(step.get("amount")))
    if op == "mine":
        if not isinstance(ledger.clock, ManualClock):
            raise ValueError("mine steps need a manual clock")
        return ledger.clock.mine(as_int(step.get("blocks"), default=1))
    raise ValueError(f"Unknown scenario op: {op!r}")


def run_scenario(ledger: VaultLedger, steps: list[dict[str, Any]], *, progress: bool = True) -> list[StepOutcome]:
    """Replay `steps` in order. Rejected operations are recorded and replay continues."""
    outcomes: list[StepOutcome] = []
    with tqdm(steps, desc="▶️  Replaying scenario", unit="step", file=sys.stderr, disable=not progress) as pbar:
        for i, step in enumerate(pbar):
            op = str(step.get("op"))
            pbar.set_postfix(op=op, height=ledger.clock.height)
            expected = step.get("expect_error")
            expected = as_int(expected) if expected is not None else None
            try:
                result = apply_step(ledger, step)
                code = None
            except VaultError as ex:
                result = None
                code = int(ex.code)
            outcome = StepOutcome(index=i, op=op, result=result, error_code=code, expected_error=expected)
            if not outcome.ok:
                tqdm.write(
                    f"⚠️  Step {i} ({op}): expected {_describe(expected)}, got {_describe(code)}",
                    file=sys.stderr,
                )
            outcomes.append(outcome)
    return outcomes


def _describe(code: int | None) -> str:
    return "success" if code is None else f"err u{code}"
