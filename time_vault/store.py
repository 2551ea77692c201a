"""JSON persistence of a local vault between CLI runs."""

import json
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any

from time_vault.clock import Clock, ManualClock
from time_vault.constants import STATE_DIR_NAME, STATE_FILE_NAME, STATE_VERSION
from time_vault.custody import Custody
from time_vault.ledger import VaultLedger
from time_vault.models import DepositRecord, UserStats, VaultEvent, VaultState


def get_state_dir() -> Path:
    """Get the state directory path. Uses XDG_DATA_HOME if available, otherwise ~/.local/share."""
    data_home = os.getenv("XDG_DATA_HOME")
    if data_home:
        base = Path(data_home)
    else:
        base = Path.home() / ".local" / "share"
    state_dir = base / STATE_DIR_NAME
    state_dir.mkdir(parents=True, exist_ok=True)
    return state_dir


def default_state_path() -> Path:
    return get_state_dir() / STATE_FILE_NAME


def clear_state(path: Path | None = None) -> None:
    """Delete the stored vault."""
    path = path or default_state_path()
    if path.exists():
        path.unlink()
        print("✅ Vault state cleared.", file=sys.stderr)
    else:
        print("ℹ️  No vault state found (nothing to clear).", file=sys.stderr)


def dump_ledger(ledger: VaultLedger, *, clock_height: int | None = None) -> dict[str, Any]:
    """Serialize a ledger (and its custody balances) to plain JSON types."""
    return {
        "version": STATE_VERSION,
        "owner": ledger.owner,
        "vault_account": ledger.vault_account,
        "clock_height": clock_height,
        "vault": asdict(ledger.vault_state),
        "deposits": {k: asdict(v) for k, v in sorted(ledger.deposits().items())},
        "user_stats": {k: asdict(v) for k, v in sorted(ledger.user_stats().items())},
        "balances": dict(sorted(ledger.custody.balances().items())),
        "events": [asdict(e) for e in ledger.events],
    }


def load_ledger(data: dict[str, Any], clock: Clock | None = None) -> VaultLedger:
    """Rebuild a ledger from `dump_ledger` output.

    Without `clock`, a ManualClock resumes at the saved height, and never below the
    highest height already recorded in the state.
    """
    if not isinstance(data, dict):
        raise ValueError(f"Corrupt vault state: expected a JSON object, got {type(data).__name__}")
    version = data.get("version")
    if version != STATE_VERSION:
        raise ValueError(f"Unsupported vault state version: {version} (expected {STATE_VERSION})")
    try:
        owner = data["owner"]
        vault_account = data["vault_account"]
        vault_state = VaultState(**data["vault"])
        deposits = {k: DepositRecord(**v) for k, v in data.get("deposits", {}).items()}
        user_stats = {k: UserStats(**v) for k, v in data.get("user_stats", {}).items()}
        events = [VaultEvent(**e) for e in data.get("events", [])]
        custody = Custody(data.get("balances") or {})
        saved_height = int(data.get("clock_height") or 0)
    except (KeyError, TypeError, AttributeError) as ex:
        raise ValueError(f"Corrupt vault state: {type(ex).__name__}: {ex}") from ex
    if clock is None:
        floor = max([vault_state.creation_height, *(r.deposit_height for r in deposits.values())])
        clock = ManualClock(max(saved_height, floor))
    return VaultLedger.from_records(
        owner,
        clock,
        custody,
        deposits=deposits,
        user_stats=user_stats,
        vault_state=vault_state,
        events=events,
        vault_account=vault_account,
    )


def save_vault(ledger: VaultLedger, path: Path | None = None) -> Path:
    """Write the ledger to `path` atomically (temp file + rename)."""
    path = path or default_state_path()
    data = dump_ledger(ledger, clock_height=ledger.clock.height)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f"{path.name}.tmp")
    with tmp.open("w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    os.replace(tmp, path)
    return path


def load_vault(path: Path | None = None, *, clock: Clock | None = None) -> VaultLedger | None:
    """Load the ledger stored at `path`. Returns None if nothing was saved yet."""
    path = path or default_state_path()
    if not path.exists():
        return None
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as ex:
        raise ValueError(f"Corrupt vault state file {path}: {ex}") from ex
    return load_ledger(data, clock)
