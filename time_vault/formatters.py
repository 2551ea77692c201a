"""Formatting and conversion utilities."""

from decimal import Decimal, InvalidOperation

from time_vault.constants import LOCK_TIERS, MICRO_UNITS_PER_UNIT


def as_int(value, *, default: int = 0) -> int:
    """Convert value to int, handling various types."""
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        v = value.strip().replace("_", "")
        if v.startswith("0x"):
            return int(v, 16)
        return int(v)
    return int(value)


def parse_units(value: str) -> int:
    """Parse an amount given as whole units with an optional `u` suffix for micro-units.

    "1.5" -> 1500000, "250u" -> 250.
    """
    v = value.strip().replace("_", "")
    if v.endswith("u"):
        return as_int(v[:-1])
    try:
        micro = Decimal(v) * MICRO_UNITS_PER_UNIT
    except InvalidOperation as ex:
        raise ValueError(f"invalid amount: {value!r}") from ex
    if not micro.is_finite():
        raise ValueError(f"invalid amount: {value!r}")
    if micro !=micro.to_integral_value():
        raise ValueError(f"{value!r} has more than 6 decimal places")
    return int(micro)


def format_bp(bp: int) -> str:
    """Format basis points as percentage."""
    return f"{(Decimal(bp) / Decimal(100)):.2f}%"


def format_units(value: int, *, decimals: int = 6) -> str:
    """Format micro-units as whole units."""
    units = Decimal(value) / MICRO_UNITS_PER_UNIT
    s = f"{units:.{decimals}f}".rstrip("0").rstrip(".")
    return f"{s} units"


def format_tier(tier: str) -> str:
    """Describe a lock tier, e.g. `short (4320 blocks @ 5.00%)`."""
    lock_period, rate = LOCK_TIERS[tier]
    return f"{tier} ({lock_period} blocks @ {format_bp(rate)})"


def lock_state(withdrawn: bool, blocks_remaining: int) -> tuple[str, str]:
    """Returns (emoji, state) for an account's deposit."""
    if withdrawn:
        return "📭", "Closed"
    if blocks_remaining > 0:
        return "🔒", "Locked"
    return "🔓", "Matured"
