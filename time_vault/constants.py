"""Constants and configuration for the time-locked vault."""

# Lock tiers: name -> (lock period in blocks, yield rate in basis points).
# Rates are fixed on each deposit record, so changing this table never
# affects deposits that are already locked.
LOCK_TIERS: dict[str, tuple[int, int]] = {
    "short": (4320, 500),  # ~30 days
    "medium": (8640, 1000),  # ~60 days
    "long": (17280, 1500),  # ~120 days
}

TOTAL_BASIS_POINTS = 100_00

# Amounts are integer micro-units (1 unit = 1e6 micro-units).
MICRO_UNITS_PER_UNIT = 10**6

# Per-deposit cap, also the cap on the vault-wide total locked value.
MAX_DEPOSIT = 1_000_000 * MICRO_UNITS_PER_UNIT

# Custody account holding deposited principal and yield funding.
VAULT_ACCOUNT = "time-vault"

DEFAULT_OWNER = "deployer"

# Event names emitted by state-changing operations.
EVENT_VAULT_INITIALIZED = "vault-initialized"
EVENT_DEPOSIT = "deposit"
EVENT_WITHDRAW = "withdraw"
EVENT_PAUSE_TOGGLED = "pause-toggled"
EVENT_VAULT_FUNDED = "vault-funded"

# Web3 clock defaults
DEFAULT_TIMEOUT = 30

# State store configuration
STATE_DIR_NAME = "time_vault"
STATE_FILE_NAME = "state.json"
STATE_VERSION = 1  # Increment when the on-disk layout changes
