import pytest

from time_vault.clock import ManualClock
from time_vault.custody import Custody
from time_vault.ledger import VaultLedger

DEPLOYER = "deployer"
WALLET_1 = "wallet_1"
WALLET_2 = "wallet_2"

STARTING_BALANCE = 100_000_000_000


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(height=3)


@pytest.fixture
def custody() -> Custody:
    return Custody({DEPLOYER: STARTING_BALANCE, WALLET_1: STARTING_BALANCE, WALLET_2: STARTING_BALANCE})


@pytest.fixture
def ledger(clock, custody) -> VaultLedger:
    return VaultLedger.deploy(DEPLOYER, clock, custody)
