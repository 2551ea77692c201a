"""Block-height sources consumed by the ledger."""

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from web3 import Web3  # pragma: no cover


class Clock(Protocol):
    """Monotonically non-decreasing block-height counter."""

    @property
    def height(self) -> int: ...


class ManualClock:
    """Locally advanced clock, for simulations, tests and the CLI's offline mode."""

    def __init__(self, height: int = 0) -> None:
        if height < 0:
            raise ValueError("height must be >= 0")
        self._height = int(height)

    @property
    def height(self) -> int:
        return self._height

    def mine(self, blocks: int = 1) -> int:
        """Advance the clock by `blocks` empty blocks and return the new height."""
        if blocks < 0:
            raise ValueError("blocks must be >= 0")
        self._height += int(blocks)
        return self._height


class Web3Clock:
    """Reads the current block number from an execution-layer node."""

    def __init__(self, w3: "Web3") -> None:
        self.w3 = w3
        self._last_seen = 0

    @property
    def height(self) -> int:
        # Never report a height below one already observed.
        self._last_seen = max(self._last_seen, int(self.w3.eth.block_number))
        return self._last_seen


def connect_web3_clock(rpc_url: str, *, timeout_s: int) -> Web3Clock:
    """Build a Web3Clock for `rpc_url`, failing if the node is unreachable."""
    from web3 import Web3  # pylint: disable=import-outside-toplevel

    w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout_s}))
    if not w3.is_connected():
        raise ConnectionError(f"failed to connect to RPC at {rpc_url}")
    return Web3Clock(w3)
