from abc import ABC, abstractmethod
from decimal import Decimal

from pydantic import BaseModel, Field


class ExplorerError(Exception):
    """Explorer unreachable or answered with an unexpected status."""


class ChainOutput(BaseModel):
    address: str | None = None
    value: int  # smallest coin unit (satoshis)


class ChainTransaction(BaseModel):
    txid: str
    confirmed: bool = False
    block_height: int | None = None
    block_time: int | None = None  # unix seconds
    outputs: list[ChainOutput] = Field(default_factory=list)

    def value_to(self, addresses: set[str]) -> int:
        """Total paid to any of the given addresses, in smallest units."""
        return sum(o.value for o in self.outputs if o.address and o.address in addresses)

    def paid_addresses(self, addresses: set[str]) -> list[str]:
        return [o.address for o in self.outputs if o.address and o.address in addresses]


class BlockExplorer(ABC):
    # Number of decimal places between the smallest unit and one coin
    decimals: int = 8

    @abstractmethod
    async def get_transaction(self, txid: str) -> ChainTransaction | None:
        """Look up a transaction; None when the chain does not know it."""
        ...

    @abstractmethod
    async def get_tip_height(self) -> int:
        """Height of the current best block."""
        ...

    @abstractmethod
    async def get_historical_price_usd(self, timestamp: int) -> Decimal:
        """USD price of one coin at the given unix time."""
        ...

    def to_coin(self, value: int) -> Decimal:
        return Decimal(value) / (Decimal(10) ** self.decimals)


def confirmation_depth(tx: ChainTransaction, tip_height: int) -> int:
    """Blocks mined on top of (and including) the transaction's block."""
    if not tx.confirmed or tx.block_height is None:
        return 0
    return max(0, tip_height - tx.block_height + 1)


def get_explorers() -> dict[str, BlockExplorer]:
    """Explorer per verifiable cryptocurrency. Currencies not listed cannot be verified."""
    from app.explorers.mempool import MempoolExplorer
    return {"bitcoin": MempoolExplorer()}
