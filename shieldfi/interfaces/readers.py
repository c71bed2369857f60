"""Position reader protocols — one per snapshot section."""
from typing import Protocol

from ..models import AmmPosition, LendingState, WalletState


class LendingReader(Protocol):
    """Reads the lending (collateral / borrow) position of an account."""

    async def get_lending_state(self, address: str) -> LendingState: ...


class AmmReader(Protocol):
    """Reads concentrated-liquidity positions held by an account."""

    async def get_amm_positions(self, address: str) -> list[AmmPosition]: ...


class WalletReader(Protocol):
    """Reads spot token holdings of an account."""

    async def get_wallet_state(self, address: str) -> WalletState: ...
