"""Snapshot service — assembles a PositionSnapshot from the three readers."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..interfaces import AmmReader, LendingReader, WalletReader
from ..models import LendingState, PositionSnapshot, WalletState

logger = logging.getLogger(__name__)


class SnapshotService:
    """Read lending, AMM and wallet state concurrently, best-effort.

    A reader that raises or times out contributes its empty value plus an
    entry in ``snapshot.errors``; the other readers are unaffected.
    """

    def __init__(
        self,
        lending: LendingReader | None,
        amm: AmmReader | None,
        wallet: WalletReader | None,
        call_timeout: float | None = 20.0,
    ) -> None:
        self.lending = lending
        self.amm = amm
        self.wallet = wallet
        self.call_timeout = call_timeout

    async def _read(self, name: str, coro) -> tuple[Any, str | None]:
        try:
            return await asyncio.wait_for(coro, self.call_timeout), None
        except asyncio.TimeoutError:
            logger.warning("%s read timed out after %ss", name, self.call_timeout)
            return None, f"timed out after {self.call_timeout}s"
        except Exception as e:
            logger.error("%s read failed: %s", name, e)
            return None, str(e) or type(e).__name__

    async def _none(self) -> None:
        return None

    async def fetch(self, address: str) -> PositionSnapshot:
        (lending, lending_err), (amm, amm_err), (wallet, wallet_err) = await asyncio.gather(
            self._read(
                "lending",
                self.lending.get_lending_state(address) if self.lending else self._none(),
            ),
            self._read(
                "amm",
                self.amm.get_amm_positions(address) if self.amm else self._none(),
            ),
            self._read(
                "wallet",
                self.wallet.get_wallet_state(address) if self.wallet else self._none(),
            ),
        )

        errors: dict[str, str] = {}
        if lending_err:
            errors["lending"] = lending_err
        if amm_err:
            errors["amm"] = amm_err
        if wallet_err:
            errors["wallet"] = wallet_err

        # Readers may also report a soft failure on the value itself
        if lending is not None and lending.error and "lending" not in errors:
            errors["lending"] = lending.error
        if wallet is not None and wallet.error and "wallet" not in errors:
            errors["wallet"] = wallet.error

        snapshot = PositionSnapshot(
            address=address,
            lending=lending if lending is not None else LendingState.empty(lending_err),
            amm_positions=tuple(amm or ()),
            wallet=wallet if wallet is not None else WalletState.empty(wallet_err),
            errors=errors,
        )
        if snapshot.is_partial:
            logger.warning(
                "Partial snapshot for %s: %s", address, ", ".join(sorted(errors))
            )
        return snapshot
