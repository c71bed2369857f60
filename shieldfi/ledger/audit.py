"""Append-only audit logs of protective actions."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from ..addresses import address_key
from ..chains.evm.abi import decode_result, decode_single, encode_call
from ..chains.evm.gateway import to_wei
from ..chains.evm.signer import EvmSigner
from ..errors import ExecutionError
from ..interfaces.chain import ChainClient
from ..models import ZERO_ADDRESS, ActionType, AuditRecord

logger = logging.getLogger(__name__)

_ACTION_TUPLE = "(address,uint8,uint256,uint256,uint256,bytes32,address,uint256)[]"
LOG_ACTION_GAS = 200_000


def _stats(records: list[AuditRecord]) -> dict[str, Any]:
    if not records:
        return {"action_count": 0, "total_amount_protected": 0.0, "avg_risk_reduction": 0.0}
    reductions = [r.risk_score_before - r.risk_score_after for r in records]
    return {
        "action_count": len(records),
        "total_amount_protected": sum(r.amount_protected for r in records),
        "avg_risk_reduction": round(sum(reductions) / len(reductions), 2),
    }


class InMemoryAuditLog:
    """Process-local audit trail; references are ``local-<n>``."""

    def __init__(self) -> None:
        self._records: list[AuditRecord] = []
        self._lock = asyncio.Lock()

    async def append(self, record: AuditRecord) -> str:
        async with self._lock:
            reference = f"local-{len(self._records) + 1}"
            self._records.append(replace(record, reference=reference))
        logger.info("Audit %s: %s for %s", reference, record.action_type.value, record.user)
        return reference

    async def history(self, address: str) -> list[AuditRecord]:
        key = address_key(address)
        return [r for r in self._records if address_key(r.user) == key]

    async def stats(self, address: str) -> dict[str, Any]:
        return _stats(await self.history(address))


class OnChainAuditLog:
    """Audit trail stored in the action-log contract.

    Scores are written in basis points and amounts in wei. Only the digest
    of the reasoning text goes on-chain.
    """

    def __init__(
        self,
        chain_client: ChainClient,
        contract_address: str,
        signer: EvmSigner | None = None,
    ) -> None:
        self._client = chain_client
        self._contract = contract_address
        self._signer = signer

    async def append(self, record: AuditRecord) -> str:
        if self._signer is None:
            raise ExecutionError("No signer available to write the audit log")
        data = encode_call(
            "logAction(uint8,uint256,uint256,uint256,bytes32,address)",
            [
                record.action_type.code,
                int(round(record.risk_score_before * 100)),
                int(round(record.risk_score_after * 100)),
                to_wei(record.amount_protected),
                bytes.fromhex(record.reasoning_digest.removeprefix("0x")),
                record.token_involved or ZERO_ADDRESS,
            ],
        )
        receipt = await self._signer.send_transaction(self._contract, data, gas=LOG_ACTION_GAS)
        logger.info("Logged %s for %s in %s", record.action_type.value, record.user, receipt.tx_hash)
        return receipt.tx_hash

    async def history(self, address: str) -> list[AuditRecord]:
        data = await self._client.eth_call(
            self._contract, encode_call("getUserActions(address)", [address])
        )
        records = []
        for user, action, before, after, amount, digest, token, ts in decode_single(_ACTION_TUPLE, data):
            records.append(
                AuditRecord(
                    user=user,
                    action_type=ActionType.from_code(int(action)),
                    risk_score_before=before / 100,
                    risk_score_after=after / 100,
                    amount_protected=amount / 10**18,
                    reasoning="",
                    reasoning_digest="0x" + bytes(digest).hex(),
                    token_involved=token,
                    timestamp=datetime.fromtimestamp(int(ts), tz=timezone.utc),
                )
            )
        return records

    async def stats(self, address: str) -> dict[str, Any]:
        data = await self._client.eth_call(
            self._contract, encode_call("getUserStats(address)", [address])
        )
        count, total, avg = decode_result(["uint256", "uint256", "uint256"], data)
        return {
            "action_count": int(count),
            "total_amount_protected": total / 10**18,
            "avg_risk_reduction": avg / 100,
        }
