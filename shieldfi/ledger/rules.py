"""Protection rule stores."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timezone
from itertools import count

from ..addresses import address_key
from ..chains.evm.abi import decode_single, encode_call
from ..errors import InvalidInputError
from ..interfaces.chain import ChainClient
from ..models import Rule, RuleType, utc_now

logger = logging.getLogger(__name__)

# (ruleType, threshold, autoExecute, active, description, triggerCount, lastTriggeredAt)
_RULE_TUPLE = "(uint8,uint256,bool,bool,string,uint256,uint256)[]"


class InMemoryRuleStore:
    """Process-local rule store; ids are ``local_<n>``."""

    def __init__(self) -> None:
        self._rules: dict[str, Rule] = {}
        self._ids = count(1)
        self._lock = asyncio.Lock()

    async def create_rule(
        self,
        address: str,
        rule_type: RuleType | str | int,
        threshold_bps: int,
        auto_execute: bool = False,
        description: str = "",
    ) -> Rule:
        try:
            parsed = RuleType.parse(rule_type)
        except ValueError as e:
            raise InvalidInputError(str(e)) from None
        if threshold_bps < 0:
            raise InvalidInputError(f"Threshold must be non-negative, got {threshold_bps}")

        async with self._lock:
            rule = Rule(
                id=f"local_{next(self._ids)}",
                owner=address,
                rule_type=parsed,
                threshold_bps=int(threshold_bps),
                auto_execute=auto_execute,
                description=description,
                created_at=utc_now(),
            )
            self._rules[rule.id] = rule
        logger.info("Created rule %s (%s) for %s", rule.id, parsed.value, address)
        return rule

    async def get_rule(self, rule_id: str) -> Rule | None:
        return self._rules.get(rule_id)

    async def _require(self, rule_id: str) -> Rule:
        rule = self._rules.get(rule_id)
        if rule is None:
            raise InvalidInputError(f"Unknown rule id: {rule_id}")
        return rule

    async def list_rules(self, address: str) -> list[Rule]:
        key = address_key(address)
        return [r for r in self._rules.values() if address_key(r.owner) == key]

    async def list_active_rules(self, address: str) -> list[Rule]:
        return [r for r in await self.list_rules(address) if r.active]

    async def toggle_rule(self, rule_id: str) -> Rule:
        async with self._lock:
            rule = await self._require(rule_id)
            rule = replace(rule, active=not rule.active)
            self._rules[rule_id] = rule
        logger.info("Rule %s is now %s", rule_id, "active" if rule.active else "inactive")
        return rule

    async def delete_rule(self, rule_id: str) -> None:
        async with self._lock:
            await self._require(rule_id)
            del self._rules[rule_id]
        logger.info("Deleted rule %s", rule_id)

    async def mark_triggered(self, rule_id: str) -> None:
        async with self._lock:
            rule = self._rules.get(rule_id)
            if rule is None:
                logger.debug("mark_triggered for unknown rule %s", rule_id)
                return
            self._rules[rule_id] = replace(
                rule,
                trigger_count=rule.trigger_count + 1,
                last_triggered_at=utc_now(),
            )


def _timestamp(value: int) -> datetime | None:
    return datetime.fromtimestamp(value, tz=timezone.utc) if value else None


class OnChainRuleStore:
    """Read-only view of the rules contract.

    Rules are created and changed through the contract itself. Trigger
    bookkeeping is kept locally on top of what the contract reports.
    """

    def __init__(self, chain_client: ChainClient, contract_address: str) -> None:
        self._client = chain_client
        self._contract = contract_address
        self._triggers: dict[str, tuple[int, datetime]] = {}
        self._cache: dict[str, Rule] = {}

    async def _fetch(self, signature: str, address: str) -> list[Rule]:
        data = await self._client.eth_call(
            self._contract, encode_call(signature, [address])
        )
        rules: list[Rule] = []
        for idx, raw in enumerate(decode_single(_RULE_TUPLE, data)):
            rule_type_code, threshold, auto_execute, active, description, triggers, last = raw
            rule_id = f"{address_key(address)}:{idx}"
            local_count, local_last = self._triggers.get(rule_id, (0, None))
            try:
                rule_type = RuleType.parse(int(rule_type_code))
            except ValueError:
                logger.warning("Skipping rule %s with unknown type %s", rule_id, rule_type_code)
                continue
            rule = Rule(
                id=rule_id,
                owner=address,
                rule_type=rule_type,
                threshold_bps=int(threshold),
                auto_execute=bool(auto_execute),
                active=bool(active),
                description=description,
                trigger_count=int(triggers) + local_count,
                last_triggered_at=local_last or _timestamp(int(last)),
            )
            self._cache[rule_id] = rule
            rules.append(rule)
        return rules

    async def list_rules(self, address: str) -> list[Rule]:
        return await self._fetch("getUserRules(address)", address)

    async def list_active_rules(self, address: str) -> list[Rule]:
        # Ids are positions in the full list, so filter locally
        return [r for r in await self.list_rules(address) if r.active]

    async def get_rule(self, rule_id: str) -> Rule | None:
        return self._cache.get(rule_id)

    async def create_rule(
        self,
        address: str,
        rule_type: RuleType | str | int,
        threshold_bps: int,
        auto_execute: bool = False,
        description: str = "",
    ) -> Rule:
        raise InvalidInputError("Rules are managed through the rules contract")

    async def toggle_rule(self, rule_id: str) -> Rule:
        raise InvalidInputError("Rules are managed through the rules contract")

    async def delete_rule(self, rule_id: str) -> None:
        raise InvalidInputError("Rules are managed through the rules contract")

    async def mark_triggered(self, rule_id: str) -> None:
        local_count, _ = self._triggers.get(rule_id, (0, None))
        self._triggers[rule_id] = (local_count + 1, utc_now())
