"""Per-address monitoring scheduler.

Each watched address gets its own asyncio task that scans immediately and
then every ``interval`` seconds. A scan cycle runs
snapshot → score → decide → (execute) → record → publish, and is shielded
from cancellation so that ``stop()`` never cuts an execute/audit pair in half.
The cycle timeout covers the reads and the decision, never the execution.
"""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from ..addresses import address_key, require_address
from ..errors import InvalidInputError
from ..interfaces import RuleStore
from ..models import (
    ActionExecuted,
    ActionType,
    ActiveMonitor,
    CriticalRisk,
    Decision,
    DecisionSource,
    ElevatedRisk,
    ExecutionResult,
    MonitorStarted,
    MonitorStatus,
    MonitorStopped,
    PositionSnapshot,
    RiskLevel,
    RiskScore,
    Rule,
    ScanComplete,
    ScanError,
    ScanEvent,
    ScanRecord,
    utc_now,
)
from .decision_engine import DecisionEngine
from .executor import ProtectionExecutor
from .risk_scorer import calculate_risk_score
from .snapshot_service import SnapshotService

logger = logging.getLogger(__name__)

Listener = Callable[[ScanEvent], Awaitable[None]]


@dataclass
class WatchState:
    """Scheduling state of one RUNNING address."""

    address: str
    interval: float
    rules: tuple[Rule, ...] | None
    started_at: datetime = field(default_factory=utc_now)
    task: asyncio.Task | None = None


class Monitor:
    """Runs independent periodic scans for a set of addresses."""

    def __init__(
        self,
        snapshot_service: SnapshotService,
        engine: DecisionEngine,
        executor: ProtectionExecutor,
        rule_store: RuleStore | None = None,
        history_size: int = 100,
        default_interval: float = 30.0,
        scan_timeout: float | None = 120.0,
    ) -> None:
        self.snapshot_service = snapshot_service
        self.engine = engine
        self.executor = executor
        self.rule_store = rule_store
        self.history_size = history_size
        self.default_interval = default_interval
        self.scan_timeout = scan_timeout

        self._watches: dict[str, WatchState] = {}
        self._history: dict[str, deque[ScanRecord]] = {}
        self._latest: dict[str, ScanRecord] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._listeners: list[Listener] = []
        self._background: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def _publish(self, event: ScanEvent) -> None:
        for listener in list(self._listeners):
            try:
                await listener(event)
            except Exception as e:
                logger.error("Listener failed on %s: %s", type(event).__name__, e)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(
        self,
        address: str,
        interval: float | None = None,
        rules: Sequence[Rule] | None = None,
    ) -> MonitorStatus:
        """Start watching *address*; rejected if it is already RUNNING."""
        address = require_address(address)
        interval = self.default_interval if interval is None else float(interval)
        if interval <= 0:
            raise InvalidInputError(f"Interval must be positive, got {interval}")

        key = address_key(address)
        if key in self._watches:
            return MonitorStatus(
                success=False,
                address=address,
                error="Already monitoring this address",
            )

        # Registered before the first await so a concurrent start sees it
        state = WatchState(
            address=address,
            interval=interval,
            rules=tuple(rules) if rules is not None else None,
        )
        self._watches[key] = state
        self._locks.setdefault(key, asyncio.Lock())
        state.task = asyncio.create_task(
            self._watch_loop(state), name=f"monitor-{address}"
        )

        logger.info("Started monitoring %s (interval %ss)", address, interval)
        await self._publish(MonitorStarted(address=address, interval=interval))
        return MonitorStatus(
            success=True,
            address=address,
            interval=interval,
            started_at=state.started_at,
        )

    async def stop(self, address: str) -> MonitorStatus:
        """Stop watching *address*; collected history is kept."""
        address = require_address(address)
        state = self._watches.pop(address_key(address), None)
        if state is None:
            return MonitorStatus(
                success=False,
                address=address,
                error="Not currently monitoring this address",
            )

        if state.task is not None:
            state.task.cancel()
            await asyncio.wait({state.task})

        logger.info("Stopped monitoring %s", state.address)
        await self._publish(MonitorStopped(address=state.address))
        return MonitorStatus(
            success=True,
            address=state.address,
            interval=state.interval,
            started_at=state.started_at,
            stopped_at=utc_now(),
        )

    async def stop_all(self) -> None:
        for state in list(self._watches.values()):
            await self.stop(state.address)

    async def wait_idle(self) -> None:
        """Wait for in-flight shielded cycles and fire-and-forget tasks."""
        while self._background:
            await asyncio.wait(set(self._background))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_running(self, address: str) -> bool:
        return address_key(address) in self._watches

    def active_monitors(self) -> list[ActiveMonitor]:
        return [
            ActiveMonitor(
                address=s.address,
                interval=s.interval,
                started_at=s.started_at,
                latest_scan=self._latest.get(key),
            )
            for key, s in self._watches.items()
        ]

    def latest_scan(self, address: str) -> ScanRecord | None:
        return self._latest.get(address_key(address))

    def history(self, address: str, limit: int = 20) -> list[ScanRecord]:
        """Most recent *limit* records, oldest first."""
        records = list(self._history.get(address_key(address), ()))
        if limit <= 0:
            return []
        return records[-limit:]

    # ------------------------------------------------------------------
    # Scan loop
    # ------------------------------------------------------------------

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _watch_loop(self, state: WatchState) -> None:
        while True:
            cycle = self._spawn(self.run_cycle(state.address, state.rules))
            await asyncio.shield(cycle)
            await asyncio.sleep(state.interval)

    async def run_cycle(
        self, address: str, rules: Sequence[Rule] | None = None
    ) -> ScanRecord:
        """One scan cycle; failures become a ScanError event, never raise.

        ``scan_timeout`` bounds the read/score/decide phase only. Once a
        protective action starts it runs to completion; the executor bounds
        each of its own calls.
        """
        started = utc_now()
        try:
            snapshot, risk, decision = await asyncio.wait_for(
                self._assess(address, rules), self.scan_timeout
            )
        except asyncio.TimeoutError:
            message = f"Scan timed out after {self.scan_timeout}s"
            logger.error("Scan error for %s: %s", address, message)
            return await self._finish(*self._error_record(address, started, message))
        except Exception as e:
            logger.error("Scan error for %s: %s", address, e)
            return await self._finish(
                *self._error_record(address, started, str(e) or type(e).__name__)
            )

        events: list[ScanEvent] = []
        result = None
        if decision.should_act and decision.action_type is not ActionType.ALERT_ONLY:
            result = await self._execute(address, decision, risk.total)
            events.append(ActionExecuted(address=address, decision=decision, result=result))

        record = ScanRecord(
            timestamp=started,
            address=address,
            risk_score=risk,
            positions=snapshot,
            decision=decision,
            execution_result=result,
        )
        events.append(ScanComplete(record=record))
        if risk.level is RiskLevel.CRITICAL:
            events.append(CriticalRisk(address=address, risk_score=risk, decision=decision))
        elif risk.level is RiskLevel.ELEVATED:
            events.append(ElevatedRisk(address=address, risk_score=risk, decision=decision))

        logger.info(
            "Scan complete for %s: score=%d level=%s",
            address, risk.total, risk.level.value,
        )
        return await self._finish(record, events)

    async def _finish(self, record: ScanRecord, events: list[ScanEvent]) -> ScanRecord:
        await self._store(record)
        for event in events:
            await self._publish(event)
        return record

    @staticmethod
    def _error_record(
        address: str, timestamp: datetime, message: str
    ) -> tuple[ScanRecord, list[ScanEvent]]:
        record = ScanRecord(timestamp=timestamp, address=address, error=message)
        return record, [ScanError(address=address, timestamp=timestamp, error=message)]

    async def _load_rules(self, address: str) -> Sequence[Rule]:
        if self.rule_store is None:
            return ()
        try:
            return await self.rule_store.list_active_rules(address)
        except Exception as e:
            logger.warning("Could not load rules for %s: %s", address, e)
            return ()

    async def _assess(
        self, address: str, rules: Sequence[Rule] | None
    ) -> tuple[PositionSnapshot, RiskScore, Decision]:
        logger.debug("Scanning %s", address)
        snapshot = await self.snapshot_service.fetch(address)
        risk = calculate_risk_score(snapshot)
        if rules is None:
            rules = await self._load_rules(address)
        decision = await self.engine.evaluate(risk, snapshot, rules)

        if decision.source is DecisionSource.RULE and decision.rule_id:
            self._spawn(self._mark_triggered(decision.rule_id))
        return snapshot, risk, decision

    async def _execute(
        self, address: str, decision: Decision, risk_total: int
    ) -> ExecutionResult:
        logger.info("Executing %s for %s", decision.action_type.value, address)
        # Runs as its own task so a cancelled caller never splits a two-leg action
        task = self._spawn(self.executor.execute(address, decision, risk_total))
        try:
            return await asyncio.shield(task)
        except Exception as e:
            logger.error("Execution of %s failed for %s: %s", decision.action_type.value, address, e)
            return ExecutionResult(
                action=decision.action_type,
                attempted=True,
                success=False,
                error=str(e) or type(e).__name__,
            )

    async def _store(self, record: ScanRecord) -> None:
        key = address_key(record.address)
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            history = self._history.get(key)
            if history is None:
                history = self._history[key] = deque(maxlen=self.history_size)
            history.append(record)
            self._latest[key] = record

    async def _mark_triggered(self, rule_id: str) -> None:
        if self.rule_store is None:
            return
        try:
            await self.rule_store.mark_triggered(rule_id)
        except Exception as e:
            logger.warning("mark_triggered(%s) failed: %s", rule_id, e)
