"""Data models — all frozen (immutable)."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union

NO_DEBT_HEALTH_FACTOR = 999.0
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Position snapshot
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MarketEntry:
    """Supply/borrow state of one lending market."""

    market: str
    symbol: str
    supply_balance: float = 0.0
    borrow_balance: float = 0.0
    supply_usd: float = 0.0
    borrow_usd: float = 0.0
    price_usd: float = 0.0
    supply_apy: float = 0.0
    borrow_apy: float = 0.0


@dataclass(frozen=True)
class LendingState:
    """Aggregated lending position of one account."""

    health_factor: float = NO_DEBT_HEALTH_FACTOR
    total_supplied_usd: float = 0.0
    total_borrowed_usd: float = 0.0
    markets: tuple[MarketEntry, ...] = ()
    liquidation_risk: str = "NONE"
    net_apy: float = 0.0
    liquidity_usd: float = 0.0
    shortfall_usd: float = 0.0
    error: str | None = None

    @classmethod
    def empty(cls, error: str | None = None) -> LendingState:
        return cls(liquidation_risk="UNKNOWN" if error else "NONE", error=error)

    @property
    def has_debt(self) -> bool:
        return self.health_factor < NO_DEBT_HEALTH_FACTOR

    def largest_borrow(self) -> MarketEntry | None:
        """Market with the largest outstanding borrow balance, if any."""
        borrowed = [m for m in self.markets if m.borrow_balance > 0]
        if not borrowed:
            return None
        return max(borrowed, key=lambda m: m.borrow_balance)


@dataclass(frozen=True)
class AmmPosition:
    """A concentrated-liquidity position NFT."""

    position_id: str
    token0: str
    token1: str
    token0_symbol: str
    token1_symbol: str
    fee: int
    tick_lower: int
    tick_upper: int
    current_tick: int
    in_range: bool
    liquidity: int
    token0_amount: float = 0.0
    token1_amount: float = 0.0
    fees_earned0: float = 0.0
    fees_earned1: float = 0.0
    impermanent_loss: float = 0.0
    pool_address: str = ""

    @property
    def fee_tier(self) -> str:
        return f"{self.fee / 10000:g}%"

    @property
    def pair(self) -> str:
        return f"{self.token0_symbol}/{self.token1_symbol}"


@dataclass(frozen=True)
class Holding:
    """Single wallet token balance with market metadata."""

    symbol: str
    address: str
    balance: float
    price_usd: float = 0.0
    usd_value: float = 0.0
    price_change_24h: float = 0.0
    liquidity_usd: float = 0.0
    percentage: float = 0.0
    is_native: bool = False


@dataclass(frozen=True)
class WalletState:
    """Spot holdings, sorted by USD value (largest first)."""

    holdings: tuple[Holding, ...] = ()
    total_value_usd: float = 0.0
    max_concentration: float = 0.0
    max_concentration_token: str = "N/A"
    error: str | None = None

    @classmethod
    def empty(cls, error: str | None = None) -> WalletState:
        return cls(error=error)

    @property
    def top_holding(self) -> Holding | None:
        return self.holdings[0] if self.holdings else None


@dataclass(frozen=True)
class PositionSnapshot:
    """Everything known about one address for one scan cycle."""

    address: str
    lending: LendingState = field(default_factory=LendingState)
    amm_positions: tuple[AmmPosition, ...] = ()
    wallet: WalletState = field(default_factory=WalletState)
    taken_at: datetime = field(default_factory=utc_now)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def is_partial(self) -> bool:
        return bool(self.errors)


# ---------------------------------------------------------------------------
# Risk score
# ---------------------------------------------------------------------------


class RiskLevel(str, Enum):
    SAFE = "SAFE"
    MODERATE = "MODERATE"
    ELEVATED = "ELEVATED"
    CRITICAL = "CRITICAL"

    @classmethod
    def for_score(cls, total: int) -> RiskLevel:
        if total <= 15:
            return cls.SAFE
        if total <= 35:
            return cls.MODERATE
        if total <= 60:
            return cls.ELEVATED
        return cls.CRITICAL


@dataclass(frozen=True)
class CategoryScore:
    score: int
    max_score: int
    detail: str

    def __post_init__(self) -> None:
        if not 0 <= self.score <= self.max_score:
            raise ValueError(
                f"Category score {self.score} outside [0, {self.max_score}]"
            )


@dataclass(frozen=True)
class RiskBreakdown:
    liquidation_proximity: CategoryScore
    impermanent_loss: CategoryScore
    concentration_risk: CategoryScore
    volatility_exposure: CategoryScore
    liquidity_risk: CategoryScore

    def categories(self) -> dict[str, CategoryScore]:
        return {
            "liquidation_proximity": self.liquidation_proximity,
            "impermanent_loss": self.impermanent_loss,
            "concentration_risk": self.concentration_risk,
            "volatility_exposure": self.volatility_exposure,
            "liquidity_risk": self.liquidity_risk,
        }

    @property
    def total(self) -> int:
        return sum(c.score for c in self.categories().values())


@dataclass(frozen=True)
class RiskScore:
    total: int
    level: RiskLevel
    breakdown: RiskBreakdown
    recommendations: tuple[str, ...] = ()
    max_score: int = 100


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


class RuleType(str, Enum):
    HEALTH_FACTOR = "HEALTH_FACTOR"
    IL_THRESHOLD = "IL_THRESHOLD"
    PORTFOLIO_DROP = "PORTFOLIO_DROP"
    CONCENTRATION_LIMIT = "CONCENTRATION_LIMIT"
    CUSTOM = "CUSTOM"

    @classmethod
    def parse(cls, value: Any) -> RuleType:
        """Accept enum members, names, legacy names or contract codes 0-4."""
        if isinstance(value, cls):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            members = list(cls)
            if 0 <= value < len(members):
                return members[value]
            raise ValueError(f"Unknown rule type code: {value}")
        name = str(value).strip().upper()
        if name.isdigit():
            return cls.parse(int(name))
        name = _RULE_ALIASES.get(name, name)
        try:
            return cls(name)
        except ValueError:
            raise ValueError(f"Unknown rule type: {value}") from None


_RULE_ALIASES = {"VENUS_HEALTH_FACTOR": "HEALTH_FACTOR"}


@dataclass(frozen=True)
class Rule:
    """User-declared protection rule; thresholds are in basis points."""

    id: str
    owner: str
    rule_type: RuleType
    threshold_bps: int
    auto_execute: bool = False
    active: bool = True
    description: str = ""
    trigger_count: int = 0
    last_triggered_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def threshold(self) -> float:
        return self.threshold_bps / 100


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


class ActionType(str, Enum):
    REPAY = "REPAY"
    WITHDRAW_LP = "WITHDRAW_LP"
    EMERGENCY_EXIT = "EMERGENCY_EXIT"
    REBALANCE = "REBALANCE"
    ALERT_ONLY = "ALERT_ONLY"

    @property
    def code(self) -> int:
        """Numeric action code used by the audit log contract."""
        return list(ActionType).index(self)

    @classmethod
    def from_code(cls, code: int) -> ActionType:
        return list(cls)[code]

    @classmethod
    def parse(cls, value: Any) -> ActionType:
        name = str(value).strip().upper()
        name = _ACTION_ALIASES.get(name, name)
        return cls(name)


_ACTION_ALIASES = {"VENUS_REPAY": "REPAY", "LP_WITHDRAW": "WITHDRAW_LP"}


class Urgency(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class DecisionSource(str, Enum):
    AI = "AI"
    RULE = "RULE"
    DEFAULT = "DEFAULT"


@dataclass(frozen=True)
class RepayParams:
    market: str
    symbol: str
    amount: float

    action_type = ActionType.REPAY


@dataclass(frozen=True)
class WithdrawLpParams:
    position_id: str
    liquidity: int
    pair: str = ""

    action_type = ActionType.WITHDRAW_LP


@dataclass(frozen=True)
class EmergencyExitParams:
    token: str = ""

    action_type = ActionType.EMERGENCY_EXIT


@dataclass(frozen=True)
class RebalanceParams:
    token: str = ""
    symbol: str = ""
    concentration: float = 0.0

    action_type = ActionType.REBALANCE


@dataclass(frozen=True)
class AlertParams:
    action_type = ActionType.ALERT_ONLY


ActionParams = Union[
    RepayParams, WithdrawLpParams, EmergencyExitParams, RebalanceParams, AlertParams
]


@dataclass(frozen=True)
class Decision:
    """The single recommended action for one scan cycle."""

    action_type: ActionType
    should_act: bool
    urgency: Urgency
    reasoning: str
    params: ActionParams
    source: DecisionSource
    rule_id: str | None = None

    def __post_init__(self) -> None:
        if self.params.action_type is not self.action_type:
            raise ValueError(
                f"{type(self.params).__name__} does not belong to {self.action_type.value}"
            )

    @property
    def amount(self) -> float:
        return getattr(self.params, "amount", 0.0)

    @property
    def token(self) -> str:
        return getattr(self.params, "market", "") or getattr(self.params, "token", "")


@dataclass(frozen=True)
class AdvisoryUnavailable:
    """Outcome of the AI stage when no usable recommendation was produced."""

    reason: str


# ---------------------------------------------------------------------------
# Execution and audit
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TxReceipt:
    tx_hash: str
    gas_used: int = 0
    status: int = 1


@dataclass(frozen=True)
class ExecutionResult:
    action: ActionType
    attempted: bool
    success: bool
    tx_reference: str | None = None
    collect_tx_reference: str | None = None
    error: str | None = None
    gas_used: int | None = None
    requires_manual_review: bool = False
    partial_failure: bool = False
    audit_reference: str | None = None
    risk_score_after: float | None = None


@dataclass(frozen=True)
class AuditRecord:
    """Immutable entry appended to the audit log after a protective action."""

    user: str
    action_type: ActionType
    risk_score_before: float
    risk_score_after: float
    amount_protected: float
    reasoning: str
    reasoning_digest: str
    token_involved: str = ZERO_ADDRESS
    timestamp: datetime = field(default_factory=utc_now)
    reference: str | None = None


# ---------------------------------------------------------------------------
# Scheduler records and events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScanRecord:
    timestamp: datetime
    address: str
    risk_score: RiskScore | None = None
    positions: PositionSnapshot | None = None
    decision: Decision | None = None
    execution_result: ExecutionResult | None = None
    error: str | None = None


@dataclass(frozen=True)
class MonitorStatus:
    success: bool
    address: str
    interval: float | None = None
    started_at: datetime | None = None
    stopped_at: datetime | None = None
    error: str | None = None


@dataclass(frozen=True)
class MonitorStarted:
    address: str
    interval: float


@dataclass(frozen=True)
class MonitorStopped:
    address: str


@dataclass(frozen=True)
class ScanComplete:
    record: ScanRecord


@dataclass(frozen=True)
class CriticalRisk:
    address: str
    risk_score: RiskScore
    decision: Decision


@dataclass(frozen=True)
class ElevatedRisk:
    address: str
    risk_score: RiskScore
    decision: Decision


@dataclass(frozen=True)
class ActionExecuted:
    address: str
    decision: Decision
    result: ExecutionResult


@dataclass(frozen=True)
class ScanError:
    address: str
    timestamp: datetime
    error: str


ScanEvent = Union[
    MonitorStarted,
    MonitorStopped,
    ScanComplete,
    CriticalRisk,
    ElevatedRisk,
    ActionExecuted,
    ScanError,
]


@dataclass(frozen=True)
class ActiveMonitor:
    address: str
    interval: float
    started_at: datetime
    latest_scan: ScanRecord | None = None


# ---------------------------------------------------------------------------
# Operator queries
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScanReport:
    """On-demand scan: snapshot, score and portfolio totals."""

    address: str
    snapshot: PositionSnapshot
    risk_score: RiskScore
    duration_ms: int = 0
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def lending_net_usd(self) -> float:
        lending = self.snapshot.lending
        return round(lending.total_supplied_usd - lending.total_borrowed_usd, 2)

    @property
    def wallet_usd(self) -> float:
        return self.snapshot.wallet.total_value_usd

    @property
    def total_value_usd(self) -> float:
        return round(self.lending_net_usd + self.wallet_usd, 2)

    @property
    def errors(self) -> dict[str, str]:
        return self.snapshot.errors


@dataclass(frozen=True)
class RiskQuote:
    risk_score: RiskScore
    cached: bool
    cache_age_seconds: float | None = None


@dataclass(frozen=True)
class Evaluation:
    """A decision computed on demand, never executed."""

    scan: ScanReport
    decision: Decision
    rules: tuple[Rule, ...] = ()
