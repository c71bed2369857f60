"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .models import RuleType

logger = logging.getLogger(__name__)

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MonitorConfig:
    scan_interval_seconds: float = 30.0
    history_size: int = 100
    call_timeout_seconds: float = 20.0
    scan_timeout_seconds: float = 120.0
    risk_cache_seconds: float = 60.0


@dataclass(frozen=True)
class RuleConfig:
    type: str = ""
    threshold_bps: int = 0
    auto_execute: bool = False
    description: str = ""


@dataclass(frozen=True)
class WalletConfig:
    label: str = ""
    address: str = ""
    interval_seconds: float | None = None
    rules: tuple[RuleConfig, ...] = ()


@dataclass(frozen=True)
class ChainConfig:
    name: str = "bsc"
    chain_id: int = 56
    rpc_endpoints: tuple[str, ...] = ()
    rpc_timeout: int = 30
    private_key: str = ""
    receipt_timeout: int = 120


@dataclass(frozen=True)
class LendingConfig:
    comptroller: str = ""
    oracle: str = ""
    native_market: str = ""
    markets: dict[str, str] = field(default_factory=dict)
    blocks_per_year: int = 10_512_000


@dataclass(frozen=True)
class AmmConfig:
    position_manager: str = ""
    factory: str = ""
    token_symbols: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class MarketDataConfig:
    dexscreener_url: str = "https://api.dexscreener.com/latest/dex/tokens"
    dex_chain_id: str = "bsc"
    bscscan_url: str = "https://api.bscscan.com/api"
    bscscan_api_key: str = ""
    wrapped_native: str = ""
    native_symbol: str = "BNB"
    known_tokens: dict[str, str] = field(default_factory=dict)
    stablecoins: tuple[str, ...] = ()


@dataclass(frozen=True)
class LedgerConfig:
    audit_log_address: str = ""
    rules_address: str = ""


@dataclass(frozen=True)
class AdvisorConfig:
    enabled: bool = False
    api_key: str = ""
    model: str = "anthropic/claude-sonnet-4"
    base_url: str = "https://openrouter.ai/api/v1"
    min_score: int = 25
    max_tokens: int = 500
    timeout: int = 30


@dataclass(frozen=True)
class TelegramConfig:
    enabled: bool = False
    alert_bot_token: str = ""
    log_bot_token: str = ""
    chat_id: str = ""


@dataclass(frozen=True)
class EmailConfig:
    enabled: bool = False
    alert_email: str = ""
    smtp_server: str = "smtp.gmail.com"
    smtp_port: int = 587
    sender_email: str = ""
    sender_password: str = ""


@dataclass(frozen=True)
class NotificationsConfig:
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    email: EmailConfig = field(default_factory=EmailConfig)


@dataclass(frozen=True)
class AppConfig:
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    wallets: tuple[WalletConfig, ...] = ()
    chain: ChainConfig = field(default_factory=ChainConfig)
    lending: LendingConfig = field(default_factory=LendingConfig)
    amm: AmmConfig = field(default_factory=AmmConfig)
    market_data: MarketDataConfig = field(default_factory=MarketDataConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    advisor: AdvisorConfig = field(default_factory=AdvisorConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


def _as_bool(value: Any) -> bool:
    # Interpolated env vars arrive as strings
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_monitor(raw: dict[str, Any]) -> MonitorConfig:
    return MonitorConfig(
        scan_interval_seconds=float(raw.get("scan_interval_seconds", 30.0)),
        history_size=int(raw.get("history_size", 100)),
        call_timeout_seconds=float(raw.get("call_timeout_seconds", 20.0)),
        scan_timeout_seconds=float(raw.get("scan_timeout_seconds", 120.0)),
        risk_cache_seconds=float(raw.get("risk_cache_seconds", 60.0)),
    )


def _build_rules(raw: list[dict[str, Any]]) -> tuple[RuleConfig, ...]:
    return tuple(
        RuleConfig(
            type=str(r.get("type", "")),
            threshold_bps=int(r.get("threshold_bps", 0)),
            auto_execute=_as_bool(r.get("auto_execute", False)),
            description=r.get("description", ""),
        )
        for r in raw
    )


def _build_wallets(raw: list[dict[str, Any]]) -> tuple[WalletConfig, ...]:
    wallets: list[WalletConfig] = []
    for w in raw:
        interval = w.get("interval_seconds")
        wallets.append(
            WalletConfig(
                label=w.get("label", ""),
                address=w.get("address", ""),
                interval_seconds=float(interval) if interval is not None else None,
                rules=_build_rules(w.get("rules", [])),
            )
        )
    return tuple(wallets)


def _build_chain(raw: dict[str, Any]) -> ChainConfig:
    return ChainConfig(
        name=raw.get("name", "bsc"),
        chain_id=int(raw.get("chain_id", 56)),
        rpc_endpoints=tuple(raw.get("rpc_endpoints", [])),
        rpc_timeout=int(raw.get("rpc_timeout", 30)),
        private_key=raw.get("private_key", ""),
        receipt_timeout=int(raw.get("receipt_timeout", 120)),
    )


def _build_lending(raw: dict[str, Any]) -> LendingConfig:
    return LendingConfig(
        comptroller=raw.get("comptroller", ""),
        oracle=raw.get("oracle", ""),
        native_market=raw.get("native_market", ""),
        markets=dict(raw.get("markets", {})),
        blocks_per_year=int(raw.get("blocks_per_year", 10_512_000)),
    )


def _build_amm(raw: dict[str, Any]) -> AmmConfig:
    return AmmConfig(
        position_manager=raw.get("position_manager", ""),
        factory=raw.get("factory", ""),
        token_symbols=dict(raw.get("token_symbols", {})),
    )


def _build_market_data(raw: dict[str, Any]) -> MarketDataConfig:
    return MarketDataConfig(
        dexscreener_url=raw.get("dexscreener_url", MarketDataConfig.dexscreener_url),
        dex_chain_id=raw.get("dex_chain_id", "bsc"),
        bscscan_url=raw.get("bscscan_url", MarketDataConfig.bscscan_url),
        bscscan_api_key=raw.get("bscscan_api_key", ""),
        wrapped_native=raw.get("wrapped_native", ""),
        native_symbol=raw.get("native_symbol", "BNB"),
        known_tokens=dict(raw.get("known_tokens", {})),
        stablecoins=tuple(raw.get("stablecoins", [])),
    )


def _build_ledger(raw: dict[str, Any]) -> LedgerConfig:
    return LedgerConfig(
        audit_log_address=raw.get("audit_log_address", ""),
        rules_address=raw.get("rules_address", ""),
    )


def _build_advisor(raw: dict[str, Any]) -> AdvisorConfig:
    return AdvisorConfig(
        enabled=_as_bool(raw.get("enabled", False)),
        api_key=raw.get("api_key", ""),
        model=raw.get("model", AdvisorConfig.model),
        base_url=raw.get("base_url", AdvisorConfig.base_url),
        min_score=int(raw.get("min_score", 25)),
        max_tokens=int(raw.get("max_tokens", 500)),
        timeout=int(raw.get("timeout", 30)),
    )


def _build_notifications(raw: dict[str, Any]) -> NotificationsConfig:
    tg = raw.get("telegram", {})
    em = raw.get("email", {})
    return NotificationsConfig(
        telegram=TelegramConfig(
            enabled=_as_bool(tg.get("enabled", False)),
            alert_bot_token=tg.get("alert_bot_token", ""),
            log_bot_token=tg.get("log_bot_token", ""),
            chat_id=str(tg.get("chat_id", "")),
        ),
        email=EmailConfig(
            enabled=_as_bool(em.get("enabled", False)),
            alert_email=em.get("alert_email", ""),
            smtp_server=em.get("smtp_server", "smtp.gmail.com"),
            smtp_port=int(em.get("smtp_port", 587)),
            sender_email=em.get("sender_email", ""),
            sender_password=em.get("sender_password", ""),
        ),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (two levels up from this file).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        monitor=_build_monitor(raw.get("monitor", {})),
        wallets=_build_wallets(raw.get("wallets", [])),
        chain=_build_chain(raw.get("chain", {})),
        lending=_build_lending(raw.get("lending", {})),
        amm=_build_amm(raw.get("amm", {})),
        market_data=_build_market_data(raw.get("market_data", {})),
        ledger=_build_ledger(raw.get("ledger", {})),
        advisor=_build_advisor(raw.get("advisor", {})),
        notifications=_build_notifications(raw.get("notifications", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _check_address(value: str, what: str) -> None:
    if value and not _ADDRESS_RE.match(value):
        raise ValueError(f"{what} is not a valid address: '{value}'")


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.chain.rpc_endpoints:
        raise ValueError("At least one RPC endpoint must be configured")

    if cfg.monitor.history_size < 1:
        raise ValueError("monitor.history_size must be positive")

    for wallet in cfg.wallets:
        if not wallet.address:
            raise ValueError(f"Wallet '{wallet.label}' has no address")
        _check_address(wallet.address, f"Wallet '{wallet.label}'")
        for rule in wallet.rules:
            try:
                RuleType.parse(rule.type)
            except ValueError:
                raise ValueError(
                    f"Wallet '{wallet.label}' has a rule with unknown type '{rule.type}'"
                ) from None
            if rule.threshold_bps < 0:
                raise ValueError(
                    f"Wallet '{wallet.label}' has a rule with negative threshold"
                )

    _check_address(cfg.lending.comptroller, "lending.comptroller")
    _check_address(cfg.lending.oracle, "lending.oracle")
    _check_address(cfg.lending.native_market, "lending.native_market")
    _check_address(cfg.amm.position_manager, "amm.position_manager")
    _check_address(cfg.amm.factory, "amm.factory")
    _check_address(cfg.ledger.audit_log_address, "ledger.audit_log_address")
    _check_address(cfg.ledger.rules_address, "ledger.rules_address")
