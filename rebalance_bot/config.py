"""
Configuration management for the YES/NO rebalancing arbitrage bot.
All secrets via environment variables. All tunable parameters externalized.
"""

import os
from dataclasses import dataclass, field
from typing import Optional


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class TradingConfig:
    """Detection and sizing parameters."""
    min_edge: float = 0.02  # Minimum edge to track an opportunity (2%)
    bankroll: float = 10000.0  # Capital base for Kelly sizing
    kelly_fraction: float = 0.25  # Quarter Kelly
    kelly_edge_scale: float = 10.0  # Heuristic: kelly = min(edge * scale, 1)
    max_position_size: float = 100.0  # Max USDC per leg
    max_concurrent_executions: int = 1
    order_expiration_seconds: int = 300


@dataclass
class ValidationConfig:
    """Pre-trade revalidation and ranking parameters."""
    max_age_ms: int = 5000
    price_tolerance: float = 0.01  # Max per-leg drift since detection
    min_profit: float = 0.50  # Absolute USDC floor
    edge_score_scale: float = 1000.0
    edge_score_cap: float = 50.0
    profit_score_cap: float = 30.0
    freshness_score_max: float = 20.0
    freshness_window_ms: int = 5000


@dataclass
class ConnectionConfig:
    """API connection configuration."""
    clob_rest_url: str = "https://clob.polymarket.com"
    clob_ws_url: str = "wss://ws-subscriptions-clob.polymarket.com/ws/market"
    chain_id: int = 137  # Polygon mainnet
    exchange_address: str = "0x4bFb41d5B3570DeFd03C39a9A4D8dE6Bd8B8982E"  # CTF Exchange
    ws_reconnect_base_delay_seconds: float = 1.0
    ws_max_reconnect_attempts: int = 10
    ws_ping_interval_seconds: int = 30
    rest_timeout_seconds: int = 10
    max_retries: int = 3
    retry_backoff_base: float = 1.5
    market_fetch_limit: int = 200


@dataclass
class MonitorConfig:
    """Periodic tasks and health surface."""
    market_refresh_interval_seconds: int = 60
    stats_interval_seconds: int = 60
    edge_stats_interval_seconds: int = 30
    health_port: int = 8080  # 0 disables the HTTP surface


@dataclass
class Config:
    """Main configuration container."""
    # Secrets from environment
    private_key: str = field(default_factory=lambda: os.environ.get("POLYMARKET_PRIVATE_KEY", ""))
    funder_address: str = field(default_factory=lambda: os.environ.get("POLYMARKET_FUNDER_ADDRESS", ""))
    signature_type: int = field(default_factory=lambda: int(os.environ.get("POLYMARKET_SIGNATURE_TYPE", "0")))

    # API credentials (derived from private key when absent)
    api_key: Optional[str] = field(default_factory=lambda: os.environ.get("POLYMARKET_API_KEY"))
    api_secret: Optional[str] = field(default_factory=lambda: os.environ.get("POLYMARKET_API_SECRET"))
    api_passphrase: Optional[str] = field(default_factory=lambda: os.environ.get("POLYMARKET_API_PASSPHRASE"))

    dry_run: bool = field(default_factory=lambda: _env_bool("DRY_RUN"))

    # Sub-configs
    trading: TradingConfig = field(default_factory=TradingConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)

    # Logging
    log_level: str = field(default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO"))
    log_file: str = field(default_factory=lambda: os.environ.get("LOG_FILE", ""))

    def validate(self) -> list[str]:
        """Validate configuration. Returns list of errors."""
        errors = []

        if not self.private_key and not self.dry_run:
            errors.append("POLYMARKET_PRIVATE_KEY is required unless DRY_RUN is set")
        if self.trading.min_edge <= 0:
            errors.append("min_edge must be positive")
        if self.trading.bankroll <= 0:
            errors.append("bankroll must be positive")
        if not 0 < self.trading.kelly_fraction <= 1:
            errors.append("kelly_fraction must be in (0, 1]")
        if self.trading.kelly_edge_scale <= 0:
            errors.append("kelly_edge_scale must be positive")
        if self.trading.max_position_size <= 0:
            errors.append("max_position_size must be positive")
        if self.trading.max_concurrent_executions < 1:
            errors.append("max_concurrent_executions must be at least 1")
        if self.validation.max_age_ms <= 0:
            errors.append("max_age_ms must be positive")
        if self.validation.price_tolerance < 0:
            errors.append("price_tolerance cannot be negative")
        if self.connection.ws_max_reconnect_attempts < 1:
            errors.append("ws_max_reconnect_attempts must be at least 1")

        return errors


def load_config_from_env() -> Config:
    """Load configuration from environment variables."""
    config = Config()

    # Override trading params from env
    min_edge = os.environ.get("MIN_EDGE") or os.environ.get("MIN_PROFIT_THRESHOLD")
    if min_edge:
        config.trading.min_edge = float(min_edge)
    if os.environ.get("BANKROLL"):
        config.trading.bankroll = float(os.environ["BANKROLL"])
    if os.environ.get("KELLY_FRACTION"):
        config.trading.kelly_fraction = float(os.environ["KELLY_FRACTION"])
    if os.environ.get("MAX_POSITION_SIZE"):
        config.trading.max_position_size = float(os.environ["MAX_POSITION_SIZE"])
    if os.environ.get("MAX_CONCURRENT_EXECUTIONS"):
        config.trading.max_concurrent_executions = int(os.environ["MAX_CONCURRENT_EXECUTIONS"])

    # Override validation params from env
    if os.environ.get("MAX_AGE_MS"):
        config.validation.max_age_ms = int(os.environ["MAX_AGE_MS"])
    if os.environ.get("MIN_PROFIT"):
        config.validation.min_profit = float(os.environ["MIN_PROFIT"])

    # Override monitor params from env
    if os.environ.get("MARKET_REFRESH_INTERVAL"):
        config.monitor.market_refresh_interval_seconds = int(os.environ["MARKET_REFRESH_INTERVAL"])
    if os.environ.get("HEALTH_PORT"):
        config.monitor.health_port = int(os.environ["HEALTH_PORT"])

    return config
