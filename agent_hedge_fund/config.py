"""
Configuration for the payment gate and the yield agent.

Everything comes from the environment (or a .env file). The fee schedule is
not configured here: it is a fixed table in payments/fees.py.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from agent_hedge_fund.errors import ConfigurationError

load_dotenv()


def _env(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def _env_int(name: str, default: str) -> int:
    raw = _env(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: str) -> float:
    raw = _env(name, default)
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None


@dataclass
class WalletConfig:
    private_key: str = field(default_factory=lambda: _env("PRIVATE_KEY"))
    wallet_address: str = field(default_factory=lambda: _env("WALLET_ADDRESS"))

    @property
    def address(self) -> str:
        """The agent's address. Derived from the key unless set explicitly."""
        if self.wallet_address:
            return self.wallet_address
        if not self.private_key:
            return ""
        from eth_account import Account
        return Account.from_key(self.private_key).address


@dataclass
class LedgerConfig:
    rpc_url: str = field(default_factory=lambda: _env("BASE_SEPOLIA_RPC", "https://sepolia.base.org"))
    chain_id: int = field(default_factory=lambda: _env_int("CHAIN_ID", "84532"))
    registry_address: str = field(default_factory=lambda: _env("REGISTRY_ADDRESS"))
    request_timeout: float = field(default_factory=lambda: _env_float("LEDGER_REQUEST_TIMEOUT", "15"))


@dataclass
class AgentConfig:
    model_id: int = field(default_factory=lambda: _env_int("MODEL_ID", "1"))
    interval_seconds: int = field(default_factory=lambda: _env_int("AGENT_INTERVAL_SECONDS", "60"))
    confirmation_timeout: float = field(
        default_factory=lambda: _env_float("CONFIRMATION_TIMEOUT_SECONDS", "180")
    )
    strategy: str = field(default_factory=lambda: _env("YIELD_STRATEGY", "fixed"))
    yield_amount_wei: int = field(
        default_factory=lambda: _env_int("YIELD_AMOUNT_WEI", "100000000000000")  # 0.0001 ETH
    )
    yield_basis_points: int = field(default_factory=lambda: _env_int("YIELD_BASIS_POINTS", "100"))


@dataclass
class GatewayConfig:
    fee_collector: str = field(default_factory=lambda: _env("PAYMENT_WALLET_ADDRESS"))
    min_proof_confirmations: int = field(
        default_factory=lambda: _env_int("MIN_PROOF_CONFIRMATIONS", "1")
    )
    replay_ttl_seconds: float = field(
        default_factory=lambda: _env_float("REPLAY_TTL_SECONDS", "86400")
    )
    replay_max_entries: int = field(
        default_factory=lambda: _env_int("REPLAY_MAX_ENTRIES", "100000")
    )
    host: str = field(default_factory=lambda: _env("API_HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: _env_int("API_PORT", "8000"))


@dataclass
class AppConfig:
    wallet: WalletConfig = field(default_factory=WalletConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    log_level: str = field(default_factory=lambda: _env("LOG_LEVEL", "INFO"))

    def missing_for_agent(self) -> list[str]:
        """Names of the settings the yield agent cannot run without."""
        missing = []
        if not self.wallet.private_key:
            missing.append("PRIVATE_KEY")
        if not self.ledger.registry_address:
            missing.append("REGISTRY_ADDRESS")
        if not self.ledger.rpc_url:
            missing.append("BASE_SEPOLIA_RPC")
        return missing

    def require_agent(self):
        missing = self.missing_for_agent()
        if missing:
            raise ConfigurationError(f"Missing {', '.join(missing)}")

    def require_gateway(self):
        if not self.gateway.fee_collector:
            raise ConfigurationError("Missing PAYMENT_WALLET_ADDRESS")
        if not self.ledger.rpc_url:
            raise ConfigurationError("Missing BASE_SEPOLIA_RPC")

    @property
    def agent_address(self) -> Optional[str]:
        return self.wallet.address or None
