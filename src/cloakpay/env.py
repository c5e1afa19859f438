from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from solders.keypair import Keypair

from .domain.errors import ConfigurationError
from .infrastructure.solana.keypair import load_keypair, usdc_mint_for_network


class Settings(BaseModel):
    """Typed application settings built from environment variables."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    # Secrets
    encryption_master_key: str
    mpc_callback_secret: str
    funding_keypair: Keypair

    # Remote collaborators
    mpc_cluster_url: str
    mpc_program_id: str = "cloakpay_settlement"
    solana_rpc_url: str
    solana_network: str = "devnet"
    usdc_mint: str
    public_base_url: str

    # Database settings
    database_url: str = "redis://localhost:6379/0"

    # API settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_debug: bool = False
    api_cors_origins: list[str] = ["*"]

    # Application settings
    app_name: str = "CloakPay"
    app_version: str = "1.0.0"
    log_level: str = "info"

    # Pipeline tuning
    solana_priority_fee: int = 1000  # micro-lamports per compute unit
    settlement_max_per_tx: int = 10
    settlement_concurrency: int = 2
    webhook_timeout_seconds: float = 30.0
    mpc_request_timeout_seconds: float = 10.0
    computation_timeout_seconds: int = 900
    reconciliation_interval_seconds: int = 60

    @field_validator("encryption_master_key")
    @classmethod
    def validate_master_key(cls, v: str) -> str:
        if len(v) != 64:
            raise ValueError("ENCRYPTION_MASTER_KEY must be 64 hex characters")
        try:
            bytes.fromhex(v)
        except ValueError as e:
            raise ValueError("ENCRYPTION_MASTER_KEY must be hex encoded") from e
        return v

    @field_validator("mpc_callback_secret")
    @classmethod
    def validate_callback_secret(cls, v: str) -> str:
        if len(v) < 32:
            raise ValueError("MPC_CALLBACK_SECRET must be at least 32 characters")
        return v

    @field_validator("mpc_cluster_url", "solana_rpc_url", "public_base_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Expected an http(s) URL, got {v!r}")
        return v.rstrip("/")

    @field_validator("settlement_max_per_tx", "settlement_concurrency")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Value must be at least 1")
        return v

    @property
    def callback_url(self) -> str:
        return f"{self.public_base_url}/api/v1/mpc/callbacks"


def _required(name: str) -> str:
    value = os.environ.get(name)
    if not value:
        raise ConfigurationError(f"{name} environment variable is required")
    return value


def _optional_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer") from e


def _optional_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number") from e


def get_settings() -> Settings:
    """Return typed settings instance sourced from env vars.

    Raises:
        ConfigurationError: if a required secret is missing or malformed
    """
    keypair_source = os.environ.get("SOLANA_KEYPAIR") or os.environ.get(
        "SOLANA_KEYPAIR_PATH"
    )
    if not keypair_source:
        raise ConfigurationError("SOLANA_KEYPAIR environment variable is required")
    try:
        funding_keypair = load_keypair(keypair_source)
    except Exception as e:
        raise ConfigurationError(f"Invalid SOLANA_KEYPAIR: {e}") from e

    network = os.environ.get("SOLANA_NETWORK", "devnet")
    usdc_mint: Optional[str] = os.environ.get("USDC_MINT")
    if not usdc_mint:
        try:
            usdc_mint = usdc_mint_for_network(network)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

    try:
        return Settings(
            encryption_master_key=_required("ENCRYPTION_MASTER_KEY"),
            mpc_callback_secret=_required("MPC_CALLBACK_SECRET"),
            funding_keypair=funding_keypair,
            mpc_cluster_url=_required("MPC_CLUSTER_URL"),
            mpc_program_id=os.environ.get("MPC_PROGRAM_ID", "cloakpay_settlement"),
            solana_rpc_url=_required("SOLANA_RPC_URL"),
            solana_network=network,
            usdc_mint=usdc_mint,
            public_base_url=_required("PUBLIC_BASE_URL"),
            database_url=os.environ.get("DATABASE_URL", "redis://localhost:6379/0"),
            api_host=os.environ.get("API_HOST", "0.0.0.0"),
            api_port=_optional_int("API_PORT", 8000),
            api_debug=os.environ.get("API_DEBUG", "false").lower() == "true",
            api_cors_origins=os.environ.get("API_CORS_ORIGINS", "*").split(","),
            app_name=os.environ.get("APP_NAME", "CloakPay"),
            app_version=os.environ.get("APP_VERSION", "1.0.0"),
            log_level=os.environ.get("LOG_LEVEL", "info").lower(),
            solana_priority_fee=_optional_int("SOLANA_PRIORITY_FEE", 1000),
            settlement_max_per_tx=_optional_int("SETTLEMENT_MAX_PER_TX", 10),
            settlement_concurrency=_optional_int("SETTLEMENT_CONCURRENCY", 2),
            webhook_timeout_seconds=_optional_float("WEBHOOK_TIMEOUT_SECONDS", 30.0),
            mpc_request_timeout_seconds=_optional_float(
                "MPC_REQUEST_TIMEOUT_SECONDS", 10.0
            ),
            computation_timeout_seconds=_optional_int(
                "COMPUTATION_TIMEOUT_SECONDS", 900
            ),
            reconciliation_interval_seconds=_optional_int(
                "RECONCILIATION_INTERVAL_SECONDS", 60
            ),
        )
    except ValidationError as e:
        raise ConfigurationError(str(e)) from e
