"""Tests for environment-driven settings."""

from __future__ import annotations

import json

import pytest
from solders.keypair import Keypair

from cloakpay.domain.errors import ConfigurationError
from cloakpay.env import get_settings
from cloakpay.infrastructure.solana.keypair import USDC_MINTS, load_keypair
from tests.fixtures import MASTER_KEY

KEYPAIR = Keypair()


@pytest.fixture
def environment(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    values = {
        "ENCRYPTION_MASTER_KEY": MASTER_KEY,
        "MPC_CALLBACK_SECRET": "c" * 32,
        "SOLANA_KEYPAIR": json.dumps(list(bytes(KEYPAIR))),
        "MPC_CLUSTER_URL": "https://mpc.example/",
        "SOLANA_RPC_URL": "https://api.devnet.solana.com",
        "PUBLIC_BASE_URL": "https://pay.example",
    }
    for name, value in values.items():
        monkeypatch.setenv(name, value)
    for name in ("SOLANA_KEYPAIR_PATH", "USDC_MINT", "SOLANA_NETWORK"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_settings_from_environment(environment: pytest.MonkeyPatch) -> None:
    settings = get_settings()

    assert settings.funding_keypair.pubkey() == KEYPAIR.pubkey()
    assert settings.mpc_cluster_url == "https://mpc.example"
    assert settings.usdc_mint == USDC_MINTS["devnet"]
    assert settings.callback_url == "https://pay.example/api/v1/mpc/callbacks"
    assert settings.settlement_max_per_tx == 10


@pytest.mark.parametrize(
    "name,value",
    [
        ("ENCRYPTION_MASTER_KEY", "abc"),
        ("MPC_CALLBACK_SECRET", "short"),
        ("MPC_CLUSTER_URL", "mpc.example"),
        ("SOLANA_KEYPAIR", "not-a-keypair"),
        ("SETTLEMENT_MAX_PER_TX", "0"),
        ("API_PORT", "eighty"),
        ("SOLANA_NETWORK", "localnet"),
    ],
)
def test_invalid_values_are_configuration_errors(
    environment: pytest.MonkeyPatch, name: str, value: str
) -> None:
    environment.setenv(name, value)

    with pytest.raises(ConfigurationError):
        get_settings()


def test_missing_secret_is_a_configuration_error(
    environment: pytest.MonkeyPatch,
) -> None:
    environment.delenv("MPC_CALLBACK_SECRET")

    with pytest.raises(ConfigurationError):
        get_settings()


def test_keypair_formats(tmp_path) -> None:
    path = tmp_path / "id.json"
    path.write_text(json.dumps(list(bytes(KEYPAIR))))

    assert load_keypair(str(path)).pubkey() == KEYPAIR.pubkey()
    assert load_keypair(str(KEYPAIR)).pubkey() == KEYPAIR.pubkey()
