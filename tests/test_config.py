"""Tests for environment-driven configuration."""

from pathlib import Path

import pytest

from smartwallet.config import DEFAULT_HOME, KeySelection, PaddingScheme, PollPolicy, WalletConfig


def test_defaults():
    config = WalletConfig()
    assert config.network == "testnet"
    assert config.activation_reserve == 8_000_000
    assert config.spend_reserve == 2_000_000
    assert config.proof_poll == PollPolicy(interval=30.0, max_attempts=None)
    assert config.padding_scheme == PaddingScheme.OAEP_SHA256
    assert config.key_selection == KeySelection.FIRST


def test_from_env_reads_and_normalizes():
    config = WalletConfig.from_env({
        "SMARTWALLET_BACKEND_URL": "https://backend.test/",
        "SMARTWALLET_PROVER_URL": "https://prover.test//",
        "SMARTWALLET_API_KEY": "k",
        "GOOGLE_CLIENT_ID": "client",
        "GOOGLE_CLIENT_SECRET": "",
        "SMARTWALLET_NETWORK": "mainnet",
        "SMARTWALLET_HOME": "/tmp/sw-home",
        "SMARTWALLET_RSA_PADDING": "pkcs1v15",
    })

    assert config.backend_url == "https://backend.test"
    assert config.prover_url == "https://prover.test"
    assert config.api_key == "k"
    assert config.google_client_id == "client"
    assert config.google_client_secret is None
    assert config.network == "mainnet"
    assert config.home == Path("/tmp/sw-home")
    assert config.padding_scheme == PaddingScheme.PKCS1V15


def test_from_env_empty_uses_defaults():
    config = WalletConfig.from_env({})
    assert config.home == DEFAULT_HOME
    assert config.api_key is None


def test_unknown_network_is_rejected():
    with pytest.raises(ValueError, match="Unknown network"):
        WalletConfig(network="preview")


def test_unknown_padding_is_rejected():
    with pytest.raises(ValueError):
        WalletConfig.from_env({"SMARTWALLET_RSA_PADDING": "none"})
