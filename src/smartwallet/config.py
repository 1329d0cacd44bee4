"""Runtime configuration for the wallet, its remote services and poll loops."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from .value import reserve_ada_to_lovelace


DEFAULT_HOME = Path.home() / ".smartwallet"


class PaddingScheme(str, Enum):
    """RSA padding used to wrap the proof request's AES key."""

    OAEP_SHA256 = "oaep-sha256"
    PKCS1V15 = "pkcs1v15"


class KeySelection(str, Enum):
    """Which of the prover's published keys to encrypt for."""

    FIRST = "first"
    LAST = "last"
    LARGEST = "largest"


@dataclass
class PollPolicy:
    """Fixed-interval retry policy; ``max_attempts=None`` polls forever."""

    interval: float = 30.0
    max_attempts: Optional[int] = None


@dataclass
class WalletConfig:
    backend_url: str = "http://localhost:8082"
    prover_url: str = "http://localhost:8083"
    api_key: Optional[str] = None
    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None
    redirect_url: str = "http://localhost:8080/oauth2callback"
    network: str = "testnet"
    home: Path = DEFAULT_HOME
    timeout_seconds: float = 30.0
    proof_poll: PollPolicy = field(default_factory=PollPolicy)
    confirmation_poll: PollPolicy = field(default_factory=PollPolicy)
    proof_wait_interval: float = 5.0
    activation_reserve: int = reserve_ada_to_lovelace(8)
    spend_reserve: int = reserve_ada_to_lovelace(2)
    padding_scheme: PaddingScheme = PaddingScheme.OAEP_SHA256
    key_selection: KeySelection = KeySelection.FIRST

    def __post_init__(self):
        if self.network not in ("mainnet", "testnet"):
            raise ValueError(f"Unknown network: {self.network} (expected mainnet or testnet)")

    @classmethod
    def from_env(cls, environ: Optional[dict[str, str]] = None) -> WalletConfig:
        env = os.environ if environ is None else environ
        defaults = cls()
        home = env.get("SMARTWALLET_HOME")
        return cls(
            backend_url=env.get("SMARTWALLET_BACKEND_URL", defaults.backend_url).rstrip("/"),
            prover_url=env.get("SMARTWALLET_PROVER_URL", defaults.prover_url).rstrip("/"),
            api_key=env.get("SMARTWALLET_API_KEY") or None,
            google_client_id=env.get("GOOGLE_CLIENT_ID") or None,
            google_client_secret=env.get("GOOGLE_CLIENT_SECRET") or None,
            redirect_url=env.get("SMARTWALLET_REDIRECT_URL", defaults.redirect_url),
            network=env.get("SMARTWALLET_NETWORK", defaults.network),
            home=Path(home) if home else DEFAULT_HOME,
            padding_scheme=PaddingScheme(env.get("SMARTWALLET_RSA_PADDING", defaults.padding_scheme.value)),
        )
