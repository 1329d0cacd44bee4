"""
SmartWallet error types.

Specific exceptions for different failure modes, enabling callers
to handle each case appropriately (retry, abort, alert, etc.).
"""

from __future__ import annotations

from typing import Optional


class SmartWalletError(Exception):
    """Base error for all SmartWallet operations."""
    pass


# Protocol / state errors
class WalletStateError(SmartWalletError):
    """Base error for login protocol and wallet state violations."""
    pass


class MissingStateError(WalletStateError):
    """No OAuth correlation token was persisted before the callback."""
    pass


class StateMismatchError(WalletStateError):
    """Callback state does not match the persisted one. Possible CSRF attack."""
    pass


class MissingAuthorizationCodeError(WalletStateError):
    """Callback carries no authorization code."""
    pass


class TokenExchangeError(WalletStateError):
    """The identity provider did not return an identity token."""
    pass


class WalletNotInitializedError(WalletStateError):
    """An identity-dependent operation was called before login completed."""
    pass


class InvalidIdentityTokenError(WalletStateError):
    """Identity token is not a three-segment signed token or lacks a verified email."""
    pass


# Funds errors
class InsufficientFundsError(SmartWalletError):
    """Wallet balance does not cover the amount plus the required reserve."""
    def __init__(self, asset: str, required: int, available: int):
        self.asset = asset
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient {asset}: need {required}, have {available} "
            f"(short by {self.shortfall})"
        )

    @property
    def shortfall(self) -> int:
        return max(0, self.required - self.available)


class UnsupportedRecipientError(SmartWalletError):
    """Recipient type is neither a ledger address nor an email."""
    pass


# Remote service errors
class NetworkError(SmartWalletError):
    """Network-level or HTTP failures talking to the backend, prover or identity provider."""
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class MalformedResponseError(SmartWalletError):
    """A remote service answered with an unexpected shape."""
    pass


class ProofError(SmartWalletError):
    """Proof computation failed or the proof is unavailable."""
    pass


class LedgerError(SmartWalletError):
    """Ledger toolkit could not parse, build or sign a transaction."""
    pass
