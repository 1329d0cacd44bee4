"""
SmartWallet — ledger wallets whose spending authority is an OpenID identity.

Sign in with the identity provider → prove token possession to activate →
spend with a client-held key, notifying email recipients.
"""

__version__ = "0.1.0"

from .config import KeySelection, PaddingScheme, PollPolicy, WalletConfig
from .errors import (
    InsufficientFundsError,
    MalformedResponseError,
    NetworkError,
    ProofError,
    SmartWalletError,
    WalletStateError,
)
from .events import EventEmitter, EventType, WalletEvent
from .models import AddressType, ConfirmationOutcome, TransactionRequest, TransactionResult, UTxO
from .value import LOVELACE, Value
from .wallet import Wallet, WalletState

__all__ = [
    "Wallet", "WalletState", "WalletConfig", "PollPolicy", "PaddingScheme", "KeySelection",
    "TransactionRequest", "TransactionResult", "AddressType", "ConfirmationOutcome", "UTxO",
    "Value", "LOVELACE", "EventEmitter", "EventType", "WalletEvent",
    "SmartWalletError", "WalletStateError", "InsufficientFundsError", "NetworkError",
    "MalformedResponseError", "ProofError",
]
