"""
Ledger toolkit: keys, addresses and transaction bytes.

The wallet only talks to the ``LedgerToolkit`` protocol; ``PyCardanoToolkit``
is the production implementation on top of pycardano.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence

from pycardano import (
    Address,
    ExtendedSigningKey,
    HDWallet,
    MultiAsset,
    Network,
    Transaction,
    TransactionBody,
    TransactionId,
    TransactionInput,
    TransactionOutput,
    TransactionWitnessSet,
    Value as LedgerValue,
    VerificationKeyHash,
    VerificationKeyWitness,
)

from .errors import LedgerError
from .models import Output, UTxO
from .value import LOVELACE, AssetMap, split_asset_id


logger = logging.getLogger(__name__)

DERIVATION_PATH = "m/1852'/1815'/0'/0/0"


@dataclass(frozen=True)
class ProtocolParameters:
    """Fee and deposit constants used for locally assembled transactions."""

    min_fee_a: int = 44
    min_fee_b: int = 155_381
    witness_overhead: int = 128  # bytes added by one vkey witness
    min_utxo_lovelace: int = 1_000_000

    def fee_for_size(self, size: int) -> int:
        return self.min_fee_a * (size + self.witness_overhead) + self.min_fee_b


class LedgerToolkit(Protocol):
    def generate_signing_key(self, mnemonic: Optional[str] = None) -> Any: ...

    def signing_key_to_hex(self, key: Any) -> str: ...

    def signing_key_from_hex(self, text: str) -> Any: ...

    def public_key_hash(self, key: Any) -> str: ...

    def address_from_key_hash(self, key_hash: str) -> str: ...

    def validate_address(self, address: str) -> bool: ...

    def sign_transaction(self, tx_hex: str, key: Any) -> str: ...

    def vkey_witness(self, tx_hex: str, key: Any) -> str: ...

    def build_transaction(self, inputs: Sequence[UTxO], outputs: Sequence[Output], fee: int) -> str: ...

    def transaction_id(self, tx_hex: str) -> str: ...

    def transaction_size(self, tx_hex: str) -> int: ...


class PyCardanoToolkit:
    """LedgerToolkit over pycardano."""

    def __init__(self, network: str = "testnet"):
        if network not in ("mainnet", "testnet"):
            raise ValueError(f"Unknown network: {network}")
        self.network = Network.MAINNET if network == "mainnet" else Network.TESTNET

    # ── Keys ──────────────────────────────────────────────────────

    def generate_signing_key(self, mnemonic: Optional[str] = None) -> ExtendedSigningKey:
        """Derive the first payment key from ``mnemonic`` or a fresh random seed."""
        phrase = mnemonic or HDWallet.generate_mnemonic()
        try:
            root = HDWallet.from_mnemonic(phrase)
        except ValueError as e:
            raise LedgerError(f"Invalid recovery phrase: {e}") from e
        return ExtendedSigningKey.from_hdwallet(root.derive_from_path(DERIVATION_PATH))

    def signing_key_to_hex(self, key: ExtendedSigningKey) -> str:
        return key.payload.hex()

    def signing_key_from_hex(self, text: str) -> ExtendedSigningKey:
        try:
            payload = bytes.fromhex(text)
        except ValueError as e:
            raise LedgerError(f"Signing key is not hex: {e}") from e
        if len(payload) < 64:
            raise LedgerError("Signing key is too short to be an extended key")
        return ExtendedSigningKey(payload)

    def public_key_hash(self, key: ExtendedSigningKey) -> str:
        return key.to_verification_key().hash().payload.hex()

    # ── Addresses ─────────────────────────────────────────────────

    def address_from_key_hash(self, key_hash: str) -> str:
        try:
            payment_part = VerificationKeyHash(bytes.fromhex(key_hash))
        except ValueError as e:
            raise LedgerError(f"Invalid key hash {key_hash!r}: {e}") from e
        return str(Address(payment_part=payment_part, network=self.network))

    def _parse_address(self, address: str) -> Address:
        try:
            return Address.from_primitive(address)
        except Exception as e:
            raise LedgerError(f"Invalid address {address!r}: {e}") from e

    def validate_address(self, address: str) -> bool:
        try:
            parsed = self._parse_address(address)
        except LedgerError:
            return False
        return parsed.network == self.network

    # ── Transactions ──────────────────────────────────────────────

    def _parse_transaction(self, tx_hex: str) -> Transaction:
        try:
            return Transaction.from_cbor(tx_hex)
        except Exception as e:
            raise LedgerError(f"Cannot decode transaction: {e}") from e

    def _witness(self, tx: Transaction, key: ExtendedSigningKey) -> VerificationKeyWitness:
        signature = key.sign(tx.transaction_body.hash())
        return VerificationKeyWitness(key.to_verification_key().to_non_extended(), signature)

    def sign_transaction(self, tx_hex: str, key: ExtendedSigningKey) -> str:
        """Attach one vkey witness for ``key``, keeping any existing witnesses."""
        tx = self._parse_transaction(tx_hex)
        witness_set = tx.transaction_witness_set
        witnesses = list(witness_set.vkey_witnesses or [])
        witnesses.append(self._witness(tx, key))
        witness_set.vkey_witnesses = witnesses
        return tx.to_cbor_hex()

    def vkey_witness(self, tx_hex: str, key: ExtendedSigningKey) -> str:
        """Detached witness for ``key`` over ``tx_hex``, CBOR hex."""
        return self._witness(self._parse_transaction(tx_hex), key).to_cbor_hex()

    def _ledger_value(self, assets: AssetMap) -> LedgerValue | int:
        coin = int(assets.get(LOVELACE, 0))
        tokens: dict[bytes, dict[bytes, int]] = {}
        for asset, amount in assets.items():
            if asset == LOVELACE:
                continue
            policy, name = split_asset_id(asset)
            tokens.setdefault(bytes.fromhex(policy), {})[bytes.fromhex(name)] = int(amount)
        if not tokens:
            return coin
        return LedgerValue(coin, MultiAsset.from_primitive(tokens))

    def build_transaction(self, inputs: Sequence[UTxO], outputs: Sequence[Output], fee: int) -> str:
        """Unsigned transaction spending ``inputs`` into ``outputs``."""
        if any(o.datum is not None for o in outputs):
            raise LedgerError("Locally built transactions cannot carry datums")
        try:
            body = TransactionBody(
                inputs=[
                    TransactionInput(TransactionId(bytes.fromhex(u.ref.transaction_id)), u.ref.output_index)
                    for u in inputs
                ],
                outputs=[
                    TransactionOutput(self._parse_address(o.address), self._ledger_value(o.value))
                    for o in outputs
                ],
                fee=fee,
            )
            tx = Transaction(body, TransactionWitnessSet())
        except LedgerError:
            raise
        except Exception as e:
            raise LedgerError(f"Cannot build transaction: {e}") from e
        return tx.to_cbor_hex()

    def transaction_id(self, tx_hex: str) -> str:
        return self._parse_transaction(tx_hex).transaction_body.hash().hex()

    def transaction_size(self, tx_hex: str) -> int:
        return len(tx_hex) // 2
