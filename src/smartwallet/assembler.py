"""
Transaction assembly for smart wallet spends.

Given a request and the wallet's identity, decide the spend path, have the
backend (or the local toolkit) build the transaction, and sign it with the
wallet's key. Balance checks always run against a fresh UTxO fetch and
before anything is built.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Sequence

from .backend import BackendClient
from .config import WalletConfig
from .errors import InsufficientFundsError
from .identity import SigningIdentity
from .ledger import LedgerToolkit, ProtocolParameters
from .models import BuildResponse, Output, Proof, TransactionRequest, UTxO
from .value import LOVELACE, AssetMap, Value, sum_asset_maps


logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]
ProofSource = Callable[[], Optional[Proof]]

_MAX_FEE_ROUNDS = 4


def required_reserve(config: WalletConfig, activated: bool) -> int:
    return config.spend_reserve if activated else config.activation_reserve


class TransactionAssembler:
    """Builds and signs spends for one wallet."""

    def __init__(
        self,
        backend: BackendClient,
        toolkit: LedgerToolkit,
        config: WalletConfig,
        sleep: Sleep = asyncio.sleep,
        protocol: Optional[ProtocolParameters] = None,
    ):
        self.backend = backend
        self.toolkit = toolkit
        self.config = config
        self._sleep = sleep
        self.protocol = protocol or ProtocolParameters()

    # ── Affordability ─────────────────────────────────────────────

    async def check_affordability(
        self,
        address: str,
        request: TransactionRequest,
        activated: bool,
    ) -> list[UTxO]:
        """Fetch the wallet's UTxOs and make sure they cover the request.

        Lovelace must cover the amount plus the reserve for the wallet's
        state; other assets must be covered in full. Returns the UTxOs so
        local builds can spend them.
        """
        utxos = await self.backend.address_utxos(address)
        balance = sum_asset_maps(u.value for u in utxos)
        reserve = required_reserve(self.config, activated)

        wanted = request.assets()
        required_lovelace = int(wanted.get(LOVELACE, 0)) + reserve
        available_lovelace = int(balance.get(LOVELACE, 0))
        if available_lovelace < required_lovelace:
            raise InsufficientFundsError(LOVELACE, required_lovelace, available_lovelace)

        for asset, amount in wanted.items():
            if asset == LOVELACE:
                continue
            available = int(balance.get(asset, 0))
            if available < int(amount):
                raise InsufficientFundsError(asset, int(amount), available)
        return utxos

    # ── Backend builds ────────────────────────────────────────────

    async def build_spend(self, identity: SigningIdentity, outputs: Sequence[Output]) -> BuildResponse:
        """Spend from an activated wallet."""
        return await self.backend.send_funds(identity.user_id, outputs, identity.public_key_hash)

    async def wait_for_proof(self, proof_source: ProofSource) -> Proof:
        """Block until ``proof_source`` yields a proof, checking at a fixed interval."""
        proof = proof_source()
        while proof is None:
            logger.debug("Waiting %.1fs for the activation proof", self.config.proof_wait_interval)
            await self._sleep(self.config.proof_wait_interval)
            proof = proof_source()
        return proof

    async def build_activation_spend(
        self,
        identity: SigningIdentity,
        outputs: Sequence[Output],
        proof_source: ProofSource,
    ) -> BuildResponse:
        """Activate a fresh wallet and pay ``outputs`` in the same transaction."""
        proof = await self.wait_for_proof(proof_source)
        return await self.backend.activate_and_send_funds(
            identity.token.decoded_claims_text(),
            identity.public_key_hash,
            proof,
            outputs,
        )

    # ── Local builds ──────────────────────────────────────────────

    def build_local(
        self,
        utxos: Sequence[UTxO],
        outputs: Sequence[Output],
        change_address: str,
    ) -> BuildResponse:
        """Spend every UTxO into ``outputs`` plus one change output.

        Used when no backend builder is available. The fee comes from the
        linear fee formula of ``self.protocol``.
        """
        total = sum_asset_maps(u.value for u in utxos)
        spent = sum_asset_maps(o.value for o in outputs)

        token_change: AssetMap = {}
        for asset, amount in total.items():
            if asset == LOVELACE:
                continue
            left = int(amount) - int(spent.get(asset, 0))
            if left > 0:
                token_change[asset] = Value(left)
        for asset, amount in spent.items():
            if asset != LOVELACE and int(total.get(asset, 0)) < int(amount):
                raise InsufficientFundsError(asset, int(amount), int(total.get(asset, 0)))

        total_lovelace = int(total.get(LOVELACE, 0))
        spent_lovelace = int(spent.get(LOVELACE, 0))

        def draft(fee: int) -> str:
            change_lovelace = max(total_lovelace - spent_lovelace - fee, 0)
            change = Output(address=change_address, value={LOVELACE: Value(change_lovelace), **token_change})
            return self.toolkit.build_transaction(utxos, [*outputs, change], fee)

        fee = 0
        tx_hex = draft(fee)
        for _ in range(_MAX_FEE_ROUNDS):
            needed = self.protocol.fee_for_size(self.toolkit.transaction_size(tx_hex))
            if needed <= fee:
                break
            fee = needed
            tx_hex = draft(fee)

        change_lovelace = total_lovelace - spent_lovelace - fee
        if change_lovelace < self.protocol.min_utxo_lovelace:
            raise InsufficientFundsError(
                LOVELACE,
                spent_lovelace + fee + self.protocol.min_utxo_lovelace,
                total_lovelace,
            )

        logger.info("Built local transaction: %d inputs, fee %d lovelace", len(utxos), fee)
        return BuildResponse(
            transaction=tx_hex,
            transaction_fee=fee,
            transaction_id=self.toolkit.transaction_id(tx_hex),
        )

    # ── Signing ───────────────────────────────────────────────────

    def sign(self, build: BuildResponse, identity: SigningIdentity) -> str:
        """Attach the wallet's vkey witness to a built transaction."""
        return self.toolkit.sign_transaction(build.transaction, identity.signing_key)
