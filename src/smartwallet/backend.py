"""
Smart wallet backend client.

The backend resolves email addresses to wallet addresses, builds unsigned
activation/spend transactions, submits signed ones (notifying email
recipients) and lists UTxOs.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from .errors import MalformedResponseError
from .models import (
    BuildResponse,
    ClientCredentials,
    Output,
    Proof,
    Settings,
    SubmitResult,
    UTxO,
)
from .service import ServiceClient


logger = logging.getLogger(__name__)


class BackendClient(ServiceClient):
    """Async client for the backend's ``/v0`` API."""

    async def settings(self) -> Settings:
        return Settings.from_dict(await self._get("/v0/settings"))

    async def credentials(self) -> ClientCredentials:
        """OAuth client credentials the backend is configured with."""
        return ClientCredentials.from_dict(await self._get("/v0/oauth/credentials"))

    async def wallet_address(self, email: str) -> str:
        """Address of the wallet bound to ``email``, activated or not."""
        data = await self._post("/v0/wallet/address", {"email": email})
        if not isinstance(data, dict) or not isinstance(data.get("address"), str):
            raise MalformedResponseError("wallet address: expected {'address': <bech32>}")
        return data["address"]

    async def is_wallet_initialized(self, email: str, payment_key_hash: str) -> bool:
        """Whether the wallet for ``email`` was activated with ``payment_key_hash``."""
        data = await self._post("/v0/wallet/is-initialized", {"email": email})
        if not isinstance(data, dict):
            raise MalformedResponseError("is-initialized: expected an object")
        state = data.get("is_initialized")
        if not state:
            return False
        if not isinstance(state, list) or len(state) < 2 or not isinstance(state[1], list):
            raise MalformedResponseError("is-initialized: expected [<address>, [<token names>]]")
        return payment_key_hash in state[1]

    async def activate_wallet(self, jwt: str, payment_key_hash: str, proof: Proof) -> BuildResponse:
        """Build a transaction that only activates the wallet."""
        data = await self._post(
            "/v0/wallet/activate",
            {"jwt": jwt, "payment_key_hash": payment_key_hash, "proof_bytes": proof},
        )
        return BuildResponse.from_dict(data)

    async def activate_and_send_funds(
        self,
        jwt: str,
        payment_key_hash: str,
        proof: Proof,
        outs: Sequence[Output],
    ) -> BuildResponse:
        """Build a transaction that activates the wallet and pays ``outs`` in one go."""
        data = await self._post(
            "/v0/wallet/activate-and-send-funds",
            {
                "jwt": jwt,
                "payment_key_hash": payment_key_hash,
                "proof_bytes": proof,
                "outs": list(outs),
            },
        )
        return BuildResponse.from_dict(data)

    async def send_funds(self, email: str, outs: Sequence[Output], payment_key_hash: str) -> BuildResponse:
        """Build a spend from an already activated wallet."""
        data = await self._post(
            "/v0/wallet/send-funds",
            {"email": email, "outs": list(outs), "payment_key_hash": payment_key_hash},
        )
        return BuildResponse.from_dict(data)

    async def submit_tx(
        self,
        transaction: str,
        email_recipients: Sequence[str] = (),
        sender: Optional[str] = None,
    ) -> SubmitResult:
        """Submit a signed CBOR transaction and notify email recipients."""
        data = await self._post(
            "/v0/tx/submit",
            {"email_recipients": list(email_recipients), "sender": sender, "transaction": transaction},
        )
        result = SubmitResult.from_dict(data)
        logger.info("Submitted transaction %s", result.transaction_id)
        return result

    async def add_vkey_and_submit_tx(
        self,
        unsigned_transaction: str,
        vkey_witness: str,
        email_recipients: Sequence[str] = (),
        sender: Optional[str] = None,
    ) -> SubmitResult:
        """Let the backend attach a detached witness, then submit."""
        data = await self._post(
            "/v0/tx/add-vkey-and-submit",
            {
                "unsigned_transaction": unsigned_transaction,
                "vkey_witness": vkey_witness,
                "email_recipients": list(email_recipients),
                "sender": sender,
            },
        )
        return SubmitResult.from_dict(data)

    async def address_utxos(self, address: str) -> list[UTxO]:
        data = await self._post("/v0/address/utxos", [address])
        if not isinstance(data, list):
            raise MalformedResponseError("address utxos: expected a list")
        return [UTxO.from_dict(item) for item in data]
