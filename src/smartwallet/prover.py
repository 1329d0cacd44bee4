"""
Proof-request protocol against the remote prover.

The proof input is encrypted under a one-time AES-256-CBC key; the AES key is
wrapped with the prover's published RSA key. The prover answers with a
request id that is polled until the proof is ready.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx
from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.asymmetric import padding as asym_padding
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicNumbers
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .config import KeySelection, PaddingScheme, PollPolicy
from .errors import MalformedResponseError, NetworkError, ProofError
from .models import Proof, ProofInput, ProverPublicKey
from .service import ServiceClient, is_transient
from .wire import deserialize, serialize


logger = logging.getLogger(__name__)

AES_KEY_BYTES = 32
AES_BLOCK_BITS = 128
IV_BYTES = 16

Sleep = Callable[[float], Awaitable[Any]]


@dataclass
class EncryptedProofRequest:
    server_key_id: str
    aes_encryption_key: str  # hex, RSA-wrapped
    encrypted_payload: str   # hex, IV || ciphertext

    def to_dict(self) -> dict:
        return {
            "server_key_id": self.server_key_id,
            "aes_encryption_key": self.aes_encryption_key,
            "encrypted_payload": self.encrypted_payload,
        }


def _rsa_padding(scheme: PaddingScheme) -> asym_padding.AsymmetricPadding:
    if scheme == PaddingScheme.PKCS1V15:
        return asym_padding.PKCS1v15()
    return asym_padding.OAEP(
        mgf=asym_padding.MGF1(algorithm=hashes.SHA256()),
        algorithm=hashes.SHA256(),
        label=None,
    )


def encrypt_proof_input(
    proof_input: ProofInput,
    key: ProverPublicKey,
    scheme: PaddingScheme = PaddingScheme.OAEP_SHA256,
) -> EncryptedProofRequest:
    """Hybrid-encrypt ``proof_input`` for the prover key ``key``."""
    plaintext = serialize(proof_input).encode("utf-8")

    aes_key = os.urandom(AES_KEY_BYTES)
    iv = os.urandom(IV_BYTES)
    padder = padding.PKCS7(AES_BLOCK_BITS).padder()
    padded = padder.update(plaintext) + padder.finalize()
    encryptor = Cipher(algorithms.AES(aes_key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()

    try:
        rsa_key = RSAPublicNumbers(int(key.public.public_e), int(key.public.public_n)).public_key()
        wrapped_key = rsa_key.encrypt(aes_key, _rsa_padding(scheme))
    except ValueError as e:
        raise ProofError(f"Cannot encrypt for prover key {key.key_id}: {e}") from e

    return EncryptedProofRequest(
        server_key_id=key.key_id,
        aes_encryption_key=wrapped_key.hex(),
        encrypted_payload=(iv + ciphertext).hex(),
    )


def select_key(keys: list[ProverPublicKey], policy: KeySelection = KeySelection.FIRST) -> ProverPublicKey:
    if not keys:
        raise ProofError("Prover published no encryption keys")
    if policy == KeySelection.LAST:
        return keys[-1]
    if policy == KeySelection.LARGEST:
        return max(keys, key=lambda k: (int(k.public.public_size), int(k.public.public_n)))
    return keys[0]


def _parse_status(data: Any) -> Optional[Proof]:
    if not isinstance(data, dict) or not isinstance(data.get("tag"), str):
        raise MalformedResponseError("proof status: expected an object with a 'tag'")
    tag = data["tag"]
    if tag == "Pending":
        return None
    if tag != "Completed":
        raise MalformedResponseError(f"proof status: unknown tag {tag!r}")
    contents = data.get("contents")
    if not isinstance(contents, dict) or "bytes" not in contents:
        raise MalformedResponseError("proof status: completed without 'contents.bytes'")
    raw = contents["bytes"]
    if isinstance(raw, str):
        raw = deserialize(raw)
    return Proof.from_dict(raw)


class ProverClient(ServiceClient):
    """Async client for the prover's ``/v0`` API."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 30.0,
        padding_scheme: PaddingScheme = PaddingScheme.OAEP_SHA256,
        key_selection: KeySelection = KeySelection.FIRST,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url, timeout_seconds=timeout_seconds, transport=transport)
        self.padding_scheme = padding_scheme
        self.key_selection = key_selection

    async def server_keys(self) -> list[ProverPublicKey]:
        data = await self._get("/v0/keys")
        if not isinstance(data, list):
            raise MalformedResponseError("prover keys: expected a list")
        return [ProverPublicKey.from_dict(item) for item in data]

    async def request_proof(self, proof_input: ProofInput) -> str:
        """Encrypt and submit ``proof_input``; return the prover's request id."""
        # Keys are fetched per request and never cached.
        key = select_key(await self.server_keys(), self.key_selection)
        request = encrypt_proof_input(proof_input, key, self.padding_scheme)
        request_id = await self._post("/v0/prove", request)
        if not isinstance(request_id, str) or not request_id:
            raise MalformedResponseError("prove: expected a request id string")
        logger.info("Proof requested with prover key %s", key.key_id)
        return request_id

    async def proof_status(self, request_id: str) -> Optional[Proof]:
        """The finished proof, or None while the prover is still working."""
        return _parse_status(await self._post("/v0/proof-status", request_id))

    async def prove(
        self,
        proof_input: ProofInput,
        poll: Optional[PollPolicy] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> Proof:
        """Request a proof and poll until it completes."""
        request_id = await self.request_proof(proof_input)
        return await self.poll_proof(request_id, poll, sleep=sleep)

    async def poll_proof(
        self,
        request_id: str,
        poll: Optional[PollPolicy] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> Proof:
        """Poll an already submitted request until its proof is ready.

        Transport failures and 5xx answers count as Pending. Raises
        ProofError when ``poll.max_attempts`` is exhausted.
        """
        poll = poll or PollPolicy()
        attempts = 0
        while True:
            attempts += 1
            try:
                proof = await self.proof_status(request_id)
            except NetworkError as e:
                if not is_transient(e):
                    raise
                logger.warning("Proof status poll %d failed, retrying: %s", attempts, e)
                proof = None
            if proof is not None:
                logger.info("Proof ready after %d status polls", attempts)
                return proof
            if poll.max_attempts is not None and attempts >= poll.max_attempts:
                raise ProofError(f"Proof not ready after {attempts} status polls")
            await sleep(poll.interval)
