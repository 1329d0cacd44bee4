"""
SmartWallet: a ledger wallet whose spending authority is an OpenID identity.

Login goes through the identity provider; the returned identity token is
bound to a freshly derived signing key (or to a previously stored one) and,
for a wallet that has never spent, a proof of token possession is computed
in the background. The first spend activates the wallet on-ledger.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from enum import Enum
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import parse_qs, urlsplit

from .assembler import TransactionAssembler
from .backend import BackendClient
from .config import WalletConfig
from .errors import (
    InvalidIdentityTokenError,
    MalformedResponseError,
    MissingAuthorizationCodeError,
    MissingStateError,
    ProofError,
    StateMismatchError,
    TokenExchangeError,
    UnsupportedRecipientError,
    WalletNotInitializedError,
)
from .events import EventEmitter, EventType
from .identity import IdentityToken, KeySource, SigningIdentity
from .ledger import LedgerToolkit
from .models import (
    AddressType,
    BuildResponse,
    ConfirmationOutcome,
    Output,
    Proof,
    ProofInput,
    TransactionRequest,
    TransactionResult,
    UTxO,
)
from .oauth import IdentityProvider
from .prover import ProverClient
from .session import SessionStore, WalletRecord, WalletStore
from .value import AssetMap, Value, sum_asset_maps
from .watcher import ConfirmationWatcher
from .wire import deserialize, serialize


logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class WalletState(str, Enum):
    LOGGED_OUT = "logged_out"
    AWAITING_CALLBACK = "awaiting_callback"
    READY_FRESH = "ready_fresh"
    READY_ACTIVATED = "ready_activated"


def parse_callback(callback_data: str) -> dict[str, str]:
    """Query parameters from a redirect URL or a bare query string."""
    data = callback_data.strip()
    if "://" in data:
        data = urlsplit(data).query
    elif data.startswith("?"):
        data = data[1:]
    return {k: v[0] for k, v in parse_qs(data, keep_blank_values=True).items()}


class Wallet:
    """Identity-backed wallet.

    Usage:
        wallet = Wallet(backend, prover, oauth, toolkit, session, storage)
        url = wallet.login()                    # send the user there
        await wallet.oauth_callback(redirect)   # after the provider redirects back
        result = await wallet.send_transaction(TransactionRequest.to_email("bob@example.com", 5_000_000))
    """

    def __init__(
        self,
        backend: BackendClient,
        prover: ProverClient,
        oauth: IdentityProvider,
        toolkit: LedgerToolkit,
        session: SessionStore,
        storage: WalletStore,
        config: Optional[WalletConfig] = None,
        events: Optional[EventEmitter] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.backend = backend
        self.prover = prover
        self.oauth = oauth
        self.toolkit = toolkit
        self.session = session
        self.storage = storage
        self.config = config or WalletConfig()
        self.events = events or EventEmitter()
        self._sleep = sleep

        self.assembler = TransactionAssembler(backend, toolkit, self.config, sleep=sleep)
        self.watcher = ConfirmationWatcher(backend, self.events, self.config.confirmation_poll, sleep=sleep)

        self._identity: Optional[SigningIdentity] = None
        self._address: Optional[str] = None
        self._activated = False
        self._awaiting_callback = False
        self._proof: Optional[Proof] = None
        self._proof_error: Optional[BaseException] = None
        self._proof_request_id: Optional[str] = None
        self._proof_submitted = asyncio.Event()
        self._proof_task: Optional[asyncio.Task] = None
        self._watch_task: Optional[asyncio.Task] = None
        self._send_lock = asyncio.Lock()

    # ── State ─────────────────────────────────────────────────────

    @property
    def state(self) -> WalletState:
        if self._identity is None:
            return WalletState.AWAITING_CALLBACK if self._awaiting_callback else WalletState.LOGGED_OUT
        return WalletState.READY_ACTIVATED if self._activated else WalletState.READY_FRESH

    def is_logged_in(self) -> bool:
        return self._identity is not None

    def is_activated(self) -> bool:
        return self._activated

    def has_proof(self) -> bool:
        return self._activated or self._proof is not None

    @property
    def identity(self) -> SigningIdentity:
        if self._identity is None:
            raise WalletNotInitializedError("Wallet is not initialised; log in first")
        return self._identity

    def get_user_id(self) -> str:
        return self.identity.user_id

    # ── Login ─────────────────────────────────────────────────────

    def login(self) -> str:
        """Start a login; returns the identity-provider URL to redirect to."""
        state = secrets.token_hex(32)
        self.session.save_state(state)
        self._awaiting_callback = True
        logger.info("Login started")
        return self.oauth.get_auth_url(state)

    async def oauth_callback(self, callback_data: str, mnemonic: Optional[str] = None) -> WalletState:
        """Absorb the provider's redirect and bring the wallet to a ready state.

        ``mnemonic`` pins the signing key of a new wallet to a recovery
        phrase instead of a random seed.
        """
        saved_state = self.session.get_state()
        self.session.remove_state()
        self._awaiting_callback = False
        self._forget_identity()

        params = parse_callback(callback_data)
        if saved_state is None:
            raise MissingStateError("No login in progress: OAuth state was not found")
        if params.get("state") != saved_state:
            raise StateMismatchError("State mismatch. Possible CSRF attack")
        code = params.get("code")
        if not code:
            raise MissingAuthorizationCodeError("Missing authorization code")

        raw_token = await self.oauth.exchange_code(code)
        if not raw_token:
            raise TokenExchangeError("Failed to get an identity token from the authorization code")
        token = IdentityToken(raw_token)
        if not token.has_signature:
            raise InvalidIdentityTokenError("Identity provider returned an unsigned token")
        await self.oauth.verify_identity_token(raw_token)
        user_id = token.user_id

        address = await self.backend.wallet_address(user_id)
        record = self.storage.get_wallet(address)
        if record is not None:
            key = self.toolkit.signing_key_from_hex(record.signing_key)
            self._identity = SigningIdentity(
                token=IdentityToken(record.jwt),
                signing_key=key,
                source=KeySource.RESTORED,
                public_key_hash=self.toolkit.public_key_hash(key),
                user_id=user_id,
            )
            self._activated = True
            logger.info("Restored activated wallet for %s", user_id)
        else:
            key = self.toolkit.generate_signing_key(mnemonic)
            self._identity = SigningIdentity(
                token=token,
                signing_key=key,
                source=KeySource.MNEMONIC if mnemonic else KeySource.GENERATED,
                public_key_hash=self.toolkit.public_key_hash(key),
                user_id=user_id,
            )
            self._activated = False
            logger.info("New wallet for %s; computing activation proof", user_id)
            self._start_proof()

        self._address = address
        self.events.emit(
            EventType.INITIALIZED,
            {"user_id": user_id, "address": address, "activated": self._activated},
        )
        return self.state

    def _forget_identity(self) -> None:
        for task in (self._proof_task, self._watch_task):
            if task is not None and not task.done():
                task.cancel()
        self._proof_task = None
        self._watch_task = None
        self._identity = None
        self._address = None
        self._activated = False
        self._proof = None
        self._proof_error = None
        self._proof_request_id = None

    def logout(self) -> None:
        """Forget the identity and everything stored for it. Safe to call repeatedly."""
        self._forget_identity()
        self._awaiting_callback = False
        self.session.clear()
        self.storage.clear()
        self.events.emit(EventType.LOGGED_OUT)

    async def close(self) -> None:
        """Cancel background work without forgetting the login."""
        tasks = [t for t in (self._proof_task, self._watch_task) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

    # ── Login persistence ─────────────────────────────────────────

    def save_login(self) -> None:
        """Persist the current login so a later process can ``resume`` it."""
        identity = self.identity
        self.session.save_login({
            "user_id": identity.user_id,
            "address": self._address,
            "jwt": identity.token.raw,
            "signing_key": self.toolkit.signing_key_to_hex(identity.signing_key),
            "source": identity.source.value,
            "activated": self._activated,
            "proof": deserialize(serialize(self._proof)) if self._proof is not None else None,
            "proof_request_id": self._proof_request_id,
        })

    def _update_saved_login(self, identity: SigningIdentity, **fields: Any) -> None:
        login = self.session.get_login()
        if login is None or login.get("signing_key") != self.toolkit.signing_key_to_hex(identity.signing_key):
            return
        login.update(fields)
        self.session.save_login(login)

    async def resume(self) -> bool:
        """Restore a login saved by ``save_login``. False if there is none.

        An unfinished proof is not restarted here; it continues (polling the
        saved prover request when there is one) once something needs it.
        """
        login = self.session.get_login()
        if login is None:
            return False
        try:
            key = self.toolkit.signing_key_from_hex(login["signing_key"])
            proof = Proof.from_dict(login["proof"]) if login.get("proof") else None
            identity = SigningIdentity(
                token=IdentityToken(login["jwt"]),
                signing_key=key,
                source=KeySource(login.get("source", KeySource.GENERATED.value)),
                public_key_hash=self.toolkit.public_key_hash(key),
                user_id=login["user_id"],
            )
            address = login["address"]
            request_id = login.get("proof_request_id")
            if request_id is not None and not isinstance(request_id, str):
                raise TypeError("proof_request_id must be a string")
        except (KeyError, TypeError, ValueError, MalformedResponseError, InvalidIdentityTokenError) as e:
            logger.warning("Discarding unreadable saved login: %s", e)
            self.session.clear()
            return False

        self._identity = identity
        self._address = address
        self._activated = bool(login.get("activated"))
        self._proof = proof
        self._proof_request_id = request_id
        self._proof_error = None
        if not self.has_proof() and request_id is None and not identity.token.has_signature:
            self._proof_error = ProofError("Proof computation was interrupted; log in again")
        return True

    # ── Proof ─────────────────────────────────────────────────────

    def _start_proof(self) -> None:
        if self._proof_task is not None and not self._proof_task.done():
            return
        self._proof_error = None
        self._proof_submitted = asyncio.Event()
        if self._proof_request_id is not None:
            self._proof_submitted.set()
        self._proof_task = asyncio.create_task(self._compute_proof(self.identity))

    def _ensure_proof(self) -> None:
        if self._activated or self._proof is not None or self._proof_error is not None:
            return
        if self._proof_task is None or self._proof_task.done():
            logger.info("Resuming activation proof for %s", self.identity.user_id)
            self._start_proof()

    async def build_proof_input(self, identity: SigningIdentity) -> ProofInput:
        """Circuit input for ``identity``: issuer key, token signature, key hash."""
        exponent, modulus = await self.oauth.get_issuer_key(identity.token.key_id)
        return ProofInput(
            pub_e=Value(exponent),
            pub_n=Value(modulus),
            signature=Value(identity.token.signature),
            token_name=Value(int(identity.public_key_hash, 16)),
        )

    async def _compute_proof(self, identity: SigningIdentity) -> None:
        try:
            if self._proof_request_id is None:
                try:
                    proof_input = await self.build_proof_input(identity)
                    self._proof_request_id = await self.prover.request_proof(proof_input)
                finally:
                    self._proof_submitted.set()
                self._update_saved_login(identity, proof_request_id=self._proof_request_id)
            proof = await self.prover.poll_proof(self._proof_request_id, self.config.proof_poll, sleep=self._sleep)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Proof computation failed for %s", identity.user_id)
            self._proof_error = e
            self.events.emit(EventType.PROOF_FAILED, e)
            return
        # The signature lives on only inside the proof.
        identity.token = identity.token.stripped()
        self._proof = proof
        self._update_saved_login(identity, jwt=identity.token.raw, proof=deserialize(serialize(proof)))
        logger.info("Activation proof computed for %s", identity.user_id)
        self.events.emit(EventType.PROOF_COMPUTED)

    def _current_proof(self) -> Optional[Proof]:
        if self._proof_error is not None:
            raise ProofError(f"Activation proof unavailable: {self._proof_error}") from self._proof_error
        if self._proof is None:
            self._ensure_proof()
        return self._proof

    async def ensure_proof_requested(self) -> Optional[str]:
        """Make sure the prover holds this wallet's proof request; return its id.

        Returns without waiting for the proof itself. None for wallets that
        need no proof.
        """
        if self._activated or self._proof is not None:
            return self._proof_request_id
        self._current_proof()
        await self._proof_submitted.wait()
        self._current_proof()
        return self._proof_request_id

    async def wait_for_proof(self) -> Optional[Proof]:
        """Block until the background proof finishes. None for activated wallets."""
        if self._activated:
            return None
        if self._current_proof() is None and self._proof_task is not None:
            await asyncio.shield(self._proof_task)
        return self._current_proof()

    # ── Queries ───────────────────────────────────────────────────

    async def address_for_email(self, email: str) -> str:
        return await self.backend.wallet_address(email)

    async def get_address(self) -> str:
        identity = self.identity
        if self._address is None:
            self._address = await self.address_for_email(identity.user_id)
        return self._address

    async def get_utxos(self) -> list[UTxO]:
        return await self.backend.address_utxos(await self.get_address())

    async def get_balance(self) -> AssetMap:
        return sum_asset_maps(u.value for u in await self.get_utxos())

    async def get_used_addresses(self) -> list[str]:
        return [await self.get_address()] if await self.get_utxos() else []

    async def get_unused_addresses(self) -> list[str]:
        return [] if await self.get_utxos() else [await self.get_address()]

    async def get_change_address(self) -> str:
        return await self.get_address()

    async def get_reward_addresses(self) -> list[str]:
        return []

    def get_extensions(self) -> list[str]:
        return []

    def key_address(self) -> str:
        """Plain key-locked address of the signing key, used for peer-to-peer sends."""
        return self.toolkit.address_from_key_hash(self.identity.public_key_hash)

    async def is_initialized_on_chain(self) -> bool:
        identity = self.identity
        return await self.backend.is_wallet_initialized(identity.user_id, identity.public_key_hash)

    # ── Spending ──────────────────────────────────────────────────

    async def _resolve_recipient(self, request: TransactionRequest) -> tuple[str, list[str]]:
        if request.recipient_type == AddressType.BECH32:
            if not self.toolkit.validate_address(request.recipient):
                raise UnsupportedRecipientError(
                    f"Not a valid {self.config.network} address: {request.recipient}"
                )
            return request.recipient, []
        if request.recipient_type == AddressType.EMAIL:
            return await self.address_for_email(request.recipient), [request.recipient]
        raise UnsupportedRecipientError(f"Unsupported recipient type: {request.recipient_type!r}")

    async def send_transaction(self, request: TransactionRequest) -> TransactionResult:
        """Check funds, build, sign and submit one spend, then watch for it.

        Activates the wallet when it is still fresh. Raises
        InsufficientFundsError before anything is built when the balance
        does not cover the amount plus the reserve.
        """
        async with self._send_lock:
            self.events.emit(EventType.TRANSACTION_INITIATED, {"has_proof": self.has_proof()})
            try:
                return await self._send(request, local=False)
            except Exception as e:
                logger.warning("Transaction to %s failed: %s", request.recipient, e)
                self.events.emit(EventType.TRANSACTION_FAILED, e)
                raise

    async def send_peer_to_peer(self, request: TransactionRequest) -> TransactionResult:
        """Spend from the signing key's own address, building the transaction locally."""
        async with self._send_lock:
            self.events.emit(EventType.TRANSACTION_INITIATED, {"has_proof": self.has_proof()})
            try:
                return await self._send(request, local=True)
            except Exception as e:
                logger.warning("Peer-to-peer transaction to %s failed: %s", request.recipient, e)
                self.events.emit(EventType.TRANSACTION_FAILED, e)
                raise

    async def _send(self, request: TransactionRequest, local: bool) -> TransactionResult:
        identity = self.identity
        if request.recipient_type not in (AddressType.BECH32, AddressType.EMAIL):
            raise UnsupportedRecipientError(f"Unsupported recipient type: {request.recipient_type!r}")

        activating = not self._activated and not local
        sender = self.key_address() if local else await self.get_address()
        utxos = await self.assembler.check_affordability(sender, request, activated=not activating)

        recipient_address, email_recipients = await self._resolve_recipient(request)
        outputs = [Output(address=recipient_address, value=request.assets())]

        build: BuildResponse
        if local:
            build = self.assembler.build_local(utxos, outputs, sender)
        elif activating:
            build = await self.assembler.build_activation_spend(identity, outputs, self._current_proof)
        else:
            build = await self.assembler.build_spend(identity, outputs)

        signed = self.assembler.sign(build, identity)
        submitted = await self.backend.submit_tx(signed, email_recipients, sender=identity.user_id)
        if activating:
            self._activated = True
            logger.info("Wallet for %s activated by %s", identity.user_id, submitted.transaction_id)
        for failure in submitted.notifier_errors:
            logger.warning("Failed to notify recipient %s: %s", failure.email, failure.error)

        result = TransactionResult(
            transaction_id=submitted.transaction_id,
            recipient_address=recipient_address,
            notifier_errors=submitted.notifier_errors,
            activated_wallet=activating,
        )
        self.events.emit(EventType.TRANSACTION_PENDING, result)

        if not local:
            token = identity.token.stripped() if identity.token.has_signature else identity.token
            self.storage.save_wallet(
                sender,
                WalletRecord(jwt=token.raw, signing_key=self.toolkit.signing_key_to_hex(identity.signing_key)),
            )
        self._start_watch(recipient_address, submitted.transaction_id)
        return result

    def _start_watch(self, address: str, transaction_id: str) -> None:
        if self._watch_task is not None and not self._watch_task.done():
            logger.info("Replacing confirmation watcher with one for %s", transaction_id)
            self._watch_task.cancel()
        self._watch_task = asyncio.create_task(self.watcher.watch(address, transaction_id))

    async def wait_for_confirmation(self) -> Optional[ConfirmationOutcome]:
        """Outcome of the current confirmation watcher, or None if nothing is watched."""
        if self._watch_task is None:
            return None
        return await asyncio.shield(self._watch_task)
