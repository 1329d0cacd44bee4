"""
Data model shared by the backend client, prover client and wallet.

Every ``from_dict`` validates the shape it is given and raises
MalformedResponseError instead of letting a half-parsed object through.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Optional

from .errors import MalformedResponseError
from .value import AssetMap, IntLike, LOVELACE, Value, asset_map_to_wire


_TX_ID_RE = re.compile(r"^[0-9a-fA-F]{64}$")


def _require(d: Any, key: str, kind: type | tuple[type, ...], where: str) -> Any:
    if not isinstance(d, dict):
        raise MalformedResponseError(f"{where}: expected an object, got {type(d).__name__}")
    if key not in d:
        raise MalformedResponseError(f"{where}: missing field '{key}'")
    value = d[key]
    if isinstance(value, bool) or not isinstance(value, kind):
        raise MalformedResponseError(f"{where}: field '{key}' has unexpected type {type(value).__name__}")
    return value


def _to_value(raw: Any, where: str) -> Value:
    if isinstance(raw, bool) or not isinstance(raw, (int, str, Value)):
        raise MalformedResponseError(f"{where}: expected an integer, got {type(raw).__name__}")
    try:
        return Value(raw)
    except ValueError as e:
        raise MalformedResponseError(f"{where}: {e}") from e


def _to_asset_map(raw: Any, where: str) -> AssetMap:
    if not isinstance(raw, dict):
        raise MalformedResponseError(f"{where}: expected an asset map")
    return {str(k): _to_value(v, f"{where}[{k}]") for k, v in raw.items()}


# ── Ledger data ───────────────────────────────────────────────────

@dataclass(frozen=True)
class Reference:
    """Transaction output reference, rendered as ``<txid>#<index>``."""

    transaction_id: str
    output_index: int

    def __str__(self) -> str:
        return f"{self.transaction_id}#{self.output_index}"

    @classmethod
    def parse(cls, text: str) -> Reference:
        tx_id, sep, index = text.partition("#")
        if not sep or not _TX_ID_RE.match(tx_id) or not index.isdigit():
            raise MalformedResponseError(f"Malformed UTxO reference: {text!r}")
        return cls(transaction_id=tx_id.lower(), output_index=int(index))


@dataclass(frozen=True)
class UTxO:
    """A spendable fund fragment as of the time it was fetched."""

    ref: Reference
    address: str
    value: AssetMap

    @property
    def lovelace(self) -> Value:
        return self.value.get(LOVELACE, Value(0))

    def to_dict(self) -> dict:
        return {
            "ref": str(self.ref),
            "address": self.address,
            "value": asset_map_to_wire(self.value),
        }

    @classmethod
    def from_dict(cls, d: Any) -> UTxO:
        ref = _require(d, "ref", str, "utxo")
        address = _require(d, "address", str, "utxo")
        value = _to_asset_map(_require(d, "value", dict, "utxo"), "utxo.value")
        return cls(ref=Reference.parse(ref), address=address, value=value)


@dataclass
class TxDatum:
    """Optional datum attached to an output, inline or by hash."""

    datum: Any
    is_inline: bool = True

    def to_dict(self) -> dict:
        return {"datum": self.datum, "is_inline": self.is_inline}


@dataclass
class Output:
    """Transaction output as expected by the backend."""

    address: str
    value: AssetMap
    datum: Optional[TxDatum] = None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"address": self.address, "value": asset_map_to_wire(self.value)}
        if self.datum is not None:
            d["datum"] = self.datum.to_dict()
        return d


# ── Backend responses ─────────────────────────────────────────────

@dataclass
class Settings:
    network: str
    version: str

    @classmethod
    def from_dict(cls, d: Any) -> Settings:
        return cls(
            network=_require(d, "network", str, "settings"),
            version=_require(d, "version", str, "settings"),
        )


@dataclass
class ClientCredentials:
    client_id: str
    client_secret: str

    @classmethod
    def from_dict(cls, d: Any) -> ClientCredentials:
        return cls(
            client_id=_require(d, "client_id", str, "credentials"),
            client_secret=_require(d, "client_secret", str, "credentials"),
        )


@dataclass
class BuildResponse:
    """Unsigned transaction built by the backend."""

    transaction: str
    transaction_fee: int
    transaction_id: str
    address: Optional[str] = None

    @classmethod
    def from_dict(cls, d: Any) -> BuildResponse:
        address = d.get("address") if isinstance(d, dict) else None
        if address is not None and not isinstance(address, str):
            raise MalformedResponseError("build: field 'address' has unexpected type")
        return cls(
            transaction=_require(d, "transaction", str, "build"),
            transaction_fee=int(_to_value(_require(d, "transaction_fee", (int, str), "build"), "build.fee")),
            transaction_id=_require(d, "transaction_id", str, "build"),
            address=address,
        )


@dataclass
class FailedNotification:
    """Email recipient that could not be notified, with the reason."""

    email: str
    error: str

    def to_dict(self) -> dict:
        return {"email": self.email, "error": self.error}


@dataclass
class SubmitResult:
    """Transaction id plus any recipients that were not notified."""

    transaction_id: str
    notifier_errors: list[FailedNotification] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "transaction_id": self.transaction_id,
            "notifier_errors": [n.to_dict() for n in self.notifier_errors],
        }

    @classmethod
    def from_dict(cls, d: Any) -> SubmitResult:
        tx_id = _require(d, "transaction_id", str, "submit")
        raw_errors = d.get("notifier_errors") or []
        if not isinstance(raw_errors, list):
            raise MalformedResponseError("submit: 'notifier_errors' must be a list")
        errors = [
            FailedNotification(
                email=_require(e, "email", str, "submit.notifier_errors"),
                error=_require(e, "error", str, "submit.notifier_errors"),
            )
            for e in raw_errors
        ]
        return cls(transaction_id=tx_id, notifier_errors=errors)


# ── Prover data ───────────────────────────────────────────────────

@dataclass
class ProofInput:
    """Input of the token-signature circuit."""

    pub_e: Value
    pub_n: Value
    signature: Value
    token_name: Value

    def to_dict(self) -> dict:
        return {
            "piPubE": self.pub_e,
            "piPubN": self.pub_n,
            "piSignature": self.signature,
            "piTokenName": self.token_name,
        }

    @classmethod
    def from_dict(cls, d: Any) -> ProofInput:
        return cls(
            pub_e=_to_value(_require(d, "piPubE", (int, str), "proof input"), "piPubE"),
            pub_n=_to_value(_require(d, "piPubN", (int, str), "proof input"), "piPubN"),
            signature=_to_value(_require(d, "piSignature", (int, str), "proof input"), "piSignature"),
            token_name=_to_value(_require(d, "piTokenName", (int, str), "proof input"), "piTokenName"),
        )


PROOF_BYTES_FIELDS = (
    "cmA_bytes", "cmB_bytes", "cmC_bytes", "cmF_bytes", "cmH1_bytes", "cmH2_bytes",
    "cmQhigh_bytes", "cmQlow_bytes", "cmQmid_bytes", "cmZ1_bytes", "cmZ2_bytes",
    "proof1_bytes", "proof2_bytes",
)

PROOF_INT_FIELDS = (
    "a_xi_int", "b_xi_int", "c_xi_int", "f_xi_int", "h1_xi'_int", "h2_xi_int",
    "l1_xi", "s1_xi_int", "s2_xi_int", "t_xi'_int", "t_xi_int", "z1_xi'_int", "z2_xi'_int",
)


@dataclass
class Proof:
    """Plonkup proof bundle.

    Commitments stay opaque strings; evaluations are Values. Wire keys are
    kept verbatim (some contain apostrophes) in ``commitments`` and
    ``evaluations``.
    """

    commitments: dict[str, str]
    evaluations: dict[str, Value]
    l_xi: list[Value]

    def to_dict(self) -> dict:
        d: dict[str, Any] = {}
        d.update(self.commitments)
        d.update(self.evaluations)
        d["l_xi"] = list(self.l_xi)
        return dict(sorted(d.items()))

    @classmethod
    def from_dict(cls, d: Any) -> Proof:
        if not isinstance(d, dict):
            raise MalformedResponseError("proof: expected an object")
        commitments = {k: _require(d, k, str, "proof") for k in PROOF_BYTES_FIELDS}
        evaluations = {
            k: _to_value(_require(d, k, (int, str), "proof"), f"proof.{k}") for k in PROOF_INT_FIELDS
        }
        raw_l_xi = _require(d, "l_xi", (list, int, str), "proof")
        if not isinstance(raw_l_xi, list):
            raw_l_xi = [raw_l_xi]
        l_xi = [_to_value(v, "proof.l_xi") for v in raw_l_xi]
        return cls(commitments=commitments, evaluations=evaluations, l_xi=l_xi)


@dataclass
class RSAPublicKey:
    public_e: Value
    public_n: Value
    public_size: Value


@dataclass
class ProverPublicKey:
    """Prover's published RSA key with its identifier."""

    key_id: str
    public: RSAPublicKey

    @classmethod
    def from_dict(cls, d: Any) -> ProverPublicKey:
        key_id = _require(d, "id", str, "prover key")
        pub = _require(d, "public", dict, "prover key")
        return cls(
            key_id=key_id,
            public=RSAPublicKey(
                public_e=_to_value(_require(pub, "public_e", (int, str), "prover key"), "public_e"),
                public_n=_to_value(_require(pub, "public_n", (int, str), "prover key"), "public_n"),
                public_size=_to_value(_require(pub, "public_size", (int, str), "prover key"), "public_size"),
            ),
        )


# ── Wallet requests ───────────────────────────────────────────────

class AddressType(IntEnum):
    BECH32 = 0
    EMAIL = 1


@dataclass
class TransactionRequest:
    """A single-asset spend as requested by a caller."""

    recipient: str
    recipient_type: AddressType
    amount: Value
    asset: str = LOVELACE

    @classmethod
    def to_address(cls, address: str, amount: IntLike, asset: str = LOVELACE) -> TransactionRequest:
        return cls(recipient=address, recipient_type=AddressType.BECH32, amount=Value(amount), asset=asset)

    @classmethod
    def to_email(cls, email: str, amount: IntLike, asset: str = LOVELACE) -> TransactionRequest:
        return cls(recipient=email, recipient_type=AddressType.EMAIL, amount=Value(amount), asset=asset)

    def assets(self) -> AssetMap:
        return {self.asset: Value(self.amount)}


@dataclass
class TransactionResult:
    transaction_id: str
    recipient_address: str
    notifier_errors: list[FailedNotification] = field(default_factory=list)
    activated_wallet: bool = False

    def to_dict(self) -> dict:
        return {
            "transaction_id": self.transaction_id,
            "recipient_address": self.recipient_address,
            "notifier_errors": [n.to_dict() for n in self.notifier_errors],
            "activated_wallet": self.activated_wallet,
        }


class ConfirmationOutcome(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"
