"""Session (OAuth correlation, current login) and durable wallet-record namespaces."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from .storage import KeyValueStore


logger = logging.getLogger(__name__)

STORAGE_VERSION = "v0"


@dataclass
class WalletRecord:
    """What is needed to resume an activated wallet: its token and signing key."""

    jwt: str
    signing_key: str

    def to_dict(self) -> dict:
        return {"jwt": self.jwt, "signing_key": self.signing_key}

    @classmethod
    def from_dict(cls, d: Any) -> Optional[WalletRecord]:
        if not isinstance(d, dict):
            return None
        jwt, key = d.get("jwt"), d.get("signing_key")
        if not isinstance(jwt, str) or not isinstance(key, str):
            return None
        return cls(jwt=jwt, signing_key=key)


class SessionStore:
    """Ephemeral per-session state."""

    STATE_KEY = "oauth_state"
    LOGIN_KEY = "current_login"

    def __init__(self, store: KeyValueStore):
        self._store = store
        self._store.open()

    def save_state(self, state: str) -> None:
        self._store.set(self.STATE_KEY, state)

    def get_state(self) -> Optional[str]:
        state = self._store.get(self.STATE_KEY)
        if state is not None and not isinstance(state, str):
            logger.warning("Discarding malformed OAuth state in session store")
            self._store.remove(self.STATE_KEY)
            return None
        return state

    def remove_state(self) -> None:
        self._store.remove(self.STATE_KEY)

    def save_login(self, login: dict[str, Any]) -> None:
        self._store.set(self.LOGIN_KEY, login)

    def get_login(self) -> Optional[dict[str, Any]]:
        login = self._store.get(self.LOGIN_KEY)
        if login is not None and not isinstance(login, dict):
            logger.warning("Discarding malformed login record in session store")
            self._store.remove(self.LOGIN_KEY)
            return None
        return login

    def clear(self) -> None:
        self._store.clear()

    def close(self) -> None:
        self._store.close()


class WalletStore:
    """Durable wallet records keyed by ledger address."""

    STORAGE_KEY = "smart-wallets"

    def __init__(self, store: KeyValueStore):
        self._store = store
        self._store.open()

    def _load(self) -> dict[str, Any]:
        stored = self._store.get(self.STORAGE_KEY)
        if (
            isinstance(stored, dict)
            and stored.get("version") == STORAGE_VERSION
            and isinstance(stored.get("wallets"), dict)
        ):
            return stored
        if stored is not None:
            logger.warning("Wallet storage is corrupted or outdated; reinitializing")
        default = {"version": STORAGE_VERSION, "wallets": {}}
        self._store.set(self.STORAGE_KEY, default)
        return default

    def save_wallet(self, address: str, record: WalletRecord) -> None:
        storage = self._load()
        storage["wallets"][address] = record.to_dict()
        self._store.set(self.STORAGE_KEY, storage)

    def get_wallet(self, address: str) -> Optional[WalletRecord]:
        raw = self._load()["wallets"].get(address)
        if raw is None:
            return None
        record = WalletRecord.from_dict(raw)
        if record is None:
            logger.warning("Dropping malformed wallet record for %s", address)
            self.remove_wallet(address)
        return record

    def all_wallets(self) -> dict[str, WalletRecord]:
        result = {}
        for address, raw in self._load()["wallets"].items():
            record = WalletRecord.from_dict(raw)
            if record is not None:
                result[address] = record
        return result

    def remove_wallet(self, address: str) -> None:
        storage = self._load()
        if storage["wallets"].pop(address, None) is not None:
            self._store.set(self.STORAGE_KEY, storage)

    def clear(self) -> None:
        self._store.clear()

    def close(self) -> None:
        self._store.close()
