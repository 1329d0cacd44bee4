"""Poll a recipient address until a submitted transaction shows up in its UTxOs."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from .backend import BackendClient
from .config import PollPolicy
from .events import EventEmitter, EventType
from .models import ConfirmationOutcome


logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class ConfirmationWatcher:
    def __init__(
        self,
        backend: BackendClient,
        events: EventEmitter,
        poll: Optional[PollPolicy] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.backend = backend
        self.events = events
        self.poll = poll or PollPolicy()
        self._sleep = sleep

    async def check_once(self, address: str, transaction_id: str) -> ConfirmationOutcome:
        """SUCCESS once an output of ``transaction_id`` sits at ``address``.

        Lookup errors propagate to the caller.
        """
        tx_id = transaction_id.lower()
        for utxo in await self.backend.address_utxos(address):
            if utxo.ref.transaction_id == tx_id:
                return ConfirmationOutcome.SUCCESS
        return ConfirmationOutcome.PENDING

    async def watch(self, address: str, transaction_id: str) -> ConfirmationOutcome:
        """Poll until confirmed, failed or out of attempts; emit the outcome."""
        attempts = 0
        while True:
            attempts += 1
            try:
                outcome = await self.check_once(address, transaction_id)
            except Exception as e:
                logger.warning("Confirmation lookup for %s failed: %s", transaction_id, e)
                self.events.emit(
                    EventType.TRANSACTION_FAILED,
                    {"transaction_id": transaction_id, "outcome": ConfirmationOutcome.FAILURE.value, "error": e},
                )
                return ConfirmationOutcome.FAILURE

            if outcome == ConfirmationOutcome.SUCCESS:
                logger.info("Transaction %s confirmed after %d polls", transaction_id, attempts)
                self.events.emit(EventType.TRANSACTION_CONFIRMED, {"transaction_id": transaction_id})
                return outcome

            if self.poll.max_attempts is not None and attempts >= self.poll.max_attempts:
                logger.warning("Gave up waiting for %s after %d polls", transaction_id, attempts)
                self.events.emit(
                    EventType.TRANSACTION_FAILED,
                    {"transaction_id": transaction_id, "outcome": ConfirmationOutcome.TIMEOUT.value},
                )
                return ConfirmationOutcome.TIMEOUT

            await self._sleep(self.poll.interval)
