"""
Delivery Attempter — Validate one recipient and send with bounded retry.

    outcome = await attempter.attempt("212600000000", payload)

1. Resolve the recipient. Unknown to the network → SKIPPED, no send.
2. Send. A TransportError from either step uses up one of `max_retries`
   tries, with `retry_delay_seconds` between tries (shorter than the
   pacing delay between recipients).
3. Still failing → FAILED with the last error.

Touches no persisted state: mapping the outcome onto the ledger is the
orchestrator's job.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from campaign.errors import TransportError
from campaign.messages import Payload
from campaign.transport import Transport

logger = logging.getLogger("broadcast.delivery")


class OutcomeKind:
    SENT = "SENT"
    SKIPPED = "SKIPPED"  # validation failure, retried on a later run
    FAILED = "FAILED"    # retries exhausted, sticky


@dataclass
class Outcome:
    kind: str
    recipient: str
    resolved_id: Optional[str] = None
    reason: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0

    @classmethod
    def sent(cls, recipient: str, resolved_id: str, attempts: int) -> "Outcome":
        return cls(OutcomeKind.SENT, recipient, resolved_id=resolved_id, attempts=attempts)

    @classmethod
    def skipped(cls, recipient: str, reason: str) -> "Outcome":
        return cls(OutcomeKind.SKIPPED, recipient, reason=reason)

    @classmethod
    def failed(cls, recipient: str, error: str, attempts: int = 0, resolved_id: str = None) -> "Outcome":
        return cls(OutcomeKind.FAILED, recipient, resolved_id=resolved_id, error=error, attempts=attempts)

    @property
    def detail(self) -> str:
        if self.kind == OutcomeKind.SENT:
            return f"to={self.resolved_id} attempts={self.attempts}"
        if self.kind == OutcomeKind.SKIPPED:
            return f"reason={self.reason}"
        return f"attempts={self.attempts} error={self.error}"


class DeliveryAttempter:

    def __init__(self, transport: Transport, max_retries: int = 3, retry_delay_seconds: float = 5.0):
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")
        self.transport = transport
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds

    async def attempt(self, recipient: str, payload: Payload) -> Outcome:
        """
        Resolve and send, sharing one budget of `max_retries` tries.

        A TransportError while resolving counts as a failed try like a send
        error does. Only a clean "not registered" answer means SKIPPED.
        """
        resolved_id = None
        last_error = None
        for attempt in range(1, self.max_retries + 1):
            try:
                if resolved_id is None:
                    resolved_id = await self.transport.resolve_recipient(recipient)
                    if resolved_id is None:
                        logger.warning(f"recipient_not_registered: {recipient}")
                        return Outcome.skipped(recipient, "recipient not registered on the network")

                await self.transport.send(resolved_id, payload)
                logger.info(f"message_sent: {recipient} (attempt {attempt}/{self.max_retries})")
                return Outcome.sent(recipient, resolved_id, attempt)
            except TransportError as e:
                last_error = str(e)
                phase = "send" if resolved_id else "resolve"
                logger.warning(
                    f"{phase}_failed: {recipient} attempt {attempt}/{self.max_retries}: {last_error[:200]}"
                )
                if attempt < self.max_retries:
                    await asyncio.sleep(self.retry_delay_seconds)

        logger.error(f"send_gave_up: {recipient} after {self.max_retries} attempts")
        return Outcome.failed(recipient, last_error, attempts=self.max_retries, resolved_id=resolved_id)
