"""
Campaign Orchestrator — One sequential pass over the pending recipients.

    IDLE → SELECTING → SENDING → CHECKPOINTING → PACING → SENDING → …
         → REPORTING → DONE

SHUTTING_DOWN is entered from SENDING / CHECKPOINTING / PACING when the
shutdown event is set. The signal handler only sets the event, so a send
already handed to the transport always finishes and is checkpointed; no new
send starts afterwards, pacing is cut short, and reporting is skipped (it
runs again on the next invocation).

Key design:
- Strictly one recipient at a time (keeps the pacing contract and gives the
  ledger a single writer)
- Ledger saved after EVERY outcome, so a crash redoes at most one recipient
- An unexpected error for one recipient is logged and recorded as FAILED;
  the campaign keeps going
- PersistenceFailure is fatal: without a trustworthy checkpoint nothing
  else can safely proceed
"""

import asyncio
import logging
import signal
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from campaign.audit import AuditTrail
from campaign.delivery import DeliveryAttempter, Outcome, OutcomeKind
from campaign.ledger import CampaignLedger, LedgerStore
from campaign.messages import Payload
from campaign.pacing import PacingPolicy
from campaign.reporter import Reporter, SummaryEntry
from campaign.selector import pending_for_run

logger = logging.getLogger("broadcast.orchestrator")


class RunState:
    IDLE = "idle"
    SELECTING = "selecting"
    SENDING = "sending"
    CHECKPOINTING = "checkpointing"
    PACING = "pacing"
    REPORTING = "reporting"
    SHUTTING_DOWN = "shutting_down"
    DONE = "done"


@dataclass
class RunResult:
    run_id: str
    ledger: CampaignLedger
    pending: int = 0
    attempted: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    interrupted: bool = False
    reported: bool = False
    summary: Optional[List[SummaryEntry]] = None
    states: List[str] = field(default_factory=list)


class CampaignOrchestrator:
    """
    Drives one run of the campaign.

    Lifecycle:
        orchestrator = CampaignOrchestrator(store, attempter, pacing, reporter)
        result = await orchestrator.run("2024-01-01", recipients, factory, shutdown)
    """

    def __init__(
        self,
        store: LedgerStore,
        attempter: DeliveryAttempter,
        pacing: PacingPolicy,
        reporter: Reporter,
        audit: AuditTrail = None,
        retry_failed: bool = False,
    ):
        self.store = store
        self.attempter = attempter
        self.pacing = pacing
        self.reporter = reporter
        self.audit = audit or AuditTrail()
        self.retry_failed = retry_failed
        self.state = RunState.IDLE
        self._states: List[str] = [RunState.IDLE]

    def _enter(self, state: str):
        self.state = state
        self._states.append(state)
        logger.debug(f"state: {state}")

    async def run(
        self,
        run_id: str,
        recipients: Sequence[str],
        payload_factory: Callable[[], Payload],
        shutdown: asyncio.Event = None,
    ) -> RunResult:
        if shutdown is None:
            shutdown = asyncio.Event()
        self._states = [RunState.IDLE]

        # ── Selecting ────────────────────────────────────────────────
        self._enter(RunState.SELECTING)
        ledger = self.store.load(run_id)
        todo = pending_for_run(
            recipients, ledger, history=self.store.load_all(), retry_failed=self.retry_failed
        )

        result = RunResult(run_id=run_id, ledger=ledger, pending=len(todo), states=self._states)

        if not todo:
            logger.info(f"✅ All contacts finished for run {run_id} — nothing to send")
            result.summary = self.reporter.refresh(self.store.load_all())
            self._enter(RunState.DONE)
            return result

        logger.info(f"🚀 Run {run_id}: sending to {len(todo)} recipients")

        # ── Sending loop ─────────────────────────────────────────────
        for index, recipient in enumerate(todo, start=1):
            if shutdown.is_set():
                result.interrupted = True
                break

            self._enter(RunState.SENDING)
            logger.info(f"[{index}/{len(todo)}] {recipient}")
            outcome = await self._attempt(recipient, payload_factory)
            self._apply(ledger, outcome, result)

            self._enter(RunState.CHECKPOINTING)
            self.store.save(ledger)

            if shutdown.is_set():
                result.interrupted = True
                break

            if index < len(todo):
                self._enter(RunState.PACING)
                if not await self.pacing.pause(shutdown):
                    result.interrupted = True
                    break

        if result.interrupted:
            self._enter(RunState.SHUTTING_DOWN)
            self.store.save(ledger)
            logger.info(
                f"🛑 Run {run_id} stopped by shutdown after {result.attempted} "
                f"of {len(todo)} recipients — ledger flushed, report deferred"
            )
            self._enter(RunState.DONE)
            return result

        # ── Reporting ────────────────────────────────────────────────
        self._enter(RunState.REPORTING)
        logger.info(
            f"✅ Batch complete: sent={result.sent} failed={result.failed} skipped={result.skipped}"
        )
        result.summary = self.reporter.refresh(self.store.load_all())
        result.reported = await self.reporter.report(result.summary, ledger)
        self._enter(RunState.DONE)
        return result

    async def _attempt(self, recipient: str, payload_factory: Callable[[], Payload]) -> Outcome:
        try:
            payload = payload_factory()
            return await self.attempter.attempt(recipient, payload)
        except Exception as e:
            logger.error(f"Unexpected error delivering to {recipient}: {e}", exc_info=True)
            return Outcome.failed(recipient, f"unexpected error: {e}")

    def _apply(self, ledger: CampaignLedger, outcome: Outcome, result: RunResult):
        if outcome.kind == OutcomeKind.SENT:
            ledger.record_sent(outcome.recipient)
            result.sent += 1
        elif outcome.kind == OutcomeKind.SKIPPED:
            ledger.record_skipped(outcome.recipient)
            result.skipped += 1
        else:
            ledger.record_failed(outcome.recipient)
            result.failed += 1
        result.attempted += 1
        self.audit.record(ledger.run_id, outcome)


def install_signal_handlers(shutdown: asyncio.Event, loop: asyncio.AbstractEventLoop = None):
    """Set `shutdown` on SIGTERM / SIGINT instead of interrupting the loop."""
    loop = loop or asyncio.get_running_loop()

    def _handle_signal(sig):
        logger.info(f"Received signal {sig.name} — finishing current recipient, then stopping")
        shutdown.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, _handle_signal, sig)
        except NotImplementedError:
            logger.warning(f"Signal handlers not supported here; {sig.name} will not stop gracefully")
