"""
Aggregator & Reporter — Multi-day summary + completion notice.

aggregate() is a pure function over every persisted ledger, recomputed in
full each time. The ledger count is bounded by the campaign's lifetime in
days, so there's no incremental state to keep in sync.

Summary file layout:
    [{"runId": "2024-01-01", "total": 5}, {"runId": "2024-01-02", "total": 3}]

The completion notice goes to an operator through the same transport as the
campaign. Failing to deliver it is logged and otherwise ignored: the ledger
and summary are already on disk.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from campaign.errors import TransportError
from campaign.ledger import CampaignLedger, write_json_atomic
from campaign.messages import Payload
from campaign.transport import Transport

logger = logging.getLogger("broadcast.reporter")


@dataclass(frozen=True)
class SummaryEntry:
    run_id: str
    total: int

    def to_dict(self) -> dict:
        return {"runId": self.run_id, "total": self.total}


def aggregate(ledgers: Iterable[CampaignLedger]) -> List[SummaryEntry]:
    """One (run_id, total) entry per ledger, ordered by run id."""
    return [
        SummaryEntry(ledger.run_id, ledger.total)
        for ledger in sorted(ledgers, key=lambda l: l.run_id)
    ]


def write_summary(path, summary: List[SummaryEntry]) -> None:
    write_json_atomic(Path(path), [entry.to_dict() for entry in summary])
    logger.info(f"summary_written: {len(summary)} runs -> {path}")


def format_report(summary: List[SummaryEntry], ledger: CampaignLedger) -> str:
    """Fixed-shape, human-readable completion notice."""
    all_time = sum(entry.total for entry in summary)
    lines = [
        f"📋 Campaign run {ledger.run_id} complete",
        "",
        f"• Sent: {ledger.total}",
        f"• Failed: {len(ledger.failed)}",
        f"• Skipped: {len(ledger.skipped)}",
        "",
        f"📈 All-time sent: {all_time} across {len(summary)} run(s)",
    ]
    return "\n".join(lines)


class Reporter:

    def __init__(self, transport: Transport, summary_path, operator_id: str = ""):
        self.transport = transport
        self.summary_path = summary_path
        self.operator_id = operator_id

    def refresh(self, ledgers: Iterable[CampaignLedger]) -> List[SummaryEntry]:
        """Recompute the aggregate and persist it. Raises PersistenceFailure."""
        summary = aggregate(ledgers)
        write_summary(self.summary_path, summary)
        return summary

    async def report(self, summary: List[SummaryEntry], ledger: CampaignLedger) -> bool:
        """
        Send the completion notice to the operator.

        Returns True if delivered. Never raises for delivery problems.
        """
        if not self.operator_id:
            logger.info("report_skipped: no operator configured")
            return False

        text = format_report(summary, ledger)
        try:
            resolved_id: Optional[str] = await self.transport.resolve_recipient(self.operator_id)
            if resolved_id is None:
                logger.error(f"report_failed: operator {self.operator_id} is not registered")
                return False
            await self.transport.send(resolved_id, Payload(text=text))
        except TransportError as e:
            logger.error(f"report_failed: {e}")
            return False
        except Exception as e:
            logger.error(f"report_failed (unexpected): {e}", exc_info=True)
            return False

        logger.info(f"report_sent: {self.operator_id}")
        return True
