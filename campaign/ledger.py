"""
Campaign Ledger — Durable per-run record of delivery outcomes.

One ledger per run id (a calendar date). The ledger is checkpointed after
every single outcome, so a crash or forced shutdown loses at most the
in-flight send.

File layout (ledger-<runId>.json):
    {"runId": "2024-01-01", "total": 2,
     "sent": ["A", "B"], "failed": ["C"], "skipped": ["D"]}

Key guarantees:
- sent / failed / skipped are pairwise disjoint
- total == len(sent), always (computed, never stored separately)
- save() is write-to-temp + fsync + os.replace: a kill mid-write leaves
  the previous valid checkpoint in place
"""

import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

from campaign.errors import PersistenceFailure

logger = logging.getLogger("broadcast.ledger")

LEDGER_PREFIX = "ledger-"
LEDGER_SUFFIX = ".json"


class CampaignLedger:
    """
    Outcome record for one run.

    The three buckets are insertion-ordered and append-only in normal use.
    Recording an id that already sits in a different bucket moves it, so
    the buckets stay disjoint (only happens when failed recipients are
    retried, or a previously skipped id validates on a restart).
    """

    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"
    BUCKETS = (SENT, FAILED, SKIPPED)

    def __init__(self, run_id: str):
        if not run_id:
            raise ValueError("run_id is required")
        self._run_id = run_id
        # dicts as ordered sets
        self._buckets: Dict[str, Dict[str, None]] = {b: {} for b in self.BUCKETS}

    @property
    def run_id(self) -> str:
        return self._run_id

    @property
    def sent(self) -> List[str]:
        return list(self._buckets[self.SENT])

    @property
    def failed(self) -> List[str]:
        return list(self._buckets[self.FAILED])

    @property
    def skipped(self) -> List[str]:
        return list(self._buckets[self.SKIPPED])

    @property
    def total(self) -> int:
        return len(self._buckets[self.SENT])

    def record_sent(self, recipient: str):
        self._record(self.SENT, recipient)

    def record_failed(self, recipient: str):
        self._record(self.FAILED, recipient)

    def record_skipped(self, recipient: str):
        self._record(self.SKIPPED, recipient)

    def _record(self, bucket: str, recipient: str):
        if recipient in self._buckets[bucket]:
            return
        for other in self.BUCKETS:
            if other != bucket and recipient in self._buckets[other]:
                del self._buckets[other][recipient]
                logger.debug(f"ledger_move: {recipient} {other} -> {bucket}")
        self._buckets[bucket][recipient] = None

    def bucket_of(self, recipient: str) -> Optional[str]:
        for bucket in self.BUCKETS:
            if recipient in self._buckets[bucket]:
                return bucket
        return None

    def contains(self, recipient: str) -> bool:
        return self.bucket_of(recipient) is not None

    def completed(self) -> set:
        """Ids that are finished for good: sent ∪ failed."""
        return set(self._buckets[self.SENT]) | set(self._buckets[self.FAILED])

    def merge(self, other: "CampaignLedger"):
        """
        Union another ledger for the same run into this one.

        Precedence when an id appears in different buckets: sent beats
        failed beats skipped. A delivered message can't be un-delivered.
        """
        if other.run_id != self.run_id:
            raise ValueError(f"cannot merge ledger {other.run_id} into {self.run_id}")
        for bucket in reversed(self.BUCKETS):
            for recipient in other._buckets[bucket]:
                current = self.bucket_of(recipient)
                if current is None or self.BUCKETS.index(bucket) < self.BUCKETS.index(current):
                    self._record(bucket, recipient)
        return self

    def to_dict(self) -> dict:
        return {
            "runId": self.run_id,
            "total": self.total,
            "sent": self.sent,
            "failed": self.failed,
            "skipped": self.skipped,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CampaignLedger":
        """
        Build a ledger from its file form. `total` is recomputed from
        `sent`; a stale counter on disk is ignored.
        """
        ledger = cls(str(data["runId"]))
        # lowest precedence first so a conflicting id lands in the stronger bucket
        for recipient in data.get("skipped", []):
            ledger.record_skipped(str(recipient))
        for recipient in data.get("failed", []):
            ledger.record_failed(str(recipient))
        for recipient in data.get("sent", []):
            ledger.record_sent(str(recipient))
        return ledger

    def __repr__(self):
        return (
            f"CampaignLedger({self.run_id}: sent={len(self._buckets[self.SENT])} "
            f"failed={len(self._buckets[self.FAILED])} "
            f"skipped={len(self._buckets[self.SKIPPED])})"
        )


def write_json_atomic(path: Path, data) -> None:
    """Write JSON via tmp file + fsync + os.replace()."""
    path = Path(path)
    tmp_path = path.parent / f".tmp.{os.getpid()}.{path.name}"
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(str(tmp_path), str(path))
    except OSError as e:
        try:
            tmp_path.unlink()
        except OSError:
            pass
        raise PersistenceFailure(f"Failed to write {path}: {e}") from e


class LedgerStore:
    """
    Directory of per-run ledger files.

    Single writer per run id; concurrent processes sharing a run id are
    not guarded against.
    """

    def __init__(self, directory):
        self.directory = Path(directory)

    def path_for(self, run_id: str) -> Path:
        return self.directory / f"{LEDGER_PREFIX}{run_id}{LEDGER_SUFFIX}"

    def exists(self, run_id: str) -> bool:
        return self.path_for(run_id).exists()

    def load(self, run_id: str) -> CampaignLedger:
        """
        Load the ledger for `run_id`, or an empty one if none is persisted.

        Raises PersistenceFailure if a file exists but can't be parsed.
        Treating a corrupt checkpoint as empty would re-send to everyone.
        """
        ledger = CampaignLedger(run_id)
        path = self.path_for(run_id)
        if not path.exists():
            logger.info(f"ledger_new: {run_id}")
            return ledger

        persisted = self._read(path)
        if persisted.run_id != run_id:
            raise PersistenceFailure(
                f"{path} holds run {persisted.run_id!r}, expected {run_id!r}"
            )
        ledger.merge(persisted)
        logger.info(f"ledger_resumed: {ledger!r}")
        return ledger

    def save(self, ledger: CampaignLedger) -> None:
        write_json_atomic(self.path_for(ledger.run_id), ledger.to_dict())
        logger.debug(f"ledger_checkpoint: {ledger!r}")

    def load_all(self) -> List[CampaignLedger]:
        """Every persisted ledger, ordered by run id."""
        if not self.directory.exists():
            return []
        ledgers = [
            self._read(path)
            for path in sorted(self.directory.glob(f"{LEDGER_PREFIX}*{LEDGER_SUFFIX}"))
        ]
        return sorted(ledgers, key=lambda l: l.run_id)

    @staticmethod
    def _read(path: Path) -> CampaignLedger:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return CampaignLedger.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise PersistenceFailure(f"Unreadable ledger {path}: {e}") from e
