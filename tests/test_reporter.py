"""
Unit tests for campaign/reporter.py
"""

import asyncio
import json
import os
import shutil
import tempfile
import unittest
from unittest.mock import AsyncMock
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from campaign.errors import PersistenceFailure, TransportError
from campaign.ledger import CampaignLedger
from campaign.reporter import Reporter, SummaryEntry, aggregate, format_report


def run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def ledger_with(run_id, sent=0, failed=0, skipped=0):
    ledger = CampaignLedger(run_id)
    for i in range(sent):
        ledger.record_sent(f"s{i}")
    for i in range(failed):
        ledger.record_failed(f"f{i}")
    for i in range(skipped):
        ledger.record_skipped(f"k{i}")
    return ledger


class TestAggregate(unittest.TestCase):

    def test_one_entry_per_run_in_order(self):
        summary = aggregate([ledger_with("2024-01-02", sent=3), ledger_with("2024-01-01", sent=5)])
        self.assertEqual(summary, [SummaryEntry("2024-01-01", 5), SummaryEntry("2024-01-02", 3)])

    def test_empty(self):
        self.assertEqual(aggregate([]), [])

    def test_total_counts_sent_only(self):
        summary = aggregate([ledger_with("r", sent=2, failed=4, skipped=1)])
        self.assertEqual(summary[0].total, 2)


class TestFormatReport(unittest.TestCase):

    def test_counts_and_all_time_total(self):
        ledger = ledger_with("2024-01-02", sent=3, failed=1, skipped=2)
        summary = [SummaryEntry("2024-01-01", 5), SummaryEntry("2024-01-02", 3)]

        text = format_report(summary, ledger)

        self.assertIn("2024-01-02", text)
        self.assertIn("Sent: 3", text)
        self.assertIn("Failed: 1", text)
        self.assertIn("Skipped: 2", text)
        self.assertIn("All-time sent: 8 across 2 run(s)", text)


class TestReporter(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.summary_path = os.path.join(self.tmpdir, "ledgers", "summary.json")
        self.transport = AsyncMock()
        self.transport.resolve_recipient = AsyncMock(return_value="OP@c.us")
        self.transport.send = AsyncMock()

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_refresh_writes_summary_file(self):
        reporter = Reporter(self.transport, self.summary_path, "OP")
        reporter.refresh([ledger_with("2024-01-01", sent=5), ledger_with("2024-01-02", sent=3)])

        with open(self.summary_path) as f:
            self.assertEqual(json.load(f), [
                {"runId": "2024-01-01", "total": 5},
                {"runId": "2024-01-02", "total": 3},
            ])

    def test_refresh_fails_loudly(self):
        blocker = os.path.join(self.tmpdir, "file")
        with open(blocker, "w") as f:
            f.write("")
        reporter = Reporter(self.transport, os.path.join(blocker, "summary.json"))
        with self.assertRaises(PersistenceFailure):
            reporter.refresh([])

    def test_report_sends_to_operator(self):
        reporter = Reporter(self.transport, self.summary_path, "OP")
        ledger = ledger_with("r", sent=1)

        self.assertTrue(run_async(reporter.report([SummaryEntry("r", 1)], ledger)))

        self.transport.resolve_recipient.assert_awaited_once_with("OP")
        chat_id, payload = self.transport.send.await_args.args
        self.assertEqual(chat_id, "OP@c.us")
        self.assertIn("Sent: 1", payload.text)

    def test_no_operator_configured(self):
        reporter = Reporter(self.transport, self.summary_path, "")
        self.assertFalse(run_async(reporter.report([], ledger_with("r"))))
        self.transport.send.assert_not_awaited()

    def test_unregistered_operator(self):
        self.transport.resolve_recipient.return_value = None
        reporter = Reporter(self.transport, self.summary_path, "OP")
        self.assertFalse(run_async(reporter.report([], ledger_with("r"))))
        self.transport.send.assert_not_awaited()

    def test_delivery_failure_is_contained(self):
        self.transport.send.side_effect = TransportError("down")
        reporter = Reporter(self.transport, self.summary_path, "OP")
        self.assertFalse(run_async(reporter.report([], ledger_with("r"))))
        self.assertFalse(os.path.exists(self.summary_path))

    def test_unexpected_error_is_contained(self):
        self.transport.resolve_recipient.side_effect = RuntimeError("boom")
        reporter = Reporter(self.transport, self.summary_path, "OP")
        self.assertFalse(run_async(reporter.report([], ledger_with("r"))))


if __name__ == "__main__":
    unittest.main()
