"""
Unit tests for campaign/selector.py
"""

import os
import unittest
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from campaign.ledger import CampaignLedger
from campaign.selector import history_exclusions, pending, pending_for_run


def make_ledger(run_id="r", sent=(), failed=(), skipped=()):
    ledger = CampaignLedger(run_id)
    for rid in sent:
        ledger.record_sent(rid)
    for rid in failed:
        ledger.record_failed(rid)
    for rid in skipped:
        ledger.record_skipped(rid)
    return ledger


class TestPending(unittest.TestCase):

    def test_empty_ledger_returns_everything_in_order(self):
        self.assertEqual(pending(["C", "A", "B"], make_ledger()), ["C", "A", "B"])

    def test_excludes_sent_and_failed(self):
        ledger = make_ledger(sent=["A"], failed=["C"])
        self.assertEqual(pending(["A", "B", "C", "D"], ledger), ["B", "D"])

    def test_does_not_exclude_skipped(self):
        ledger = make_ledger(skipped=["B"])
        self.assertEqual(pending(["A", "B"], ledger), ["A", "B"])

    def test_extra_exclusions(self):
        self.assertEqual(pending(["A", "B", "C"], make_ledger(), exclude={"B"}), ["A", "C"])

    def test_duplicates_collapsed(self):
        self.assertEqual(pending(["A", "B", "A", "C", "B"], make_ledger()), ["A", "B", "C"])

    def test_exact_string_match_only(self):
        ledger = make_ledger(sent=["212600000000"])
        self.assertEqual(pending(["+212600000000", "212600000000"], ledger), ["+212600000000"])

    def test_retry_failed_reincludes_failed(self):
        ledger = make_ledger(sent=["A"], failed=["B"])
        self.assertEqual(pending(["A", "B", "C"], ledger, retry_failed=True), ["B", "C"])

    def test_everything_done(self):
        ledger = make_ledger(sent=["A", "B"], failed=["C"])
        self.assertEqual(pending(["A", "B", "C"], ledger), [])


class TestHistoryExclusions(unittest.TestCase):

    def test_collects_sent_and_failed_from_other_runs(self):
        history = [
            make_ledger("2024-01-01", sent=["A"], failed=["B"], skipped=["C"]),
            make_ledger("2024-01-02", sent=["D"]),
        ]
        self.assertEqual(history_exclusions(history, "2024-01-03"), {"A", "B", "D"})

    def test_ignores_current_run(self):
        history = [make_ledger("2024-01-01", sent=["A"])]
        self.assertEqual(history_exclusions(history, "2024-01-01"), set())

    def test_without_failed(self):
        history = [make_ledger("2024-01-01", sent=["A"], failed=["B"])]
        self.assertEqual(history_exclusions(history, "x", include_failed=False), {"A"})


class TestPendingForRun(unittest.TestCase):

    def test_new_day_does_not_resend_yesterdays_recipients(self):
        yesterday = make_ledger("2024-01-01", sent=["A"], failed=["B"], skipped=["C"])
        today = make_ledger("2024-01-02")
        result = pending_for_run(["A", "B", "C", "D"], today, history=[yesterday])
        # skipped yesterday → retried today
        self.assertEqual(result, ["C", "D"])

    def test_same_run_restart_does_not_retry_skipped(self):
        today = make_ledger("2024-01-02", sent=["A"], skipped=["B"])
        self.assertEqual(pending_for_run(["A", "B", "C"], today, history=[today]), ["C"])

    def test_retry_failed_across_runs(self):
        yesterday = make_ledger("2024-01-01", failed=["B"])
        today = make_ledger("2024-01-02", failed=["C"])
        result = pending_for_run(["B", "C"], today, history=[yesterday], retry_failed=True)
        self.assertEqual(result, ["B", "C"])


if __name__ == "__main__":
    unittest.main()
