"""
Outcome audit trail.

One line per recipient outcome, appended to the audit log:
    [2024-01-01T10:00:00.000000+00:00] SENT:212600000000 to=212600000000@c.us attempts=1
"""

import logging
from datetime import datetime, timezone

from campaign.delivery import Outcome


class AuditTrail:

    def __init__(self, audit_logger: logging.Logger = None):
        self.logger = audit_logger or logging.getLogger("broadcast.audit")

    def record(self, run_id: str, outcome: Outcome):
        timestamp = datetime.now(timezone.utc).isoformat()
        self.logger.info(
            f"[{timestamp}] {outcome.kind}:{outcome.recipient} run={run_id} {outcome.detail}"
        )
