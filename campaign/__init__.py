"""
Bulk Messaging Campaign — Async Architecture

Delivers one message to every recipient in a list, exactly once across
restarts, with randomized pacing and a checkpointed outcome ledger.

Modules:
    ledger.py        — CampaignLedger value + atomic JSON LedgerStore
    selector.py      — Pending recipients = list minus ledger
    pacing.py        — Randomized inter-send delay
    delivery.py      — Validate + bounded-retry send of one recipient
    orchestrator.py  — Sequential run loop, checkpointing, graceful shutdown
    reporter.py      — Multi-day aggregate + completion notice
    transport.py     — Transport interface, HTTP gateway client, dry-run
    messages.py      — Message payload + phrase spinning
    audit.py         — Append-only outcome audit trail
    errors.py        — Fatal failure types
"""
