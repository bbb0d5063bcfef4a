#!/usr/bin/env python3
"""
Bulk Messaging Campaign
=======================

Sends one message to every contact, exactly once across restarts, with a
randomized pause between sends. Safe to kill and re-run: progress is
checkpointed after every recipient.

Usage:
    python main.py                 # same as `run`
    python main.py run
    python main.py run --dry-run
    python main.py run --run-id 2024-01-01 --contacts other.json
    python main.py summary         # rebuild the multi-day summary, no sends
    python main.py status          # counts for today's run

Exit codes: 0 on completion / nothing to do / graceful shutdown,
1 on startup, persistence or transport-readiness failure.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from datetime import datetime
from typing import List

import pytz

import config
from campaign.audit import AuditTrail
from campaign.delivery import DeliveryAttempter
from campaign.errors import PersistenceFailure, StartupFailure, TransportError
from campaign.ledger import LedgerStore
from campaign.messages import build_payload_factory
from campaign.orchestrator import CampaignOrchestrator, install_signal_handlers
from campaign.pacing import PacingPolicy
from campaign.reporter import Reporter, aggregate, write_summary
from campaign.selector import pending_for_run
from campaign.transport import DryRunTransport, GatewayTransport, Transport
from utils.logging_utils import setup_audit_log, setup_logging

logger = logging.getLogger("broadcast.main")

COMMANDS = ("run", "summary", "status")


def current_run_id(timezone_name: str = None) -> str:
    """Today's date (YYYY-MM-DD) in the campaign's timezone."""
    tz = pytz.timezone(timezone_name or config.TARGET_TIMEZONE)
    return datetime.now(tz).strftime("%Y-%m-%d")


def load_recipients(path: str) -> List[str]:
    """
    Read the contact list: {"contacts": [...]} or a bare JSON list.

    Ids are used exactly as written (no trimming or number conversion), so
    every entry must be a non-empty string. Raises StartupFailure if the
    file is missing or malformed.
    """
    if not os.path.exists(path):
        raise StartupFailure(f"Contacts file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise StartupFailure(f"Cannot read contacts file {path}: {e}") from e

    contacts = data.get("contacts") if isinstance(data, dict) else data
    if not isinstance(contacts, list):
        raise StartupFailure(f"{path} must contain a list of contacts")
    for index, contact in enumerate(contacts):
        if not isinstance(contact, str) or not contact:
            raise StartupFailure(
                f"{path}: contact #{index + 1} must be a non-empty string, got {contact!r}"
            )
    return contacts


def ledger_dir(dry_run: bool) -> str:
    # a dry run must never mark real recipients as sent
    return os.path.join(config.LEDGER_DIR, "dry-run") if dry_run else config.LEDGER_DIR


def summary_path(dry_run: bool) -> str:
    if dry_run:
        return os.path.join(ledger_dir(True), os.path.basename(config.SUMMARY_FILE))
    return config.SUMMARY_FILE


def build_transport(dry_run: bool) -> Transport:
    if dry_run:
        return DryRunTransport()
    return GatewayTransport(
        base_url=config.GATEWAY_URL,
        session=config.GATEWAY_SESSION,
        api_key=config.GATEWAY_API_KEY,
        timeout_seconds=config.GATEWAY_TIMEOUT_SECONDS,
        pairing_timeout_seconds=config.PAIRING_TIMEOUT_SECONDS,
        poll_interval_seconds=config.POLL_INTERVAL_SECONDS,
        qr_path=config.QR_PATH,
    )


async def wait_until_ready(transport: Transport, shutdown: asyncio.Event) -> bool:
    """
    Two-phase startup: paired, then ready. Returns False if shutdown was
    requested first (e.g. Ctrl-C while waiting for a QR scan).
    """
    async def _startup():
        await transport.connect()
        await transport.await_pairing()
        await transport.await_ready()

    startup = asyncio.ensure_future(_startup())
    stopper = asyncio.ensure_future(shutdown.wait())
    done, _ = await asyncio.wait({startup, stopper}, return_when=asyncio.FIRST_COMPLETED)

    if startup in done:
        stopper.cancel()
        startup.result()
        return True

    startup.cancel()
    await asyncio.gather(startup, return_exceptions=True)
    return False


async def run_campaign(args, recipients: List[str], payload_factory, pacing: PacingPolicy) -> int:
    shutdown = asyncio.Event()
    install_signal_handlers(shutdown)

    run_id = args.run_id or current_run_id()
    transport = build_transport(args.dry_run)
    store = LedgerStore(ledger_dir(args.dry_run))
    audit = AuditTrail(setup_audit_log(config.AUDIT_LOG_FILE))

    try:
        if not await wait_until_ready(transport, shutdown):
            logger.info("Shutdown requested before the session was ready")
            return 0

        orchestrator = CampaignOrchestrator(
            store=store,
            attempter=DeliveryAttempter(
                transport,
                max_retries=config.MAX_RETRIES,
                retry_delay_seconds=config.RETRY_DELAY_SECONDS,
            ),
            pacing=pacing,
            reporter=Reporter(transport, summary_path(args.dry_run), config.OPERATOR_ID),
            audit=audit,
            retry_failed=config.RETRY_FAILED_ON_RESTART,
        )
        result = await orchestrator.run(run_id, recipients, payload_factory, shutdown)
        logger.info(
            f"Run {run_id} finished: {result.ledger!r}"
            f"{' (interrupted)' if result.interrupted else ''}"
        )
        return 0
    finally:
        await transport.close()


def cmd_run(args) -> int:
    print("=" * 60)
    print("  Bulk Messaging Campaign")
    print("=" * 60)
    print()

    # Pre-flight checks
    try:
        recipients = load_recipients(args.contacts or config.CONTACTS_FILE)
        print(f"✅ {len(recipients)} contacts loaded")

        payload_factory = build_payload_factory(
            static_text=config.MESSAGE_TEXT,
            link=config.MESSAGE_LINK,
            phrases_file=config.PHRASES_FILE,
            image_path=config.IMAGE_PATH,
        )
        print("✅ Message source ready")

        try:
            pacing = PacingPolicy(config.DELAY_MIN_MS, config.DELAY_MAX_MS)
        except ValueError as e:
            raise StartupFailure(f"Invalid pacing window: {e}") from e
        if config.MAX_RETRIES < 1:
            raise StartupFailure(f"MAX_RETRIES must be >= 1, got {config.MAX_RETRIES}")
        if config.RETRY_DELAY_SECONDS * 1000 >= config.DELAY_MIN_MS:
            raise StartupFailure(
                f"RETRY_DELAY_SECONDS ({config.RETRY_DELAY_SECONDS}s) must be shorter than "
                f"DELAY_MIN_MS ({config.DELAY_MIN_MS}ms)"
            )
        print(f"✅ Pacing {config.DELAY_MIN_MS / 1000:.0f}-{config.DELAY_MAX_MS / 1000:.0f}s, "
              f"{config.MAX_RETRIES} attempts per recipient")
        print(f"✅ Transport: {'DRY RUN' if args.dry_run else config.GATEWAY_URL}")
        print()
    except StartupFailure as e:
        print(f"❌ Pre-flight check failed: {e}")
        return 1

    try:
        return asyncio.run(run_campaign(args, recipients, payload_factory, pacing))
    except PersistenceFailure as e:
        logger.critical(f"Ledger persistence failed — stopping: {e}")
        return 1
    except TransportError as e:
        logger.critical(f"Transport never became ready: {e}")
        return 1


def cmd_summary(args) -> int:
    try:
        store = LedgerStore(ledger_dir(args.dry_run))
        summary = aggregate(store.load_all())
        write_summary(summary_path(args.dry_run), summary)
    except PersistenceFailure as e:
        print(f"❌ {e}")
        return 1

    print(f"\n📊 Campaign summary ({len(summary)} runs)\n")
    for entry in summary:
        print(f"   {entry.run_id}: {entry.total} sent")
    print(f"\n   Total: {sum(e.total for e in summary)}")
    return 0


def cmd_status(args) -> int:
    run_id = args.run_id or current_run_id()
    try:
        store = LedgerStore(ledger_dir(args.dry_run))
        ledger = store.load(run_id)
        history = store.load_all()
        recipients = load_recipients(args.contacts or config.CONTACTS_FILE)
    except (PersistenceFailure, StartupFailure) as e:
        print(f"❌ {e}")
        return 1

    remaining = pending_for_run(
        recipients, ledger, history=history, retry_failed=config.RETRY_FAILED_ON_RESTART
    )
    print(f"\n📊 Run {run_id}")
    print(f"   Sent:    {ledger.total}")
    print(f"   Failed:  {len(ledger.failed)}")
    print(f"   Skipped: {len(ledger.skipped)}")
    print(f"   Pending: {len(remaining)} of {len(recipients)} contacts")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Paced, resumable bulk messaging campaign",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py run --dry-run
  python main.py run
  python main.py summary
  python main.py status --run-id 2024-01-01
        """
    )
    subparsers = parser.add_subparsers(dest="command")

    for name, help_text in (
        ("run", "Send to every pending contact"),
        ("summary", "Rebuild the multi-day summary"),
        ("status", "Show counts for a run"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--dry-run", action="store_true", default=config.DRY_RUN,
                         help="Resolve and send in memory only (separate ledger)")
        if name != "summary":
            sub.add_argument("--run-id", help="Run identifier (default: today's date)")
            sub.add_argument("--contacts", help=f"Contacts file (default: {config.CONTACTS_FILE})")

    return parser


def main(argv=None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    # bare `main.py [--dry-run ...]` means `run`
    if not argv or argv[0] not in COMMANDS + ("-h", "--help"):
        argv = ["run"] + argv
    args = build_parser().parse_args(argv)

    setup_logging(config.LOG_LEVEL, config.LOG_FILE)

    if args.command == "summary":
        return cmd_summary(args)
    if args.command == "status":
        return cmd_status(args)
    return cmd_run(args)


if __name__ == "__main__":
    sys.exit(main())
