"""
Recipient Selector — Which recipients still need the message.

pending = all_recipients − (ledger.sent ∪ ledger.failed ∪ exclude)

Skipped recipients (failed validation) are NOT excluded here: validation
can fail transiently (the number joins the network later), so they get
another chance unless the caller passes them in `exclude`.
"""

import logging
from typing import Iterable, List, Sequence

from campaign.ledger import CampaignLedger

logger = logging.getLogger("broadcast.selector")


def pending(
    all_recipients: Sequence[str],
    ledger: CampaignLedger,
    exclude: Iterable[str] = (),
    retry_failed: bool = False,
) -> List[str]:
    """
    Recipients still to contact, in the order of `all_recipients`.

    Duplicate ids in the input are collapsed to their first occurrence so
    one pass never attempts the same recipient twice.

    With `retry_failed`, ids in ledger.failed are offered again instead of
    being treated as permanently done.
    """
    done = set(ledger.sent) if retry_failed else ledger.completed()
    done |= set(exclude)
    seen = set()
    result = []
    for recipient in all_recipients:
        if recipient in done or recipient in seen:
            continue
        seen.add(recipient)
        result.append(recipient)

    logger.info(
        f"pending_selected: {len(result)}/{len(all_recipients)} "
        f"(sent={ledger.total}, failed={len(ledger.failed)}, excluded={len(done)})"
    )
    return result


def history_exclusions(
    ledgers: Iterable[CampaignLedger],
    current_run_id: str,
    include_failed: bool = True,
) -> set:
    """
    Ids already finished in other runs.

    A new run id starts with an empty ledger, so without this a recipient
    delivered yesterday would be messaged again today.
    """
    excluded = set()
    for ledger in ledgers:
        if ledger.run_id == current_run_id:
            continue
        excluded.update(ledger.sent)
        if include_failed:
            excluded.update(ledger.failed)
    return excluded


def pending_for_run(
    all_recipients: Sequence[str],
    ledger: CampaignLedger,
    history: Iterable[CampaignLedger] = (),
    retry_failed: bool = False,
) -> List[str]:
    """
    Pending set for a run, taking earlier runs into account.

    Excludes ids finished in other runs, and ids this run already skipped
    (a skipped recipient is retried by the next run, not by a restart of
    the same one).
    """
    exclude = history_exclusions(history, ledger.run_id, include_failed=not retry_failed)
    exclude |= set(ledger.skipped)
    return pending(all_recipients, ledger, exclude=exclude, retry_failed=retry_failed)
