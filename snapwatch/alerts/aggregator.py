"""Alert aggregation — groups alert-worthy outcomes per recipient."""

from __future__ import annotations

import logging
from typing import Iterable

from snapwatch.models.config import Recipient
from snapwatch.models.outcome import Action, AlertBatch, BaselineNotice, Outcome

logger = logging.getLogger(__name__)


def aggregate(outcomes: Iterable[tuple[Recipient, Outcome]]) -> dict[Recipient, AlertBatch]:
    """Fold (recipient, outcome) pairs into one AlertBatch per recipient.

    An outcome is kept when it is a regression beyond tolerance or carries
    diagnostics. Recipients left with nothing to report get no key at all.
    Recipient and outcome order follow the input order.
    """
    batches: dict[Recipient, AlertBatch] = {}
    evaluated: set[Recipient] = set()

    for recipient, outcome in outcomes:
        evaluated.add(recipient)
        if not outcome.is_alert_worthy:
            logger.debug("No alert for %s [%s] (%s)",
                         outcome.target_url, outcome.viewport.name, outcome.action.value)
            continue
        batch = batches.get(recipient)
        if batch is None:
            batch = batches[recipient] = AlertBatch(recipient=recipient)
        batch.outcomes.append(outcome)

    if not evaluated:
        logger.info("No monitors were evaluated")
    elif not batches:
        logger.info("No alerts to send. All %d recipient(s) healthy.", len(evaluated))
    else:
        logger.warning("%d of %d recipient(s) have alerts (%d issue(s))",
                       len(batches), len(evaluated), sum(len(b.outcomes) for b in batches.values()))
    return batches


def collect_baseline_events(outcomes: Iterable[tuple[Recipient, Outcome]]) -> dict[Recipient, BaselineNotice]:
    """Group successful baseline adoptions per recipient, in input order."""
    notices: dict[Recipient, BaselineNotice] = {}
    for recipient, outcome in outcomes:
        if outcome.action != Action.ADOPT_BASELINE:
            continue
        notices.setdefault(recipient, BaselineNotice(recipient=recipient)).outcomes.append(outcome)
    return notices
