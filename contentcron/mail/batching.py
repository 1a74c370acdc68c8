from __future__ import annotations

import logging
from typing import Callable, Iterator, Sequence, TypeVar

from contentcron.jobs.protocols import Mailer
from contentcron.mail.types import BatchResult, DeliveryReport

logger = logging.getLogger(__name__)

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    if size <= 0:
        raise ValueError("Batch size must be positive")
    for start in range(0, len(items), size):
        yield items[start : start + size]


def send_one_batch(mailer: Mailer, index: int, addresses: Sequence[str], subject: str, body: str) -> BatchResult:
    try:
        message_id = mailer.send_batch(addresses, subject, body)
    except Exception as exc:  # noqa: BLE001 - one bad batch must not stop the rest
        logger.warning("Mail batch %d (%d recipients) failed: %s", index, len(addresses), exc)
        return BatchResult(index=index, attempted=len(addresses), succeeded=0, error=str(exc) or type(exc).__name__)
    return BatchResult(index=index, attempted=len(addresses), succeeded=len(addresses), message_id=message_id)


def deliver_in_batches(
    mailer: Mailer,
    recipients: Sequence[str],
    *,
    subject: str,
    body: str,
    batch_size: int,
    before_batch: Callable[[int], None] | None = None,
) -> DeliveryReport:
    """Send ``subject``/``body`` to ``recipients`` one capped batch at a time.

    Batches run sequentially. A failed batch is recorded on the report and the
    remaining batches are still attempted. ``before_batch`` is called with the
    batch index ahead of every send; an exception it raises stops delivery.
    """
    effective_size = min(batch_size, mailer.max_recipients_per_call)
    report = DeliveryReport()
    for index, batch in enumerate(chunked(recipients, effective_size)):
        if before_batch is not None:
            before_batch(index)
        report.batches.append(send_one_batch(mailer, index, batch, subject, body))
    return report
