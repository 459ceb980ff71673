"""
Periodic payment housekeeping.

``expire_stale_payments`` is scheduled by celery-beat (see
CELERY_BEAT_SCHEDULE) and can be queued by hand with ``.delay()``.
"""

from __future__ import annotations

import logging

from celery import shared_task

from payments.ledger import PaymentLedger

logger = logging.getLogger(__name__)

EXPIRY_BATCH_SIZE = 500


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": 3},
    acks_late=True,
)
def expire_stale_payments(self, batch_size: int = EXPIRY_BATCH_SIZE) -> dict:
    """
    Expire PENDING payments whose ``expires_at`` has passed.

    The ledger writes each one with a compare-and-set against PENDING,
    so a webhook completing the payment mid-run wins and is not undone.
    """
    logger.info(
        "Expiring stale payments",
        extra={"task_id": self.request.id, "batch_size": batch_size},
    )
    expired = PaymentLedger.expire_stale(batch_size=batch_size)
    logger.info(
        "Stale payment expiry finished",
        extra={"task_id": self.request.id, "expired_count": expired},
    )
    return {"status": "completed", "expired_count": expired}
