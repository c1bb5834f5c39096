from __future__ import annotations

import logging
import os
import time

from sqlalchemy.orm import Session

from loyalfy.db import SessionLocal
from loyalfy.services.email_backend import build_default_backend
from loyalfy.services.notification_service import DeliveryStats, deliver_pending


logger = logging.getLogger(__name__)


def drain_once(
    db: Session,
    backend,
    *,
    worker_id: str = "worker",
    batch_size: int = 20,
    lock_ttl_seconds: int = 300,
    max_attempts: int | None = None,
) -> DeliveryStats:
    stats = deliver_pending(
        db,
        backend,
        limit=batch_size,
        max_attempts=max_attempts,
        worker_id=worker_id,
        lock_ttl_seconds=lock_ttl_seconds,
    )

    if stats.processed:
        logger.info(
            "notification batch delivered",
            extra={"worker_id": worker_id, "processed": stats.processed, "sent": stats.sent, "failed": stats.failed},
        )
    return stats


def run_worker_loop(
    *,
    worker_id: str | None = None,
    batch_size: int = 20,
    lock_ttl_seconds: int = 300,
    idle_sleep_seconds: int = 5,
):
    if worker_id is None:
        worker_id = os.getenv("NOTIFICATION_WORKER_ID") or os.getenv("HOSTNAME") or "worker"

    backend = build_default_backend()
    if backend is None:
        raise RuntimeError("SMTP is not configured; set SMTP_HOST and SMTP_FROM to run the notification worker")

    logger.info(
        "notification worker started",
        extra={"worker_id": worker_id, "batch_size": batch_size, "lock_ttl_seconds": lock_ttl_seconds},
    )

    while True:
        db = SessionLocal()
        try:
            stats = drain_once(
                db,
                backend,
                worker_id=worker_id,
                batch_size=batch_size,
                lock_ttl_seconds=lock_ttl_seconds,
            )
        finally:
            db.close()

        if not stats.processed:
            time.sleep(idle_sleep_seconds)


def main():
    batch_size = int(os.getenv("NOTIFICATION_WORKER_BATCH_SIZE") or "20")
    lock_ttl_seconds = int(os.getenv("NOTIFICATION_WORKER_LOCK_TTL_SECONDS") or "300")
    idle_sleep_seconds = int(os.getenv("NOTIFICATION_WORKER_IDLE_SLEEP_SECONDS") or "5")

    run_worker_loop(
        batch_size=batch_size,
        lock_ttl_seconds=lock_ttl_seconds,
        idle_sleep_seconds=idle_sleep_seconds,
    )


if __name__ == "__main__":
    main()
