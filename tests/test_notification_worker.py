from datetime import timedelta

from loyalfy.db import utcnow
from loyalfy.models.notification_outbox import NotificationOutbox
from loyalfy.services.email_backend import InMemoryEmailBackend
from loyalfy.services.notification_service import (
    claim_pending,
    deliver_notification,
    deliver_outbox_ids,
    deliver_pending,
    notify,
)
from loyalfy.services.notification_worker import drain_once


def test_drain_sends_pending_rows_and_releases_locks(db, merchant, customer):
    notify(db, customer, merchant, "welcome", 50)
    notify(db, customer, merchant, "birthday", 20)
    db.commit()
    backend = InMemoryEmailBackend()

    stats = drain_once(db, backend, worker_id="w1")

    assert (stats.processed, stats.sent) == (2, 2)
    assert len(backend.sent) == 2
    for row in db.query(NotificationOutbox).all():
        assert row.status == "SENT"
        assert row.locked_at is None


def test_freshly_locked_rows_are_not_claimed_twice(db, merchant, customer):
    notify(db, customer, merchant, "welcome", 50)
    db.commit()
    now = utcnow()

    first = claim_pending(db, now=now, worker_id="w1", batch_size=10, lock_ttl_seconds=300)
    db.commit()
    second = claim_pending(db, now=now, worker_id="w2", batch_size=10, lock_ttl_seconds=300)

    assert len(first) == 1
    assert second == []

    # stale lock is reclaimed
    later = claim_pending(
        db, now=now + timedelta(seconds=301), worker_id="w2", batch_size=10, lock_ttl_seconds=300
    )
    assert len(later) == 1
    assert later[0].locked_by == "w2"


def test_post_commit_delivery_skips_rows_claimed_by_the_worker(db, merchant, customer):
    row = notify(db, customer, merchant, "welcome", 50)
    db.commit()
    backend = InMemoryEmailBackend()

    claimed = claim_pending(db, now=utcnow(), worker_id="w1", batch_size=10, lock_ttl_seconds=300)
    db.commit()
    assert [r.id for r in claimed] == [row.id]

    stats = deliver_pending(db, backend, ids=[row.id])
    assert stats.processed == 0
    assert backend.sent == []

    # the worker finishes its own claim; nothing is left for a second pass
    assert deliver_notification(db, claimed[0], backend)
    claimed[0].locked_at = None
    claimed[0].locked_by = None
    db.commit()

    assert deliver_pending(db, backend, ids=[row.id]).processed == 0
    assert len(backend.sent) == 1


def test_post_commit_delivery_claims_and_releases_its_rows(db, merchant, customer):
    row = notify(db, customer, merchant, "welcome", 50)
    db.commit()
    backend = InMemoryEmailBackend()

    stats = deliver_pending(db, backend, ids=[row.id])

    assert (stats.processed, stats.sent) == (1, 1)
    db.refresh(row)
    assert row.status == "SENT"
    assert row.locked_at is None
    assert row.locked_by is None
    assert drain_once(db, backend).processed == 0
    assert len(backend.sent) == 1


def test_deliver_outbox_ids_ignores_empty_batches():
    assert deliver_outbox_ids([]) is None
