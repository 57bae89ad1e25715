"""
Name: Audit Retention Tests

Responsibilities:
  - Purge only by age (and read status), never by content
  - Permission gate (audit.purge) and input validation
  - The sweep itself is audited
"""

from datetime import datetime, timedelta, timezone

import pytest

from security_core.application import (
    AuditLogger,
    AuditRetentionJob,
    PermissionResolver,
)
from security_core.crosscutting.exceptions import ForbiddenError, ValidationError
from security_core.domain.audit import AuditAction, AuditQuery, NewAuditEntry
from security_core.infrastructure.repositories import (
    InMemoryAuditLogRepository,
    InMemoryPermissionOverrideRepository,
)

pytestmark = pytest.mark.unit

START = datetime(2026, 1, 1, tzinfo=timezone.utc)


class _Clock:
    def __init__(self):
        self.now = START

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return _Clock()


@pytest.fixture
def setup(clock, sealer, users):
    repo = InMemoryAuditLogRepository(clock=clock)
    logger = AuditLogger(repo, sealer, clock=clock)
    resolver = PermissionResolver(InMemoryPermissionOverrideRepository(), users, logger)
    job = AuditRetentionJob(repo, resolver, logger, default_days=30, clock=clock)
    return repo, logger, job


def _record(logger, principal, **metadata):
    return logger.record(
        NewAuditEntry(
            action=AuditAction.USER_UPDATED.value, category="users", metadata=metadata
        ),
        principal,
    )


def test_purge_requires_permission(setup, admin):
    _, _, job = setup
    with pytest.raises(ForbiddenError):
        job.run(admin)


@pytest.mark.parametrize("days", [0, -1, True])
def test_purge_rejects_invalid_age(setup, superadmin, days):
    _, _, job = setup
    with pytest.raises(ValidationError):
        job.run(superadmin, days)


def test_purge_only_read_keeps_unread_entries(setup, clock, superadmin, admin):
    _, logger, job = setup
    old_read = _record(logger, admin, kind="old-read")
    _record(logger, admin, kind="old-unread")
    logger.mark_read([old_read.id])

    clock.now = START + timedelta(days=40)
    _record(logger, admin, kind="recent")
    result = job.run(superadmin)

    assert result.deleted == 1
    assert result.only_read is True
    assert result.cutoff == clock.now - timedelta(days=30)
    kinds = {e.metadata.get("kind") for e in logger.query(limit=100).entries}
    assert kinds >= {"old-unread", "recent"}
    assert "old-read" not in kinds


def test_purge_including_unread(setup, clock, superadmin, admin):
    _, logger, job = setup
    _record(logger, admin, kind="old-1")
    _record(logger, admin, kind="old-2")

    clock.now = START + timedelta(days=10)
    result = job.run(superadmin, 5, only_read=False)

    assert result.deleted == 2


def test_purge_is_audited(setup, clock, superadmin):
    _, logger, job = setup
    clock.now = START + timedelta(days=1)
    job.run(superadmin, 1, only_read=False)

    page = logger.query(AuditQuery(action_contains="audit.purged"))
    assert page.total == 1
    entry = page.entries[0]
    assert entry.category == "system"
    assert entry.user_id == superadmin.user_id
    assert entry.metadata["deleted"] == 0
    assert entry.metadata["olderThanDays"] == 1
    assert entry.metadata["onlyRead"] is False
