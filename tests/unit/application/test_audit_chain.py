"""
Name: Audit Hash Chain Tests

Responsibilities:
  - Chain links (previous_hash -> current_hash) and HMAC signatures
  - Tamper detection by content, link and signature
  - Canonical payload stability
"""

from dataclasses import replace
from datetime import datetime, timezone

import pytest

from security_core.application.audit_chain import AuditSealer, canonical_payload
from security_core.domain.audit import GENESIS_HASH, AuditAction, NewAuditEntry

pytestmark = pytest.mark.unit


def _entries(audit_logger, principal, n=3):
    for i in range(n):
        audit_logger.record(
            NewAuditEntry(
                action=AuditAction.USER_UPDATED.value,
                category="users",
                metadata={"i": i},
            ),
            principal,
        )


def test_entries_are_linked(audit_logger, audit_repo, admin):
    _entries(audit_logger, admin)
    chain = list(audit_repo.iter_chain())

    assert chain[0].previous_hash == GENESIS_HASH
    for prev, cur in zip(chain, chain[1:]):
        assert cur.previous_hash == prev.current_hash
    assert all(len(e.signature) == 64 for e in chain)


def test_intact_chain_verifies(audit_logger, admin):
    _entries(audit_logger, admin, n=4)
    result = audit_logger.verify_chain()

    assert result.valid is True
    assert result.total_checked == 4
    assert result.corrupted_id is None


def test_empty_chain_is_valid(audit_logger):
    result = audit_logger.verify_chain()
    assert result.valid is True
    assert result.total_checked == 0


def test_content_tampering_is_detected(audit_logger, audit_repo, sealer, admin):
    _entries(audit_logger, admin)
    chain = list(audit_repo.iter_chain())
    chain[1] = replace(chain[1], metadata={"i": 99})

    result = sealer.verify_chain(chain)

    assert result.valid is False
    assert result.corrupted_id == chain[1].id
    assert result.reason == "hash_mismatch"


def test_removed_entry_breaks_the_link(audit_logger, audit_repo, sealer, admin):
    _entries(audit_logger, admin)
    chain = list(audit_repo.iter_chain())
    del chain[1]

    result = sealer.verify_chain(chain)

    assert result.valid is False
    assert result.reason == "broken_link"
    assert result.corrupted_id == chain[1].id


def test_forged_hash_without_key_fails_signature(audit_logger, audit_repo, admin):
    _entries(audit_logger, admin, n=1)
    stored = next(audit_repo.iter_chain())
    forger = AuditSealer("attacker-key")
    forged = replace(stored, signature=forger.sign(stored.current_hash))

    result = AuditSealer("audit-signing-key-for-tests").verify_chain([forged])

    assert result.valid is False
    assert result.reason == "signature_mismatch"


def test_sign_without_key_is_empty():
    sealer = AuditSealer("")
    assert sealer.sign("abc") == ""


def test_canonical_payload_is_order_independent():
    created = datetime(2026, 1, 1, 12, tzinfo=timezone.utc)
    common = dict(
        action="user.updated",
        category="users",
        user_id="u",
        target_id=None,
        target_type=None,
        ip_address=None,
        user_agent=None,
        created_at=created,
        previous_hash=GENESIS_HASH,
    )
    a = canonical_payload(metadata={"a": 1, "b": 2}, **common)
    b = canonical_payload(metadata={"b": 2, "a": 1}, **common)
    assert a == b
