"""
Name: SecurityCore Facade Tests

Responsibilities:
  - One call per core operation reaches the right component
  - End-to-end flows across components (grant -> audit -> verify)
"""

import pytest

from security_core.crosscutting.exceptions import ForbiddenError
from security_core.domain.alerts import AlertSeverity, SecurityAlert
from security_core.domain.audit import AuditAction, AuditCategory, AuditQuery, NewAuditEntry
from security_core.domain.identity import NetworkOrigin
from security_core.domain.rate_limit import FailurePolicy, OperationClass

pytestmark = pytest.mark.unit


def test_rate_limit_operations(core):
    results = [core.check_rate_limit("ip:10.0.0.1", 2, 60_000) for _ in range(3)]
    assert [r.allowed for r in results] == [True, True, False]

    core.reset_rate_limit("ip:10.0.0.1")
    assert core.check_rate_limit("ip:10.0.0.1", 2, 60_000).allowed is True

    login = core.check_operation_rate_limit(OperationClass.LOGIN, "ana@example.com")
    assert login.limit == 5


def test_rate_limit_failure_policy_is_passed_through(core):
    result = core.check_rate_limit(
        "ip:10.0.0.2", 1, 1_000, failure_policy=FailurePolicy.FAIL_OPEN
    )
    assert result.allowed is True


def test_permission_change_is_audited_and_chain_verifies(core, superadmin):
    origin = NetworkOrigin(ip_address="10.0.0.9", user_agent="pytest")

    core.grant_permission(superadmin, "user-1", "analytics.view", origin=origin)
    assert core.has_permission("user-1", "USER", "analytics.view") is True

    core.revoke_permission(superadmin, "user-1", "dashboard.view", origin=origin)
    assert core.has_permission("user-1", "USER", "dashboard.view") is False

    assert core.reset_permission(superadmin, "user-1", "dashboard.view") is True
    assert core.has_permission("user-1", "USER", "dashboard.view") is True

    page = core.query_audit_log(AuditQuery(category=AuditCategory.SECURITY))
    assert [e.action for e in page.entries] == [
        "permission.reset",
        "permission.revoked",
        "permission.granted",
    ]
    granted = page.entries[-1]
    assert granted.ip_address == "10.0.0.9"
    assert granted.metadata == {
        "permissionCode": "analytics.view",
        "targetRole": "USER",
        "previousState": None,
    }
    assert core.verify_audit_chain().valid is True


def test_authorize_explains_denials(core, regular_user):
    decision = core.authorize(regular_user, "users.delete")

    assert not decision
    assert decision.reason.value == "insufficient_role"


def test_effective_permissions(core):
    effective = core.get_effective_permissions("mod-1", "MODERATOR")

    assert effective["analytics.view"].granted is True
    assert effective["users.view"].granted is False


def test_audit_operations(core, admin, superadmin):
    saved = core.create_audit_log(
        NewAuditEntry(action=AuditAction.USER_CREATED.value, category="users"), admin
    )
    core.create_audit_log_deferred(
        NewAuditEntry(action=AuditAction.TOOL_CREATED.value, category="tools"), admin
    )

    assert core.query_audit_log().total == 2
    assert core.mark_audit_read([saved.id]) == 1

    with pytest.raises(ForbiddenError):
        core.purge_audit_log(admin, 30)
    assert core.purge_audit_log(superadmin, 30).deleted == 0


def test_password_operations(core):
    stored = core.hash_password("correct horse")

    assert core.verify_password("correct horse", stored) is True
    assert core.verify_and_upgrade_password("correct horse", stored) == (True, None)
    assert core.needs_rehash(stored) is False


def test_field_operations(core):
    record = core.encrypt_field("ana@example.com", context="users.email")

    assert core.decrypt_field(record, context="users.email") == "ana@example.com"
    rotated = core.rotate_field(record, context="users.email")
    assert rotated != record
    assert core.decrypt_field(rotated, context="users.email") == "ana@example.com"

    field = core.encrypt_searchable_field("Ana@Example.com")
    assert field.lookup_hash == core.hash_for_lookup("ana@example.com")


def test_alert_operations(core, alert_channels):
    alert = SecurityAlert(
        severity=AlertSeverity.HIGH,
        type="suspicious_activity",
        title="Test",
        description="desc",
    )

    assert core.send_security_alert(alert).sent == ["discord", "slack"]
    core.send_security_alert_in_background(alert)
    assert all(len(c.sent) == 2 for c in alert_channels)
    assert core.test_security_alert_channels().healthy is True
