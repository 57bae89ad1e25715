"""
Name: Permission Resolver Tests

Responsibilities:
  - Role hierarchy defaults and override precedence
  - SUPERADMIN bypass and immutability
  - Mutation guards (order, reasons) and single audit entry per change
  - Effective permissions consistent with resolve()
"""

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from security_core.application import AuditLogger, PermissionResolver
from security_core.application.permissions import PermissionCache
from security_core.crosscutting.exceptions import (
    DatabaseError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from security_core.domain.audit import AuditQuery
from security_core.domain.repositories import AuditLogRepository
from security_core.domain.permissions import (
    DEFAULT_CATALOG,
    MANAGE_PERMISSIONS,
    Allowed,
    Denied,
    DenialReason,
    OverrideState,
    PermissionOverride,
    PermissionSource,
)
from security_core.domain.roles import Role

pytestmark = pytest.mark.unit

ADMIN_LEVEL = [d.code for d in DEFAULT_CATALOG if d.default_min_role is Role.ADMIN]


def _audit_entries(audit_repo):
    entries, _ = audit_repo.search(AuditQuery(), offset=0, limit=1000)
    return entries


# ----------------------------------------------------------------------------
# Resolución
# ----------------------------------------------------------------------------


@pytest.mark.parametrize("code", ADMIN_LEVEL)
def test_admin_level_permissions_follow_role_hierarchy(resolver, code):
    assert resolver.resolve("mod-1", Role.MODERATOR, code) is False
    assert resolver.resolve("admin-1", Role.ADMIN, code) is True
    assert resolver.resolve("super-1", Role.SUPERADMIN, code) is True


def test_superadmin_resolves_unconditionally(resolver):
    decision = resolver.decide("super-1", Role.SUPERADMIN, "nuclear.launch")

    assert isinstance(decision, Allowed)
    assert decision.source is PermissionSource.ROLE


def test_unknown_code_is_denied_below_superadmin(resolver):
    decision = resolver.decide("admin-1", Role.ADMIN, "nuclear.launch")

    assert isinstance(decision, Denied)
    assert decision.reason is DenialReason.UNKNOWN_PERMISSION


def test_revoked_override_beats_role_default(resolver, superadmin):
    resolver.revoke(superadmin, "admin-2", "analytics.export")

    decision = resolver.decide("admin-2", Role.ADMIN, "analytics.export")
    assert isinstance(decision, Denied)
    assert decision.reason is DenialReason.REVOKED


def test_granted_override_lifts_user_above_role(resolver, superadmin):
    assert resolver.resolve("user-1", Role.USER, "finance.view") is False

    resolver.grant(superadmin, "user-1", "finance.view")

    decision = resolver.decide("user-1", Role.USER, "finance.view")
    assert isinstance(decision, Allowed)
    assert decision.source is PermissionSource.OVERRIDE


def test_superadmin_bypasses_overrides(resolver, override_repo):
    # Un override REVOKED insertado directo en el store no afecta a SUPERADMIN.
    override_repo.upsert(
        PermissionOverride(
            user_id="super-1",
            permission_code="users.delete",
            state=OverrideState.REVOKED,
            changed_by="db",
            changed_at=datetime.now(timezone.utc),
        )
    )
    assert resolver.resolve("super-1", Role.SUPERADMIN, "users.delete") is True


def test_role_accepts_case_insensitive_strings(resolver):
    assert resolver.resolve("admin-1", "admin", "users.view") is True


def test_require_raises_forbidden_with_reason(resolver, moderator):
    with pytest.raises(ForbiddenError) as exc_info:
        resolver.require(moderator, "users.view")
    assert exc_info.value.reason == DenialReason.INSUFFICIENT_ROLE.value


def test_effective_permissions_match_resolve(resolver, superadmin):
    resolver.grant(superadmin, "mod-1", "finance.view")
    resolver.revoke(superadmin, "mod-1", "tools.view")

    effective = resolver.get_effective_permissions("mod-1", Role.MODERATOR)

    assert set(effective) == set(DEFAULT_CATALOG.codes())
    for code, perm in effective.items():
        assert perm.granted == resolver.resolve("mod-1", Role.MODERATOR, code)
    assert effective["finance.view"].source is PermissionSource.OVERRIDE
    assert effective["tools.view"].granted is False
    assert effective["tools.view"].source is PermissionSource.OVERRIDE
    assert effective["analytics.view"].source is PermissionSource.ROLE


def test_request_cache_is_invalidated_by_mutation(resolver, superadmin):
    cache = PermissionCache()
    assert resolver.resolve("user-1", Role.USER, "finance.view", cache=cache) is False

    resolver.grant(superadmin, "user-1", "finance.view", cache=cache)

    assert resolver.resolve("user-1", Role.USER, "finance.view", cache=cache) is True


# ----------------------------------------------------------------------------
# Mutaciones
# ----------------------------------------------------------------------------


@pytest.mark.parametrize("action", ["grant", "revoke", "reset"])
@pytest.mark.parametrize(
    "actor_id, actor_role", [("super-1", Role.SUPERADMIN), ("admin-1", Role.ADMIN)]
)
def test_superadmin_target_is_immutable(
    resolver, audit_repo, make_principal, action, actor_id, actor_role
):
    actor = make_principal(actor_id, actor_role)

    with pytest.raises(ForbiddenError) as exc_info:
        resolver.apply(actor, "super-2", "users.view", action)

    assert exc_info.value.reason == "superadmin_immutable"
    assert _audit_entries(audit_repo) == []


def test_unknown_target_is_not_found(resolver, superadmin):
    with pytest.raises(NotFoundError):
        resolver.grant(superadmin, "ghost", "users.view")


def test_admin_cannot_modify_admin(resolver, admin):
    with pytest.raises(ForbiddenError) as exc_info:
        resolver.grant(admin, "admin-2", "finance.view")
    assert exc_info.value.reason == "role_hierarchy"


def test_moderator_cannot_modify_anyone(resolver, moderator):
    with pytest.raises(ForbiddenError) as exc_info:
        resolver.grant(moderator, "user-1", "finance.view")
    assert exc_info.value.reason == "role_hierarchy"


def test_admin_can_modify_moderator_and_user(resolver, admin):
    resolver.grant(admin, "mod-1", "finance.view")
    resolver.revoke(admin, "user-1", "cv.own.view")

    assert resolver.resolve("mod-1", Role.MODERATOR, "finance.view") is True
    assert resolver.resolve("user-1", Role.USER, "cv.own.view") is False


@pytest.mark.parametrize("action", ["revoke", "reset"])
def test_self_lockout_is_checked_before_role_hierarchy(resolver, admin, action):
    with pytest.raises(ForbiddenError) as exc_info:
        resolver.apply(admin, admin.user_id, MANAGE_PERMISSIONS, action)
    assert exc_info.value.reason == "self_lockout"


def test_unknown_code_in_mutation_is_validation_error(resolver, superadmin):
    with pytest.raises(ValidationError):
        resolver.grant(superadmin, "user-1", "nuclear.launch")


def test_apply_rejects_unknown_action(resolver, superadmin):
    with pytest.raises(ValidationError):
        resolver.apply(superadmin, "user-1", "finance.view", "toggle")


@pytest.fixture
def resolver_with_down_audit(override_repo, users, sealer):
    repo = Mock(spec=AuditLogRepository)
    repo.append.side_effect = DatabaseError("audit store down")
    return PermissionResolver(override_repo, users, AuditLogger(repo, sealer))


def test_grant_is_rolled_back_when_audit_write_fails(
    resolver_with_down_audit, override_repo, superadmin
):
    with pytest.raises(DatabaseError):
        resolver_with_down_audit.grant(superadmin, "user-1", "tools.create")

    assert override_repo.get("user-1", "tools.create") is None


def test_revoke_restores_previous_override_when_audit_write_fails(
    resolver_with_down_audit, override_repo, superadmin
):
    previous = override_repo.upsert(
        PermissionOverride(
            user_id="user-1",
            permission_code="finance.view",
            state=OverrideState.GRANTED,
            changed_by="super-2",
            changed_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        )
    )

    with pytest.raises(DatabaseError):
        resolver_with_down_audit.revoke(superadmin, "user-1", "finance.view")
    with pytest.raises(DatabaseError):
        resolver_with_down_audit.reset(superadmin, "user-1", "finance.view")

    assert override_repo.get("user-1", "finance.view") == previous


def test_each_change_writes_exactly_one_audit_entry(resolver, audit_repo, superadmin):
    resolver.grant(superadmin, "user-1", "finance.view")
    resolver.revoke(superadmin, "user-1", "finance.view")
    existed = resolver.reset(superadmin, "user-1", "finance.view")

    entries = sorted(_audit_entries(audit_repo), key=lambda e: e.id)
    assert existed is True
    assert [e.action for e in entries] == [
        "permission.granted",
        "permission.revoked",
        "permission.reset",
    ]
    for entry in entries:
        assert entry.category == "security"
        assert entry.user_id == superadmin.user_id
        assert entry.target_id == "user-1"
        assert entry.target_type == "user"
        assert entry.metadata["permissionCode"] == "finance.view"
        assert entry.metadata["targetRole"] == "USER"
    assert entries[0].metadata["previousState"] is None
    assert entries[1].metadata["previousState"] == "GRANTED"
    assert entries[2].metadata["previousState"] == "REVOKED"


def test_reset_without_override_returns_false(resolver, superadmin):
    assert resolver.reset(superadmin, "user-1", "finance.view") is False
    assert resolver.list_overrides("user-1") == []


def test_grant_records_actor_and_state(resolver, admin):
    saved = resolver.grant(admin, "user-1", "finance.view")

    assert saved.state is OverrideState.GRANTED
    assert saved.changed_by == admin.user_id
    assert resolver.list_overrides("user-1") == [saved]
