"""
Application layer: servicios del core de seguridad.

  - RateLimiter               (rate_limiting)
  - PermissionResolver        (permissions)
  - AuditLogger / AuditSealer (audit_logger, audit_chain)
  - AuditRetentionJob         (audit_retention)
  - SecurityAlertDispatcher   (security_alerts)
  - BackgroundRunner          (background)
"""

from .audit_chain import AuditSealer
from .audit_logger import AuditLogger
from .audit_retention import AuditRetentionJob
from .background import BackgroundRunner
from .permissions import PermissionCache, PermissionResolver
from .rate_limiting import RateLimiter, build_policies
from .security_alerts import AlertChannel, SecurityAlertDispatcher

__all__ = [
    "AlertChannel",
    "AuditLogger",
    "AuditRetentionJob",
    "AuditSealer",
    "BackgroundRunner",
    "PermissionCache",
    "PermissionResolver",
    "RateLimiter",
    "SecurityAlertDispatcher",
    "build_policies",
]
