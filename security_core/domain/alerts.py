"""
===============================================================================
TARJETA CRC — domain/alerts.py
===============================================================================

Responsabilidades:
  - Modelar alertas de seguridad (severidad, tipo, detalles, origen).
  - Modelar el resultado por canal (sent / failed) y el self-test.

Colaboradores:
  - application.security_alerts.SecurityAlertDispatcher
  - infrastructure.services.alert_channels (payloads por canal)
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping


class AlertSeverity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"

    @property
    def color(self) -> int:
        return _SEVERITY_COLORS[self]

    @property
    def hex_color(self) -> str:
        return f"{self.color:06x}"

    @property
    def emoji(self) -> str:
        return _SEVERITY_EMOJI[self]


_SEVERITY_COLORS: dict[AlertSeverity, int] = {
    AlertSeverity.CRITICAL: 0xFF0000,
    AlertSeverity.HIGH: 0xFF6600,
    AlertSeverity.MEDIUM: 0xFFCC00,
    AlertSeverity.LOW: 0x00CCFF,
    AlertSeverity.INFO: 0x00FF00,
}

_SEVERITY_EMOJI: dict[AlertSeverity, str] = {
    AlertSeverity.CRITICAL: "🚨",
    AlertSeverity.HIGH: "⚠️",
    AlertSeverity.MEDIUM: "⚡",
    AlertSeverity.LOW: "ℹ️",
    AlertSeverity.INFO: "✅",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class SecurityAlert:
    severity: AlertSeverity
    type: str
    title: str
    description: str
    details: Mapping[str, Any] = field(default_factory=dict)
    source_ip: str | None = None
    user_id: str | None = None
    request_path: str | None = None
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "severity": self.severity.value,
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "details": dict(self.details),
            "sourceIP": self.source_ip,
            "userId": self.user_id,
            "requestPath": self.request_path,
            "timestamp": self.timestamp.isoformat(),
        }


class DeliveryStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class DispatchResult:
    outcomes: Mapping[str, DeliveryStatus]

    @property
    def sent(self) -> list[str]:
        return [c for c, s in self.outcomes.items() if s is DeliveryStatus.SENT]

    @property
    def failed(self) -> list[str]:
        return [c for c, s in self.outcomes.items() if s is DeliveryStatus.FAILED]


@dataclass(frozen=True, slots=True)
class SelfTestReport:
    configured: list[str]
    working: list[str]
    failed: list[str]

    @property
    def healthy(self) -> bool:
        return not self.failed
