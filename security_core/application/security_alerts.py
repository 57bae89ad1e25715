"""
===============================================================================
SERVICE: Security Alert Dispatcher (best-effort fan-out)
===============================================================================

Qué es:
    Envío de alertas de seguridad de alta severidad a los canales externos
    configurados (Discord, Slack, Teams, webhook genérico, email).
    Independiente del audit log: una alerta que no sale NUNCA afecta a la
    entrada de auditoría correspondiente (ni al revés).

Semántica:
    - Todos los canales en paralelo; cada uno con su propio timeout HTTP.
    - Un canal caído no bloquea a los demás: resultado por canal sent|failed.
    - dispatch() nunca levanta.
    - dispatch_in_background(): fire-and-forget vía BackgroundRunner.

-------------------------------------------------------------------------------
CRC CARD
-------------------------------------------------------------------------------
Component: SecurityAlertDispatcher
Responsibilities:
  - dispatch / dispatch_in_background / self_test
  - Helpers: brute force, escalación de privilegios, login admin,
    actividad sospechosa
Collaborators:
  - AlertChannel (infrastructure.services.alert_channels.WebhookChannel)
  - application.background.BackgroundRunner
  - domain.alerts (SecurityAlert, DispatchResult, SelfTestReport)
===============================================================================
"""

from __future__ import annotations

import contextvars
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any, Mapping, Protocol, Sequence

from ..crosscutting.logger import logger
from ..domain.alerts import (
    AlertSeverity,
    DeliveryStatus,
    DispatchResult,
    SecurityAlert,
    SelfTestReport,
)
from .background import BackgroundRunner

BRUTE_FORCE_CRITICAL_ATTEMPTS = 10


class AlertChannel(Protocol):
    name: str

    def send(self, alert: SecurityAlert) -> None:
        """Entrega la alerta o levanta."""
        ...


class SecurityAlertDispatcher:
    def __init__(
        self,
        channels: Sequence[AlertChannel],
        *,
        runner: BackgroundRunner | None = None,
        timeout_s: float = 10.0,
        environment: str = "development",
    ) -> None:
        names = [c.name for c in channels]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate alert channel names: {names}")
        self._channels = list(channels)
        self._runner = runner
        self._timeout = timeout_s
        self._environment = environment
        # R: Un executor por canal; un canal colgado solo retiene su propio worker.
        self._executors = {
            c.name: ThreadPoolExecutor(
                max_workers=1, thread_name_prefix=f"security-alerts-{c.name}"
            )
            for c in self._channels
        }

    @property
    def configured_channels(self) -> list[str]:
        return [c.name for c in self._channels]

    def _send_one(self, channel: AlertChannel, alert: SecurityAlert) -> None:
        channel.send(alert)

    def dispatch(self, alert: SecurityAlert) -> DispatchResult:
        if not self._channels:
            logger.debug("No security alert channels configured", extra={"type": alert.type})
            return DispatchResult(outcomes={})

        futures = {}
        outcomes: dict[str, DeliveryStatus] = {}
        for channel in self._channels:
            ctx = contextvars.copy_context()
            try:
                future = self._executors[channel.name].submit(
                    ctx.run, self._send_one, channel, alert
                )
            except RuntimeError as exc:
                # Executor cerrado (shutdown en curso).
                logger.error(
                    "Security alert channel could not be scheduled",
                    extra={"channel": channel.name, "error": str(exc)},
                )
                outcomes[channel.name] = DeliveryStatus.FAILED
                continue
            futures[future] = channel.name

        done, not_done = wait(futures, timeout=self._timeout)

        for future in done:
            name = futures[future]
            exc = future.exception()
            if exc is None:
                outcomes[name] = DeliveryStatus.SENT
                continue
            logger.warning(
                "Security alert delivery failed",
                extra={
                    "channel": name,
                    "alert_type": alert.type,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            outcomes[name] = DeliveryStatus.FAILED

        for future in not_done:
            future.cancel()
            name = futures[future]
            logger.warning(
                "Security alert delivery timed out",
                extra={"channel": name, "alert_type": alert.type, "timeout_s": self._timeout},
            )
            outcomes[name] = DeliveryStatus.FAILED

        ordered = {c.name: outcomes[c.name] for c in self._channels if c.name in outcomes}
        result = DispatchResult(outcomes=ordered)
        logger.info(
            "Security alert dispatched",
            extra={
                "alert_type": alert.type,
                "severity": alert.severity.value,
                "sent": result.sent,
                "failed": result.failed,
            },
        )
        return result

    def dispatch_in_background(self, alert: SecurityAlert) -> None:
        if self._runner is None:
            self.dispatch(alert)
            return
        self._runner.submit(self.dispatch, alert, task_name="security_alert.dispatch")

    def self_test(self) -> SelfTestReport:
        configured = self.configured_channels
        if not configured:
            return SelfTestReport(configured=[], working=[], failed=[])

        result = self.dispatch(
            SecurityAlert(
                severity=AlertSeverity.INFO,
                type="test",
                title="🧪 Test de Sistema de Alertas",
                description="Este es un mensaje de prueba del sistema de alertas de seguridad.",
                details={
                    "message": "Si recibes este mensaje, el webhook está funcionando correctamente.",
                    "environment": self._environment,
                },
            )
        )
        return SelfTestReport(
            configured=configured, working=result.sent, failed=result.failed
        )

    def shutdown(self) -> None:
        for executor in self._executors.values():
            executor.shutdown(wait=False, cancel_futures=True)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _emit(self, alert: SecurityAlert) -> SecurityAlert:
        self.dispatch_in_background(alert)
        return alert

    def alert_brute_force(self, ip: str, attempts: int, target: str) -> SecurityAlert:
        blocked = attempts >= BRUTE_FORCE_CRITICAL_ATTEMPTS
        return self._emit(
            SecurityAlert(
                severity=AlertSeverity.CRITICAL if blocked else AlertSeverity.HIGH,
                type="brute_force",
                title="Intento de Fuerza Bruta Detectado",
                description=(
                    f"Se detectaron {attempts} intentos fallidos de {target} "
                    "desde la misma IP"
                ),
                source_ip=ip,
                details={"attempts": attempts, "target": target, "blocked": blocked},
            )
        )

    def alert_permission_escalation(
        self,
        user_id: str,
        attempted_action: str,
        *,
        ip: str | None = None,
        user_role: str | None = None,
    ) -> SecurityAlert:
        return self._emit(
            SecurityAlert(
                severity=AlertSeverity.CRITICAL,
                type="permission_escalation",
                title="Intento de Escalación de Privilegios",
                description=(
                    "Un usuario intentó realizar una acción sin permisos suficientes"
                ),
                source_ip=ip,
                user_id=user_id,
                details={
                    "attemptedAction": attempted_action,
                    "userRole": user_role or "unknown",
                },
            )
        )

    def alert_admin_login(
        self, user_id: str, *, ip: str | None = None, email: str | None = None
    ) -> SecurityAlert:
        return self._emit(
            SecurityAlert(
                severity=AlertSeverity.INFO,
                type="admin_login",
                title="Login de Administrador",
                description="Acceso administrativo exitoso",
                source_ip=ip,
                user_id=user_id,
                details={"email": email} if email else {},
            )
        )

    def alert_suspicious_activity(
        self,
        description: str,
        *,
        severity: AlertSeverity = AlertSeverity.MEDIUM,
        ip: str | None = None,
        user_id: str | None = None,
        request_path: str | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> SecurityAlert:
        return self._emit(
            SecurityAlert(
                severity=AlertSeverity(severity),
                type="suspicious_activity",
                title="Actividad Sospechosa Detectada",
                description=description,
                source_ip=ip,
                user_id=user_id,
                request_path=request_path,
                details=dict(details or {}),
            )
        )
