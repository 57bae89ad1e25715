"""
============================================================
TARJETA CRC — infrastructure/services/alert_channels.py
============================================================
Class: WebhookChannel (+ payload builders por proveedor)

Responsibilities:
  - Traducir una SecurityAlert al formato de cada destino:
      discord (embed), slack (attachments/blocks), teams (MessageCard),
      custom (JSON plano + headers X-Security-Alert), email (endpoint HTTP).
  - Entregar por HTTP POST con timeout propio y retry sólo para transitorios.
  - Fallar con excepción (el dispatcher la contiene y la reporta como failed).

Collaborators:
  - httpx (cliente HTTP)
  - infrastructure.services.retry (tenacity)
  - domain.alerts (SecurityAlert, AlertSeverity)

Notes:
  - El destino (URL) nunca se loguea: los webhooks llevan el secreto en el path.
============================================================
"""

from __future__ import annotations

import html
import json
from typing import Any, Callable, Mapping

import httpx

from ...domain.alerts import SecurityAlert
from .retry import create_retry_decorator

PayloadBuilder = Callable[[SecurityAlert], dict[str, Any]]
HeadersBuilder = Callable[[SecurityAlert], dict[str, str]]

_FOOTER = "Security Core"
_DETAILS_PREVIEW_CHARS = 1000


def _details_json(alert: SecurityAlert) -> str:
    return json.dumps(dict(alert.details), indent=2, ensure_ascii=False, default=str)


# ------------------------------------------------------------
# Payloads
# ------------------------------------------------------------
def build_discord_payload(alert: SecurityAlert) -> dict[str, Any]:
    fields: list[dict[str, Any]] = [
        {"name": "📋 Tipo", "value": alert.type, "inline": True},
        {"name": "⏰ Fecha/Hora", "value": alert.timestamp.isoformat(), "inline": True},
    ]
    if alert.source_ip:
        fields.append({"name": "🌐 IP Origen", "value": f"`{alert.source_ip}`", "inline": True})
    if alert.user_id:
        fields.append({"name": "👤 Usuario", "value": f"`{alert.user_id}`", "inline": True})
    if alert.request_path:
        fields.append({"name": "🔗 Ruta", "value": f"`{alert.request_path}`", "inline": True})
    fields.append(
        {
            "name": "📊 Detalles",
            "value": "```json\n" + _details_json(alert)[:_DETAILS_PREVIEW_CHARS] + "\n```",
            "inline": False,
        }
    )

    return {
        "username": "Security Alert",
        "embeds": [
            {
                "title": f"{alert.severity.emoji} {alert.title}",
                "description": alert.description,
                "color": alert.severity.color,
                "fields": fields,
                "footer": {"text": _FOOTER},
                "timestamp": alert.timestamp.isoformat(),
            }
        ],
    }


def build_slack_payload(alert: SecurityAlert) -> dict[str, Any]:
    fields = [
        {"type": "mrkdwn", "text": f"*Tipo:*\n{alert.type}"},
        {"type": "mrkdwn", "text": f"*Severidad:*\n{alert.severity.value.upper()}"},
    ]
    if alert.source_ip:
        fields.append({"type": "mrkdwn", "text": f"*IP:*\n`{alert.source_ip}`"})
    if alert.user_id:
        fields.append({"type": "mrkdwn", "text": f"*Usuario:*\n`{alert.user_id}`"})

    return {
        "text": f"{alert.severity.emoji} *{alert.title}*",
        "attachments": [
            {
                "color": f"#{alert.severity.hex_color}",
                "blocks": [
                    {
                        "type": "section",
                        "text": {"type": "mrkdwn", "text": alert.description},
                    },
                    {"type": "section", "fields": fields},
                    {
                        "type": "context",
                        "elements": [
                            {
                                "type": "mrkdwn",
                                "text": f"📅 {alert.timestamp.isoformat()}",
                            }
                        ],
                    },
                ],
            }
        ],
    }


def build_teams_payload(alert: SecurityAlert) -> dict[str, Any]:
    facts = [
        {"name": "Tipo", "value": alert.type},
        {"name": "Severidad", "value": alert.severity.value.upper()},
    ]
    if alert.source_ip:
        facts.append({"name": "IP Origen", "value": alert.source_ip})
    if alert.user_id:
        facts.append({"name": "Usuario", "value": alert.user_id})
    if alert.request_path:
        facts.append({"name": "Ruta", "value": alert.request_path})

    return {
        "@type": "MessageCard",
        "@context": "http://schema.org/extensions",
        "themeColor": alert.severity.hex_color,
        "summary": alert.title,
        "sections": [
            {
                "activityTitle": f"{alert.severity.emoji} {alert.title}",
                "activitySubtitle": alert.timestamp.isoformat(),
                "facts": facts,
                "markdown": True,
                "text": alert.description,
            }
        ],
    }


def build_custom_payload(alert: SecurityAlert) -> dict[str, Any]:
    return alert.to_dict()


def custom_headers(alert: SecurityAlert) -> dict[str, str]:
    return {"X-Security-Alert": "true", "X-Alert-Severity": alert.severity.value}


def email_payload_builder(recipient: str) -> PayloadBuilder:
    """Builder para el endpoint de email (to/subject/body HTML escapado)."""

    def build(alert: SecurityAlert) -> dict[str, Any]:
        e = html.escape
        items = [
            f"<li><strong>Tipo:</strong> {e(alert.type)}</li>",
            f"<li><strong>Severidad:</strong> {e(alert.severity.value)}</li>",
            f"<li><strong>Fecha:</strong> {e(alert.timestamp.isoformat())}</li>",
        ]
        if alert.source_ip:
            items.append(f"<li><strong>IP:</strong> {e(alert.source_ip)}</li>")
        if alert.user_id:
            items.append(f"<li><strong>Usuario:</strong> {e(alert.user_id)}</li>")
        if alert.request_path:
            items.append(f"<li><strong>Ruta:</strong> {e(alert.request_path)}</li>")

        body = (
            f"<h2>{alert.severity.emoji} {e(alert.title)}</h2>"
            f"<p>{e(alert.description)}</p><hr>"
            f"<ul>{''.join(items)}</ul>"
            f"<pre>{e(_details_json(alert))}</pre>"
        )
        return {
            "to": recipient,
            "subject": f"[{alert.severity.value.upper()}] {alert.title}",
            "body": body,
        }

    return build


# ------------------------------------------------------------
# Canal
# ------------------------------------------------------------
class WebhookChannel:
    """Un destino de alertas: URL + formato + política de timeout/retry."""

    def __init__(
        self,
        name: str,
        url: str,
        build_payload: PayloadBuilder,
        *,
        build_headers: HeadersBuilder | None = None,
        client: httpx.Client | None = None,
        timeout_s: float = 5.0,
        retry_max_attempts: int = 2,
        retry_base_delay_s: float = 0.5,
        retry_max_delay_s: float = 5.0,
    ):
        if not url:
            raise ValueError(f"url is required for channel {name!r}")
        self.name = name
        self._url = url
        self._build_payload = build_payload
        self._build_headers = build_headers
        self._client = client
        self._timeout = timeout_s
        self._post_with_retry = create_retry_decorator(
            max_attempts=retry_max_attempts,
            base_delay=retry_base_delay_s,
            max_delay=retry_max_delay_s,
        )(self._post)

    def _post(self, payload: dict[str, Any], headers: dict[str, str]) -> httpx.Response:
        if self._client is not None:
            response = self._client.post(
                self._url, json=payload, headers=headers, timeout=self._timeout
            )
        else:
            response = httpx.post(
                self._url, json=payload, headers=headers, timeout=self._timeout
            )
        response.raise_for_status()
        return response

    def send(self, alert: SecurityAlert) -> None:
        """Entrega la alerta. Levanta httpx.HTTPError si el destino falla."""
        headers = {"Content-Type": "application/json"}
        if self._build_headers is not None:
            headers.update(self._build_headers(alert))
        self._post_with_retry(self._build_payload(alert), headers)


def build_channels(
    destinations: Mapping[str, str],
    *,
    security_email: str,
    client: httpx.Client | None = None,
    timeout_s: float = 5.0,
    retry_max_attempts: int = 2,
    retry_base_delay_s: float = 0.5,
    retry_max_delay_s: float = 5.0,
) -> list[WebhookChannel]:
    """Construye un canal por destino configurado (nombres desconocidos: ValueError)."""
    builders: dict[str, tuple[PayloadBuilder, HeadersBuilder | None]] = {
        "discord": (build_discord_payload, None),
        "slack": (build_slack_payload, None),
        "teams": (build_teams_payload, None),
        "custom": (build_custom_payload, custom_headers),
        "email": (email_payload_builder(security_email), None),
    }

    channels: list[WebhookChannel] = []
    for name, url in destinations.items():
        if not url:
            continue
        if name not in builders:
            raise ValueError(f"Unknown alert channel: {name}")
        build_payload, build_headers = builders[name]
        channels.append(
            WebhookChannel(
                name,
                url,
                build_payload,
                build_headers=build_headers,
                client=client,
                timeout_s=timeout_s,
                retry_max_attempts=retry_max_attempts,
                retry_base_delay_s=retry_base_delay_s,
                retry_max_delay_s=retry_max_delay_s,
            )
        )
    return channels
