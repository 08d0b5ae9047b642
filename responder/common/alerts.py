"""
Slack Alerts

Operator notifications through a Slack incoming webhook. Alerting is best
effort: failures are logged and never propagate into the reply flow.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from .config import SlackConfig

logger = logging.getLogger("autoresponder.common.alerts")

# Metadata keys rendered as attachment fields, in display order
_FIELD_TITLES = (
    ("event", "Event"),
    ("thread_id", "Thread ID"),
    ("message_id", "Message ID"),
    ("lead_email", "Lead Email"),
    ("lead_name", "Lead Name"),
    ("template_id", "Template ID"),
    ("confidence", "Confidence"),
    ("reasons", "Reasons"),
    ("document_id", "Document ID"),
    ("error", "Error"),
)
_LONG_FIELDS = {"reasons", "error"}


def build_payload(message: str, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Slack message body with a header, the message and metadata fields"""
    metadata = metadata or {}
    fields = []
    for key, title in _FIELD_TITLES:
        value = metadata.get(key)
        if value is None or value == "" or value == []:
            continue
        if isinstance(value, (list, tuple)):
            value = "\n".join(f"- {v}" for v in value)
        fields.append({"title": title, "value": str(value), "short": key not in _LONG_FIELDS})
    if metadata:
        fields.append({
            "title": "Timestamp",
            "value": datetime.now(timezone.utc).isoformat(),
            "short": True,
        })

    return {
        "text": message,
        "blocks": [
            {"type": "header", "text": {"type": "plain_text", "text": "Autoresponder Alert"}},
            {"type": "section", "text": {"type": "mrkdwn", "text": f"*Message:*\n{message}"}},
        ],
        "attachments": [
            {
                "color": "danger" if metadata.get("event") == "error" else "warning",
                "fields": fields,
            }
        ],
    }


class SlackAlerter:
    """Posts alerts to a Slack incoming webhook"""

    def __init__(
        self,
        webhook_url: str = "",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._webhook_url = webhook_url
        self._timeout = timeout
        self._client = client

    @classmethod
    def from_config(cls, config: SlackConfig) -> "SlackAlerter":
        return cls(webhook_url=config.webhook_url)

    @property
    def is_configured(self) -> bool:
        return bool(self._webhook_url)

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout))
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def send_alert(self, message: str, metadata: Optional[Dict[str, Any]] = None) -> bool:
        """
        Post an alert.

        Returns:
            True if Slack accepted it; False if unconfigured or on any failure
        """
        if not self.is_configured:
            logger.info("Slack not configured, alert not sent: %s", message)
            return False

        try:
            response = await self._ensure_client().post(
                self._webhook_url, json=build_payload(message, metadata)
            )
            response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.error("Failed to send Slack alert: %s", e)
            return False

    async def send_error_alert(self, message: str, metadata: Optional[Dict[str, Any]] = None) -> bool:
        return await self.send_alert(f"Error: {message}", {**(metadata or {}), "event": "error"})

    async def send_warning_alert(self, message: str, metadata: Optional[Dict[str, Any]] = None) -> bool:
        return await self.send_alert(f"Warning: {message}", {"event": "warning", **(metadata or {})})
