"""
Reachinbox Handler

Converts Reachinbox webhook deliveries to InboundEvents.

Processes:
- REPLY_RECEIVED (a lead answered a campaign email)

Ignores every other event type (sent, opened, bounced, ...).
"""

from typing import Any, Dict, Optional

from .base import BaseHandler, InboundEvent, InvalidEventError, compare_secret

REPLY_RECEIVED = "REPLY_RECEIVED"


def _text(raw_data: Dict[str, Any], key: str) -> str:
    value = raw_data.get(key)
    return str(value).strip() if value is not None else ""


class ReachinboxHandler(BaseHandler):
    """Handler for Reachinbox campaign webhooks"""

    def __init__(self, webhook_secret: str = ""):
        """
        Args:
            webhook_secret: Expected value of the shared-secret header
        """
        super().__init__("reachinbox", secret=webhook_secret)

    def parse_event(self, raw_data: Dict[str, Any]) -> Optional[InboundEvent]:
        """
        Parse a Reachinbox delivery.

        Returns:
            InboundEvent for replies, None for other event types

        Raises:
            InvalidEventError: If a reply has no message_id
        """
        event_type = _text(raw_data, "event").upper()
        if event_type != REPLY_RECEIVED:
            return None

        message_id = _text(raw_data, "message_id")
        if not message_id:
            raise InvalidEventError("Missing required field: message_id")

        return InboundEvent(
            message_id=message_id,
            thread_id=_text(raw_data, "original_message_id") or message_id,
            email_account=_text(raw_data, "email_account"),
            lead_email=_text(raw_data, "lead_email"),
            lead_first_name=_text(raw_data, "lead_first_name"),
            lead_last_name=_text(raw_data, "lead_last_name"),
            body=_text(raw_data, "email_replied_body"),
            subject=_text(raw_data, "email_subject"),
            source=self.source_name,
            raw_data=raw_data,
        )

    def verify_signature(self, body: bytes, signature: str = "") -> bool:
        """Reachinbox sends a static shared secret rather than a body signature"""
        if not self.verifies:
            return True
        return compare_secret(self._secret, signature)
