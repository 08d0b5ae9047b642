"""
Base Handler

Abstract base class for webhook source handlers.
Provides a common interface for converting provider payloads to events.
"""

import hmac
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class InvalidEventError(ValueError):
    """Payload is missing a field the pipeline cannot do without."""
    pass


@dataclass
class InboundEvent:
    """
    A lead's reply, in the form the pipeline works with.

    Only message_id is required; thread_id falls back to it.
    """
    message_id: str
    thread_id: str
    email_account: str = ""
    lead_email: str = ""
    lead_first_name: str = ""
    lead_last_name: str = ""
    body: str = ""
    subject: str = ""
    source: str = "reachinbox"
    raw_data: Optional[Dict[str, Any]] = field(default=None, repr=False)

    @property
    def lead_name(self) -> Optional[str]:
        name = f"{self.lead_first_name or ''} {self.lead_last_name or ''}".strip()
        return name or None

    @property
    def has_body(self) -> bool:
        return bool(self.body and self.body.strip())


def compare_secret(expected: str, provided: Optional[str]) -> bool:
    """Constant-time comparison of two shared secrets"""
    return hmac.compare_digest(expected.encode(), (provided or "").encode())


class BaseHandler(ABC):
    """
    Abstract base class for source handlers.

    Each handler must implement:
    - parse_event: Convert raw payload to an event (None = ignore)
    - verify_signature: Authenticate the delivery (True when no secret is set)
    """

    def __init__(self, source_name: str, secret: str = ""):
        """
        Initialize handler.

        Args:
            source_name: Name of the source (e.g., "reachinbox", "signwell")
            secret: Shared secret; empty disables verification
        """
        self.source_name = source_name
        self._secret = secret

    @property
    def verifies(self) -> bool:
        return bool(self._secret)

    @abstractmethod
    def parse_event(self, raw_data: Dict[str, Any]) -> Optional[Any]:
        """
        Parse a raw webhook payload.

        Returns:
            Parsed event, or None if the delivery should be acknowledged and ignored
        """
        pass

    @abstractmethod
    def verify_signature(self, body: bytes, signature: str = "") -> bool:
        """
        Verify a delivery.

        Args:
            body: Raw request body
            signature: Signature or secret from the request headers

        Returns:
            True if the delivery is authentic
        """
        pass
