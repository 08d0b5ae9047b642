"""
SignWell Client

Creates a document from the configured agreement template and sends it for
signature. The template has two placeholders: "Client" (the lead) and
"Document Sender" (our side).
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from .config import ESignConfig
from .errors import TransportError

logger = logging.getLogger("autoresponder.common.esign")

# api_id of each pre-fillable template field
TEMPLATE_FIELD_IDS = {
    "name": "Name_1",
    "company": "Company_1",
    "email": "Email_1",
    "title": "Title_1",
    "address": "TextField_1",
}


class SignWellError(TransportError):
    """SignWell API call failed."""
    pass


@dataclass
class AgreementRecipient:
    """Who the agreement goes to"""
    email: str
    name: Optional[str] = None
    company: Optional[str] = None
    title: Optional[str] = None
    address: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.company or self.email


class SignWellClient:
    """
    Async client for SignWell template documents.

    Usage:
        client = SignWellClient(api_key="...", template_id="...", sender_email="ops@acme.io")
        doc = await client.send_agreement(AgreementRecipient(email="lead@corp.com"))
    """

    def __init__(
        self,
        api_key: str,
        template_id: str,
        sender_email: str,
        base_url: str = "https://www.signwell.com/api/v1/",
        document_name: str = "Contingency Agreement",
        timeout: float = 20.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._api_key = api_key
        self._template_id = template_id
        self._sender_email = sender_email
        self._base_url = base_url if base_url.endswith("/") else base_url + "/"
        self._document_name = document_name
        self._timeout = timeout
        self._client = client

    @classmethod
    def from_config(cls, config: ESignConfig) -> "SignWellClient":
        return cls(
            api_key=config.api_key,
            template_id=config.template_id,
            sender_email=config.sender_email,
            base_url=config.base_url,
            document_name=config.document_name,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key and self._template_id and self._sender_email)

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={"X-Api-Key": self._api_key},
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def build_request(self, recipient: AgreementRecipient) -> Dict[str, Any]:
        """Request body for POST document_templates/documents"""
        fields: List[Dict[str, str]] = []
        if recipient.name:
            fields.append({"api_id": TEMPLATE_FIELD_IDS["name"], "value": recipient.name})
        if recipient.company:
            fields.append({"api_id": TEMPLATE_FIELD_IDS["company"], "value": recipient.company})
        fields.append({"api_id": TEMPLATE_FIELD_IDS["email"], "value": recipient.email})
        if recipient.title:
            fields.append({"api_id": TEMPLATE_FIELD_IDS["title"], "value": recipient.title})
        if recipient.address:
            fields.append({"api_id": TEMPLATE_FIELD_IDS["address"], "value": recipient.address})

        return {
            "template_id": self._template_id,
            "name": self._document_name,
            "recipients": [
                {
                    "id": "1",
                    "name": recipient.display_name,
                    "email": recipient.email,
                    "placeholder_name": "Client",
                },
                {
                    "id": "2",
                    "name": self._sender_email.split("@")[0] or "Sender",
                    "email": self._sender_email,
                    "placeholder_name": "Document Sender",
                },
            ],
            "template_fields": fields,
            "draft": False,
        }

    async def send_agreement(self, recipient: AgreementRecipient) -> Dict[str, Any]:
        """
        Create and send the agreement document.

        Returns:
            SignWell document payload (includes "id")

        Raises:
            SignWellError: If unconfigured, or on transport or HTTP failure
        """
        if not self.is_configured:
            raise SignWellError("SignWell is not configured (api_key, template_id, sender_email)")
        if not recipient.email:
            raise SignWellError("Agreement recipient email is required")

        client = self._ensure_client()
        try:
            response = await client.post("document_templates/documents", json=self.build_request(recipient))
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SignWellError(
                f"SignWell API error: {e.response.status_code} - {e.response.text[:200]}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise SignWellError(f"SignWell API error: {e}") from e

        try:
            document = response.json()
        except ValueError:
            document = {}
        logger.info("Agreement sent to %s (document %s)", recipient.email, document.get("id"))
        return document
