"""
Reachinbox Client

Async wrapper around the Reachinbox onebox API:
- fetch_thread: POST /api/v1/onebox/thread  (JSON body {account, id})
- send_email:   POST /api/v1/onebox/send    (multipart field "emaildata")

Threading headers for replies are derived from the latest thread message so
that the reply lands in the lead's existing conversation.
"""

import html
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .config import ReachinboxConfig
from .errors import TransportError
from ..engine.ownership import ThreadMessage, order_thread

logger = logging.getLogger("autoresponder.common.reachinbox")


class ReachinboxError(TransportError):
    """Reachinbox API call failed."""
    pass


def text_to_html(body: str) -> str:
    """Wrap plain text in paragraphs; bodies that already contain markup pass through"""
    if "<" in body:
        return body
    paragraphs = [html.escape(p) for p in body.split("\n")]
    return "<p>" + "</p><p>".join(paragraphs) + "</p>"


def latest_message(messages: List[ThreadMessage]) -> Optional[ThreadMessage]:
    """Most recent message of a thread (None for an empty thread)"""
    if not messages:
        return None
    return order_thread(messages)[-1]


def threading_headers(
    latest: Optional[ThreadMessage],
    message_id: str,
    thread_id: str,
) -> Tuple[Optional[str], List[str], Optional[str]]:
    """
    Compute (in_reply_to, references, original_message_id) for a reply.

    With a fetched latest message the reply points at it and extends its
    references chain; without one the webhook's ids are used directly.
    """
    if latest is not None:
        in_reply_to = latest.message_id or message_id
        original = latest.original_message_id or thread_id
        references = list(latest.references)
        for ref in (original, in_reply_to):
            if ref and ref not in references:
                references.append(ref)
        return in_reply_to, references, original

    references = [message_id] if message_id else []
    if thread_id and thread_id not in references:
        references.insert(0, thread_id)
    return message_id, references, thread_id


class ReachinboxClient:
    """
    Async client for the Reachinbox API.

    The underlying httpx.AsyncClient is created lazily and reused; pass one
    in (e.g. with an httpx.MockTransport) to control transport in tests.

    Usage:
        client = ReachinboxClient(api_key="...", base_url="https://api.reachinbox.ai")
        messages = await client.fetch_thread("sales@acme.io", "<thread-id>")
        await client.close()
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.reachinbox.ai",
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = client

    @classmethod
    def from_config(cls, config: ReachinboxConfig) -> "ReachinboxClient":
        return cls(api_key=config.api_key, base_url=config.base_url)

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key and self._base_url)

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _post(self, path: str, what: str, **kwargs) -> Any:
        client = self._ensure_client()
        try:
            response = await client.post(path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ReachinboxError(
                f"Reachinbox {what} error: {e.response.status_code} - {e.response.text[:200]}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise ReachinboxError(f"Reachinbox {what} error: {e}") from e

        try:
            return response.json()
        except ValueError:
            return {}

    async def fetch_thread(self, account: str, thread_id: str) -> List[ThreadMessage]:
        """
        Fetch all messages of a thread.

        Args:
            account: Campaign mailbox the thread belongs to
            thread_id: Original message id of the thread

        Returns:
            Thread messages in provider order

        Raises:
            ReachinboxError: On transport or HTTP failure
        """
        if not account:
            raise ReachinboxError("email_account is required to fetch a thread")

        data = await self._post(
            "/api/v1/onebox/thread",
            "thread",
            json={"account": account, "id": thread_id},
        )

        if isinstance(data, dict):
            raw = data.get("data")
            if raw is None:
                raw = data.get("messages")
        else:
            raw = data
        if not isinstance(raw, list):
            raw = []

        messages = [ThreadMessage.from_dict(m) for m in raw if isinstance(m, dict)]
        logger.debug("Fetched thread %s (%d messages)", thread_id, len(messages))
        return messages

    async def send_email(
        self,
        *,
        from_address: str,
        to: str,
        subject: str,
        body: str,
        in_reply_to: Optional[str] = None,
        references: Optional[List[str]] = None,
        original_message_id: Optional[str] = None,
        cc: Optional[List[str]] = None,
        marker: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Send a threaded reply.

        Args:
            from_address: Connected campaign mailbox
            to: Recipient address
            subject: Subject line ("Re: " is added if missing)
            body: Plain-text or HTML body
            in_reply_to: Message id being answered
            references: Message ids of the thread
            original_message_id: First message id of the thread
            cc: Optional CC recipients
            marker: Automation marker appended to the HTML body

        Raises:
            ReachinboxError: On missing addresses, transport or HTTP failure
        """
        if not from_address:
            raise ReachinboxError("email_account is required to send email")
        if not to or not to.strip():
            raise ReachinboxError("Recipient email address is required for sending the reply")

        html_body = text_to_html(body)
        if marker:
            html_body = f"{html_body}{marker}"

        emaildata: Dict[str, Any] = {
            "to": [to.strip()],
            "from": from_address,
            "subject": subject if subject.lower().startswith("re:") else f"Re: {subject}",
            "body": html_body,
        }
        # Optional fields are omitted rather than sent empty
        if cc:
            emaildata["cc"] = cc
        if references:
            emaildata["references"] = references
        if in_reply_to:
            emaildata["inReplyTo"] = in_reply_to
        if original_message_id:
            emaildata["originalMessageId"] = original_message_id

        logger.debug("Reachinbox send payload: %s", emaildata)
        result = await self._post(
            "/api/v1/onebox/send",
            "send",
            files={"emaildata": (None, json.dumps(emaildata))},
        )
        logger.info("Reply sent to %s (in reply to %s)", to, in_reply_to)
        return result if isinstance(result, dict) else {"data": result}
