"""
Manual Ownership Detector

Decides from a thread's outbound history whether a human replied by hand.
Every automated reply carries an automation marker; an outbound message
without it is treated as a human takeover, with two exceptions:

- the first message of the thread is the original campaign email, which
  never carries the marker
- outbound messages sent before the marker rollout cutoff cannot be told
  apart from manual replies and are ignored
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from .state_store import normalize_address


@dataclass
class ThreadMessage:
    """One message of a fetched thread"""
    message_id: str
    from_address: str
    body: str = ""
    sent_at: Optional[datetime] = None
    references: List[str] = field(default_factory=list)
    subject: str = ""
    original_message_id: Optional[str] = None
    html: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ThreadMessage":
        """Build from a provider thread entry (tolerates several key spellings)"""
        references = data.get("references") or []
        if isinstance(references, str):
            references = references.split()
        elif len(references) == 1 and isinstance(references[0], str) and " " in references[0]:
            references = references[0].split()

        return cls(
            message_id=str(data.get("messageId") or data.get("id") or ""),
            from_address=str(data.get("fromEmail") or data.get("from") or ""),
            body=str(data.get("text") or data.get("body") or data.get("html") or data.get("preview") or ""),
            sent_at=parse_timestamp(data.get("sentAt") or data.get("timestamp") or data.get("created_at")),
            references=[r for r in references if r],
            subject=str(data.get("subject") or ""),
            original_message_id=data.get("originalMessageId") or None,
            html=str(data.get("html") or data.get("body") or ""),
        )


@dataclass
class OwnershipVerdict:
    """Outcome of a manual-ownership check"""
    manual: bool
    reason: str
    evidence_message_id: Optional[str] = None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp to an aware UTC datetime (None if unparseable)"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _sort_key(indexed):
    index, message = indexed
    # Undated messages keep their provider order
    stamp = message.sent_at.timestamp() if message.sent_at else float("-inf")
    return (stamp, index)


def order_thread(messages: Iterable[ThreadMessage]) -> List[ThreadMessage]:
    """Oldest first; stable for messages without timestamps"""
    indexed = list(enumerate(messages))
    if all(m.sent_at is not None for _, m in indexed):
        indexed.sort(key=_sort_key)
    return [m for _, m in indexed]


def detect_manual_owner(
    messages: Iterable[Union[ThreadMessage, Dict[str, Any]]],
    account: str,
    marker: str,
    rollout_cutoff: Union[datetime, date, str, None] = None,
) -> OwnershipVerdict:
    """
    Check a thread for a human-authored outbound reply.

    Args:
        messages: Thread messages (ThreadMessage or raw provider dicts)
        account: Campaign mailbox address; its messages are outbound
        marker: Automation marker embedded in every automated reply
        rollout_cutoff: Outbound messages older than this are ignored

    Returns:
        OwnershipVerdict with the first offending message as evidence
    """
    thread = order_thread(
        m if isinstance(m, ThreadMessage) else ThreadMessage.from_dict(m)
        for m in messages
    )
    sender = normalize_address(account)
    cutoff = parse_timestamp(rollout_cutoff) if rollout_cutoff else None

    if not sender:
        return OwnershipVerdict(manual=False, reason="no campaign account to compare against")
    if not marker:
        return OwnershipVerdict(manual=False, reason="no automation marker configured")

    checked = 0
    for position, message in enumerate(thread):
        if normalize_address(message.from_address) != sender:
            continue
        if position == 0:
            continue
        if cutoff and message.sent_at and message.sent_at < cutoff:
            continue
        checked += 1
        if marker not in message.html and marker not in message.body:
            return OwnershipVerdict(
                manual=True,
                reason=f"unmarked outbound reply at position {position}",
                evidence_message_id=message.message_id or None,
            )

    if checked == 0:
        return OwnershipVerdict(manual=False, reason="no outbound replies after the campaign email")
    return OwnershipVerdict(manual=False, reason=f"all {checked} outbound replies carry the automation marker")
