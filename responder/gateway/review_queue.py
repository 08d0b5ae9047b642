"""
Review Queue

Holds replies the decision engine refused to answer automatically, so an
operator can look at them and act:

- dismiss: nothing to do (e.g. the hold was correct and no reply is needed)
- take_over: a human answers; automation is stopped for the thread
- release: hand the thread back to automation (clears manual ownership)

Persisted to JSON when a path is given, memory-only otherwise.
"""

import json
import logging
import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger("autoresponder.gateway.review_queue")


class ReviewAction(str, Enum):
    """Operator decisions on a held reply"""
    DISMISS = "dismiss"
    TAKE_OVER = "take_over"
    RELEASE = "release"


_STATUS_BY_ACTION = {
    ReviewAction.DISMISS: "dismissed",
    ReviewAction.TAKE_OVER: "taken_over",
    ReviewAction.RELEASE: "released",
}


@dataclass
class ReviewItem:
    """Item in the review queue"""
    item_id: str
    thread_id: str
    message_id: str
    template_id: str
    confidence: float
    reasons: List[str] = field(default_factory=list)
    lead_email: str = ""
    body_excerpt: str = ""
    created_at: str = ""
    status: str = "pending"  # pending, dismissed, taken_over, released
    reviewer: Optional[str] = None
    resolved_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReviewItem":
        return cls(
            item_id=data["item_id"],
            thread_id=data["thread_id"],
            message_id=data["message_id"],
            template_id=data.get("template_id", ""),
            confidence=data.get("confidence", 0.0),
            reasons=data.get("reasons", []),
            lead_email=data.get("lead_email", ""),
            body_excerpt=data.get("body_excerpt", ""),
            created_at=data.get("created_at", ""),
            status=data.get("status", "pending"),
            reviewer=data.get("reviewer"),
            resolved_at=data.get("resolved_at"),
        )


class ReviewQueue:
    """
    Manages held replies awaiting a human.

    Workflow:
    1. The pipeline adds every blocked (non hard-stop) decision
    2. An operator reviews via the HTTP API
    3. The chosen action is applied to the thread state by the caller
    """

    def __init__(self, queue_path: Optional[Path] = None):
        """
        Initialize review queue.

        Args:
            queue_path: JSON file to persist to (None = memory only)
        """
        self._queue_path = Path(queue_path) if queue_path else None
        self._queue: List[ReviewItem] = []
        self._mutex = threading.Lock()
        self._load_queue()

    def _load_queue(self) -> None:
        """Load queue from disk"""
        if self._queue_path is None or not self._queue_path.exists():
            self._queue = []
            return

        try:
            with open(self._queue_path) as f:
                data = json.load(f)
            self._queue = [ReviewItem.from_dict(item) for item in data]
        except (json.JSONDecodeError, IOError, KeyError, TypeError) as e:
            logger.warning("Failed to load review queue: %s", e)
            self._queue = []

    def _save_queue(self) -> None:
        """Save queue to disk"""
        if self._queue_path is None:
            return
        self._queue_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._queue_path, "w") as f:
            json.dump([asdict(item) for item in self._queue], f, indent=2, default=str)

    def add(
        self,
        thread_id: str,
        message_id: str,
        template_id: str,
        confidence: float,
        reasons: List[str],
        lead_email: str = "",
        body: str = "",
    ) -> str:
        """
        Add a held reply.

        Returns:
            Item ID
        """
        item = ReviewItem(
            item_id=uuid.uuid4().hex[:12],
            thread_id=thread_id,
            message_id=message_id,
            template_id=template_id,
            confidence=confidence,
            reasons=list(reasons),
            lead_email=lead_email,
            body_excerpt=(body or "")[:500],
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        with self._mutex:
            self._queue.append(item)
            self._save_queue()

        logger.info(
            "Queued %s for review (thread %s, template %s, confidence %.2f)",
            item.item_id, thread_id, template_id or "<missing>", confidence,
        )
        return item.item_id

    def get_pending(self) -> List[ReviewItem]:
        """Get all pending review items"""
        with self._mutex:
            return [item for item in self._queue if item.status == "pending"]

    def get_item(self, item_id: str) -> Optional[ReviewItem]:
        """Get a specific review item by ID"""
        with self._mutex:
            for item in self._queue:
                if item.item_id == item_id:
                    return item
        return None

    def resolve(
        self,
        item_id: str,
        action: ReviewAction,
        reviewer: Optional[str] = None,
    ) -> Optional[ReviewItem]:
        """
        Record an operator decision.

        Returns:
            The updated item, or None if it does not exist

        Raises:
            ValueError: If the item was already resolved
        """
        action = ReviewAction(action)
        with self._mutex:
            item = next((i for i in self._queue if i.item_id == item_id), None)
            if item is None:
                return None
            if item.status != "pending":
                raise ValueError(f"Item {item_id} already resolved ({item.status})")

            item.status = _STATUS_BY_ACTION[action]
            item.reviewer = reviewer
            item.resolved_at = datetime.now(timezone.utc).isoformat()
            self._save_queue()

        logger.info("Review item %s resolved: %s by %s", item_id, item.status, reviewer or "unknown")
        return item

    def remove(self, item_id: str) -> bool:
        """Remove an item from the queue"""
        with self._mutex:
            for i, item in enumerate(self._queue):
                if item.item_id == item_id:
                    del self._queue[i]
                    self._save_queue()
                    return True
        return False

    def clear_resolved(self) -> int:
        """Clear all resolved items from queue"""
        with self._mutex:
            original_len = len(self._queue)
            self._queue = [item for item in self._queue if item.status == "pending"]
            self._save_queue()
            return original_len - len(self._queue)

    def get_stats(self) -> Dict[str, int]:
        """Get queue statistics"""
        stats = {
            "total": 0,
            "pending": 0,
            "dismissed": 0,
            "taken_over": 0,
            "released": 0,
        }
        with self._mutex:
            stats["total"] = len(self._queue)
            for item in self._queue:
                if item.status in stats:
                    stats[item.status] += 1
        return stats

    def format_for_review(self, item: ReviewItem) -> str:
        """Format a review item for display"""
        lines = [
            "=" * 60,
            f"REVIEW ITEM: {item.item_id}",
            f"Thread: {item.thread_id}",
            f"Message: {item.message_id}",
            f"Lead: {item.lead_email or 'N/A'}",
            f"Template: {item.template_id or 'N/A'} (confidence: {item.confidence:.2f})",
            f"Created: {item.created_at}",
            "=" * 60,
            "",
            "Held because:",
        ]
        if item.reasons:
            lines.extend(f"  - {reason}" for reason in item.reasons)
        else:
            lines.append("  (no reason recorded)")

        lines.extend([
            "",
            "Reply:",
            f"  {item.body_excerpt[:300] or '(empty)'}",
            "",
            "-" * 60,
            "ACTIONS: dismiss | take_over | release",
            "=" * 60,
        ])
        return "\n".join(lines)
