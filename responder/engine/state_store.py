"""
Conversation State Store

Process-lifetime state per thread (and per recipient address for
Do-Not-Contact). Every accessor returns the zero value for unknown keys:
an unknown thread is simply a new one.

Thread-safety:
- All maps are guarded by a single re-entrant lock, so accessors are safe
  from any thread.
- `lock(thread_id)` hands out one asyncio.Lock per thread key. The webhook
  pipeline holds it around its read-decide-send-write sequence so two
  deliveries for the same thread never interleave, while distinct threads
  run in parallel.

Nothing here expires; entries live until the process exits.
"""

import asyncio
import re
import threading
from email.utils import parseaddr
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, FrozenSet, List, Optional, Set


@dataclass(frozen=True)
class ThreadState:
    """Immutable snapshot of one thread, as consumed by the decision engine"""
    auto_replies_sent: int = 0
    agreement_sent: bool = False
    manual_owner: bool = False
    last_template_id: Optional[str] = None
    locked_roles: FrozenSet[str] = field(default_factory=frozenset)
    last_from_address: Optional[str] = None
    processed_message_ids: FrozenSet[str] = field(default_factory=frozenset)
    more_info_loop_count: int = 0


def normalize_address(address: Optional[str]) -> str:
    """Bare lower-cased address ("Jane <J@X.com>" -> "j@x.com")"""
    if not address:
        return ""
    _, addr = parseaddr(address)
    return (addr or address).strip().lower()


def _role_key(role: str) -> str:
    return re.sub(r"\s+", " ", role.strip()).lower()


class ConversationStateStore:
    """
    In-memory key-value state for conversations.

    Monotonic fields (agreement sent, unsubscribed, counters, processed ids,
    locked roles) have no unset operation. Manual ownership is the only flag
    with a reset, used to correct a false-positive takeover detection.
    """

    def __init__(self):
        self._mutex = threading.RLock()
        self._processed: Set[str] = set()
        self._processed_by_thread: Dict[str, Set[str]] = {}
        self._auto_replies: Dict[str, int] = {}
        self._more_info_loops: Dict[str, int] = {}
        self._agreement_sent: Set[str] = set()
        self._manual_owner: Dict[str, str] = {}  # thread -> who set it
        self._last_template: Dict[str, str] = {}
        self._locked_roles: Dict[str, List[str]] = {}
        self._last_from: Dict[str, str] = {}
        self._unsubscribed: Set[str] = set()
        self._thread_locks: Dict[str, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # Per-thread serialization
    # ------------------------------------------------------------------

    def _get_thread_lock(self, thread_id: str) -> asyncio.Lock:
        with self._mutex:
            lock = self._thread_locks.get(thread_id)
            if lock is None:
                lock = asyncio.Lock()
                self._thread_locks[thread_id] = lock
            return lock

    @asynccontextmanager
    async def lock(self, thread_id: str) -> AsyncIterator[None]:
        """Serialize work on one thread key"""
        thread_lock = self._get_thread_lock(thread_id)
        async with thread_lock:
            yield

    # ------------------------------------------------------------------
    # Processed message ids
    # ------------------------------------------------------------------

    def is_processed(self, message_id: str) -> bool:
        with self._mutex:
            return bool(message_id) and message_id in self._processed

    def mark_processed(self, message_id: str, thread_id: Optional[str] = None) -> None:
        if not message_id:
            return
        with self._mutex:
            self._processed.add(message_id)
            if thread_id:
                self._processed_by_thread.setdefault(thread_id, set()).add(message_id)

    # ------------------------------------------------------------------
    # Counters
    # ------------------------------------------------------------------

    def get_auto_replies_sent(self, thread_id: str) -> int:
        with self._mutex:
            return self._auto_replies.get(thread_id, 0)

    def increment_auto_replies_sent(self, thread_id: str) -> int:
        with self._mutex:
            count = self._auto_replies.get(thread_id, 0) + 1
            self._auto_replies[thread_id] = count
            return count

    def get_more_info_loop_count(self, thread_id: str) -> int:
        with self._mutex:
            return self._more_info_loops.get(thread_id, 0)

    def increment_more_info_loop(self, thread_id: str) -> int:
        with self._mutex:
            count = self._more_info_loops.get(thread_id, 0) + 1
            self._more_info_loops[thread_id] = count
            return count

    # ------------------------------------------------------------------
    # Milestones
    # ------------------------------------------------------------------

    def is_agreement_sent(self, thread_id: str) -> bool:
        with self._mutex:
            return thread_id in self._agreement_sent

    def mark_agreement_sent(self, thread_id: str) -> None:
        with self._mutex:
            self._agreement_sent.add(thread_id)

    def is_unsubscribed(self, address: Optional[str]) -> bool:
        key = normalize_address(address)
        if not key:
            return False
        with self._mutex:
            return key in self._unsubscribed

    def mark_unsubscribed(self, address: Optional[str]) -> None:
        key = normalize_address(address)
        if not key:
            return
        with self._mutex:
            self._unsubscribed.add(key)

    def is_manual_owner(self, thread_id: str) -> bool:
        with self._mutex:
            return thread_id in self._manual_owner

    def mark_manual_owner(self, thread_id: str, source: str = "detected") -> None:
        """
        Flag a human takeover.

        Args:
            source: "detected" (outbound history) or "operator" (explicit
                takeover); an operator flag is never downgraded
        """
        with self._mutex:
            if self._manual_owner.get(thread_id) != "operator":
                self._manual_owner[thread_id] = source

    def get_manual_owner_source(self, thread_id: str) -> Optional[str]:
        with self._mutex:
            return self._manual_owner.get(thread_id)

    def reset_manual_owner(self, thread_id: str) -> bool:
        """Clear a takeover flag. Returns True if one was set."""
        with self._mutex:
            return self._manual_owner.pop(thread_id, None) is not None

    # ------------------------------------------------------------------
    # Last template / sender
    # ------------------------------------------------------------------

    def get_last_template_id(self, thread_id: str) -> Optional[str]:
        with self._mutex:
            return self._last_template.get(thread_id)

    def set_last_template_id(self, thread_id: str, template_id: str) -> None:
        if not template_id:
            return
        with self._mutex:
            self._last_template[thread_id] = template_id

    def get_last_from(self, thread_id: str) -> Optional[str]:
        with self._mutex:
            return self._last_from.get(thread_id)

    def set_last_from(self, thread_id: str, address: Optional[str]) -> None:
        key = normalize_address(address)
        if not key:
            return
        with self._mutex:
            self._last_from[thread_id] = key

    # ------------------------------------------------------------------
    # Locked roles
    # ------------------------------------------------------------------

    def get_locked_roles(self, thread_id: str) -> List[str]:
        with self._mutex:
            return list(self._locked_roles.get(thread_id, []))

    def add_locked_role(self, thread_id: str, role: Optional[str]) -> bool:
        """
        Lock a confirmed role for the thread.

        Membership ignores case and repeated whitespace; the first spelling
        seen is the one kept.

        Returns:
            True if the role was newly added
        """
        if not role or not role.strip():
            return False
        key = _role_key(role)
        with self._mutex:
            roles = self._locked_roles.setdefault(thread_id, [])
            if any(_role_key(r) == key for r in roles):
                return False
            roles.append(re.sub(r"\s+", " ", role.strip()))
            return True

    # ------------------------------------------------------------------
    # Snapshots and stats
    # ------------------------------------------------------------------

    def snapshot(self, thread_id: str) -> ThreadState:
        with self._mutex:
            return ThreadState(
                auto_replies_sent=self._auto_replies.get(thread_id, 0),
                agreement_sent=thread_id in self._agreement_sent,
                manual_owner=thread_id in self._manual_owner,
                last_template_id=self._last_template.get(thread_id),
                locked_roles=frozenset(self._locked_roles.get(thread_id, [])),
                last_from_address=self._last_from.get(thread_id),
                processed_message_ids=frozenset(self._processed_by_thread.get(thread_id, set())),
                more_info_loop_count=self._more_info_loops.get(thread_id, 0),
            )

    def stats(self) -> Dict[str, int]:
        with self._mutex:
            return {
                "processed_messages": len(self._processed),
                "threads_with_auto_replies": len(self._auto_replies),
                "threads_with_agreement_sent": len(self._agreement_sent),
                "threads_with_manual_owner": len(self._manual_owner),
                "threads_with_last_template": len(self._last_template),
                "threads_with_locked_roles": len(self._locked_roles),
                "threads_with_last_from": len(self._last_from),
                "threads_with_more_info_loops": len(self._more_info_loops),
                "unsubscribed_addresses": len(self._unsubscribed),
            }
