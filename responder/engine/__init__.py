"""
Decision Engine

Deterministic core of the autoresponder. Nothing here performs I/O.

Key Components:
- normalize_signals: Regex signals merged with classifier signals
- DecisionEngine: Hard stops, soft blockers and confidence scoring
- ConversationStateStore: Per-thread milestones and per-thread locks
- detect_manual_owner: Human takeover detection from outbound history
"""

from .catalog import Template, canonical_template, is_auto_eligible
from .signals import Signal, detect, normalize_signals
from .state_store import ConversationStateStore, ThreadState
from .decision import Decision, DecisionEngine, decide_auto_respond
from .ownership import OwnershipVerdict, ThreadMessage, detect_manual_owner

__all__ = [
    "Template",
    "canonical_template",
    "is_auto_eligible",
    "Signal",
    "detect",
    "normalize_signals",
    "ConversationStateStore",
    "ThreadState",
    "Decision",
    "DecisionEngine",
    "decide_auto_respond",
    "OwnershipVerdict",
    "ThreadMessage",
    "detect_manual_owner",
]
