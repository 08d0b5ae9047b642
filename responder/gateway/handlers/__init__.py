"""
Source Handlers

Each handler converts provider-specific webhook payloads to events.

Available Handlers:
- ReachinboxHandler: Lead replies (REPLY_RECEIVED)
- SignWellHandler: Agreement document lifecycle
"""

from .base import BaseHandler, InboundEvent, InvalidEventError
from .reachinbox import ReachinboxHandler
from .signwell import SignWellEvent, SignWellHandler

__all__ = [
    "BaseHandler",
    "InboundEvent",
    "InvalidEventError",
    "ReachinboxHandler",
    "SignWellEvent",
    "SignWellHandler",
]
