"""
Gateway - Webhooks In, Replies Out

Turns a lead's reply into either an automated answer or a held item for a
human, using the decision engine for the yes/no.

Key Components:
- ReachinboxHandler / SignWellHandler: Webhook parsing and authentication
- ReplyClassifier: LLM intent labelling
- ReplyPipeline: Dedup, ownership, classification, decision, send
- ReviewQueue: Replies held for an operator
- render_reply: Fixed reply scripts per template

Rules for the gateway:
1. One reply per inbound message id, ever
2. Unsubscribed leads never hear from us again
3. A thread with a human in it is left alone
4. At most one agreement per thread
5. When in doubt, hold for review
"""

from .classifier import Classification, ClassificationError, ReplyClassifier
from .pipeline import Outcome, PipelineResult, ReplyPipeline
from .review_queue import ReviewAction, ReviewItem, ReviewQueue
from .scripts import render_reply

__all__ = [
    "Classification",
    "ClassificationError",
    "ReplyClassifier",
    "Outcome",
    "PipelineResult",
    "ReplyPipeline",
    "ReviewAction",
    "ReviewItem",
    "ReviewQueue",
    "render_reply",
]
