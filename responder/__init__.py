"""
Autoresponder

Webhook service that answers replies to cold-outreach campaigns.

Philosophy:
- The classifier proposes, the decision engine disposes
- Fail closed: anything unknown, ambiguous or duplicated goes to a human
- Irreversible milestones (agreement sent, unsubscribe) are never undone
- One inbound event flows one way: signals -> decision -> action -> state

Usage:
    from responder.common import load_config
    from responder.engine import DecisionEngine, ConversationStateStore
    from responder.gateway import ReplyPipeline, ReplyClassifier
"""

__version__ = "0.1.0"
