"""
Autoresponder Common Module

Configuration, the LLM client and the outbound transports.
"""

from .config import ResponderConfig, load_config
from .errors import TransportError
from .llm_client import LLMClient
from .reachinbox_client import ReachinboxClient, ReachinboxError
from .esign_client import AgreementRecipient, SignWellClient, SignWellError
from .alerts import SlackAlerter

__all__ = [
    "ResponderConfig",
    "load_config",
    "TransportError",
    "LLMClient",
    "ReachinboxClient",
    "ReachinboxError",
    "AgreementRecipient",
    "SignWellClient",
    "SignWellError",
    "SlackAlerter",
]
