"""
Configuration Management for the Autoresponder

Loads configuration from ~/.autoresponder/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field

logger = logging.getLogger("autoresponder.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".autoresponder"
CONFIG_PATH = CONFIG_DIR / "config.json"
LOGS_DIR = CONFIG_DIR / "logs"
REVIEW_QUEUE_PATH = CONFIG_DIR / "review_queue.json"

DEFAULT_AUTOMATION_MARKER = "<!-- autoresponder:auto -->"


@dataclass
class ReachinboxConfig:
    """Reachinbox (campaign mailbox) configuration"""
    api_key: str = ""
    base_url: str = "https://api.reachinbox.ai"
    webhook_secret: str = ""  # empty = no shared-secret check


@dataclass
class LLMConfig:
    """Classifier LLM provider configuration"""
    provider: str = "openai"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    google_api_key: str = ""
    google_model: str = "gemini-2.0-flash-exp"
    max_retries: int = 1
    retry_base_delay: float = 1.0
    timeout: float = 30.0


@dataclass
class SlackConfig:
    """Slack incoming-webhook alerts"""
    webhook_url: str = ""


@dataclass
class ESignConfig:
    """SignWell e-signature configuration"""
    api_key: str = ""
    base_url: str = "https://www.signwell.com/api/v1/"
    template_id: str = ""
    sender_email: str = ""
    document_name: str = "Contingency Agreement"
    webhook_secret: str = ""  # empty = no HMAC check


@dataclass
class EngineConfig:
    """Decision engine thresholds and policies"""
    confidence_threshold: float = 0.70
    agreement_threshold: float = 0.60
    depth_limit: int = 2
    process_thread_id_collisions: bool = False
    automation_marker: str = DEFAULT_AUTOMATION_MARKER
    marker_rollout_date: str = ""  # ISO date; empty = no cutoff


@dataclass
class ServerConfig:
    """HTTP server configuration"""
    host: str = "0.0.0.0"
    port: int = 3000
    review_queue_path: str = str(REVIEW_QUEUE_PATH)
    log_level: str = "INFO"


@dataclass
class ResponderConfig:
    """Main autoresponder configuration"""
    reachinbox: ReachinboxConfig = field(default_factory=ReachinboxConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    slack: SlackConfig = field(default_factory=SlackConfig)
    esign: ESignConfig = field(default_factory=ESignConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


def _parse_reachinbox_config(data: dict) -> ReachinboxConfig:
    """Parse reachinbox section from config dict"""
    section = data.get("reachinbox", {})
    return ReachinboxConfig(
        api_key=section.get("api_key", ""),
        base_url=section.get("base_url", "https://api.reachinbox.ai"),
        webhook_secret=section.get("webhook_secret", ""),
    )


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    section = data.get("llm", {})
    return LLMConfig(
        provider=section.get("provider", "openai"),
        anthropic_api_key=section.get("anthropic_api_key", ""),
        anthropic_model=section.get("anthropic_model", "claude-sonnet-4-20250514"),
        openai_api_key=section.get("openai_api_key", ""),
        openai_model=section.get("openai_model", "gpt-4o-mini"),
        google_api_key=section.get("google_api_key", ""),
        google_model=section.get("google_model", "gemini-2.0-flash-exp"),
        max_retries=section.get("max_retries", 1),
        retry_base_delay=section.get("retry_base_delay", 1.0),
        timeout=section.get("timeout", 30.0),
    )


def _parse_slack_config(data: dict) -> SlackConfig:
    section = data.get("slack", {})
    return SlackConfig(webhook_url=section.get("webhook_url", ""))


def _parse_esign_config(data: dict) -> ESignConfig:
    """Parse esign section from config dict"""
    section = data.get("esign", {})
    return ESignConfig(
        api_key=section.get("api_key", ""),
        base_url=section.get("base_url", "https://www.signwell.com/api/v1/"),
        template_id=section.get("template_id", ""),
        sender_email=section.get("sender_email", ""),
        document_name=section.get("document_name", "Contingency Agreement"),
        webhook_secret=section.get("webhook_secret", ""),
    )


def _parse_engine_config(data: dict) -> EngineConfig:
    """Parse engine section from config dict"""
    section = data.get("engine", {})
    return EngineConfig(
        confidence_threshold=section.get("confidence_threshold", 0.70),
        agreement_threshold=section.get("agreement_threshold", 0.60),
        depth_limit=section.get("depth_limit", 2),
        process_thread_id_collisions=section.get("process_thread_id_collisions", False),
        automation_marker=section.get("automation_marker", DEFAULT_AUTOMATION_MARKER),
        marker_rollout_date=section.get("marker_rollout_date", ""),
    )


def _parse_server_config(data: dict) -> ServerConfig:
    section = data.get("server", {})
    return ServerConfig(
        host=section.get("host", "0.0.0.0"),
        port=section.get("port", 3000),
        review_queue_path=section.get("review_queue_path", str(REVIEW_QUEUE_PATH)),
        log_level=section.get("log_level", "INFO"),
    )


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config() -> ResponderConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.autoresponder/config.json)
    3. Default values
    """
    config = ResponderConfig()

    # Load from config file if exists
    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.reachinbox = _parse_reachinbox_config(data)
            config.llm = _parse_llm_config(data)
            config.slack = _parse_slack_config(data)
            config.esign = _parse_esign_config(data)
            config.engine = _parse_engine_config(data)
            config.server = _parse_server_config(data)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file: %s", e)

    # Environment variable overrides
    if os.getenv("REACHINBOX_API_KEY"):
        config.reachinbox.api_key = os.getenv("REACHINBOX_API_KEY")
    if os.getenv("REACHINBOX_BASE_URL"):
        config.reachinbox.base_url = os.getenv("REACHINBOX_BASE_URL")
    if os.getenv("REACHINBOX_WEBHOOK_SECRET"):
        config.reachinbox.webhook_secret = os.getenv("REACHINBOX_WEBHOOK_SECRET")

    if os.getenv("SLACK_WEBHOOK_URL"):
        config.slack.webhook_url = os.getenv("SLACK_WEBHOOK_URL")

    if os.getenv("ESIGN_API_KEY"):
        config.esign.api_key = os.getenv("ESIGN_API_KEY")
    if os.getenv("ESIGN_TEMPLATE_ID"):
        config.esign.template_id = os.getenv("ESIGN_TEMPLATE_ID")
    if os.getenv("ESIGN_SENDER_EMAIL"):
        config.esign.sender_email = os.getenv("ESIGN_SENDER_EMAIL")
    if os.getenv("SIGNWELL_WEBHOOK_SECRET"):
        config.esign.webhook_secret = os.getenv("SIGNWELL_WEBHOOK_SECRET")

    if os.getenv("CONFIDENCE_THRESHOLD"):
        config.engine.confidence_threshold = float(os.getenv("CONFIDENCE_THRESHOLD"))
    if os.getenv("AGREEMENT_THRESHOLD"):
        config.engine.agreement_threshold = float(os.getenv("AGREEMENT_THRESHOLD"))
    if os.getenv("AUTOMATION_MARKER"):
        config.engine.automation_marker = os.getenv("AUTOMATION_MARKER")
    if os.getenv("MARKER_ROLLOUT_DATE"):
        config.engine.marker_rollout_date = os.getenv("MARKER_ROLLOUT_DATE")
    if os.getenv("PROCESS_THREAD_ID_COLLISIONS"):
        config.engine.process_thread_id_collisions = _env_flag(os.getenv("PROCESS_THREAD_ID_COLLISIONS"))

    if os.getenv("PORT"):
        config.server.port = int(os.getenv("PORT"))
    if os.getenv("LOG_LEVEL"):
        config.server.log_level = os.getenv("LOG_LEVEL")

    # LLM env var overrides
    _env_llm_map = {
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "ANTHROPIC_MODEL": "anthropic_model",
        "OPENAI_API_KEY": "openai_api_key",
        "OPENAI_MODEL": "openai_model",
        "GOOGLE_API_KEY": "google_api_key",
        "GEMINI_API_KEY": "google_api_key",
        "GOOGLE_MODEL": "google_model",
        "AUTORESPONDER_LLM_PROVIDER": "provider",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)

    return config


def ensure_directories() -> None:
    """Ensure required directories exist"""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
