"""
Provider-agnostic LLM client for the reply classifier.

OpenAI (default), Anthropic and Google Gemini behind one ``generate`` call.
SDKs are imported only for the configured provider. JSON output is requested
natively where the provider supports it (OpenAI ``response_format``, Gemini
``response_mime_type``); Anthropic relies on the prompt.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Any, Dict, List, Optional

from .config import LLMConfig

logger = logging.getLogger("autoresponder.common.llm_client")

SUPPORTED_PROVIDERS = ("openai", "anthropic", "google")


class LLMClient:
    """Text generation over the configured provider's SDK."""

    def __init__(
        self,
        provider: str = "openai",
        model: str = "",
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
    ) -> None:
        self.provider = (provider or "openai").lower()
        self.model = model
        self._client: Any = None
        self._google_models: Dict[str, Any] = {}

        if self.provider not in SUPPORTED_PROVIDERS:
            logger.warning("Unsupported LLM provider: %s", self.provider)
            return

        api_key = {
            "openai": openai_api_key,
            "anthropic": anthropic_api_key,
            "google": google_api_key,
        }[self.provider]
        if not api_key:
            logger.info("%s API key not provided, LLM client unavailable", self.provider)
            return

        try:
            self._client = getattr(self, f"_connect_{self.provider}")(api_key)
        except ImportError as e:
            logger.warning("SDK for %s not installed: %s", self.provider, e)
        except Exception as e:
            logger.warning("Failed to initialize %s client: %s", self.provider, e)

    @classmethod
    def from_config(cls, config: LLMConfig) -> "LLMClient":
        """Build a client for the configured provider and its model"""
        provider = (config.provider or "openai").lower()
        return cls(
            provider=provider,
            model=getattr(config, f"{provider}_model", ""),
            anthropic_api_key=config.anthropic_api_key or None,
            openai_api_key=config.openai_api_key or None,
            google_api_key=config.google_api_key or None,
        )

    @staticmethod
    def _connect_openai(api_key: str):
        from openai import OpenAI

        return OpenAI(api_key=api_key)

    @staticmethod
    def _connect_anthropic(api_key: str):
        import anthropic

        return anthropic.Anthropic(api_key=api_key)

    @staticmethod
    def _connect_google(api_key: str):
        import google.generativeai as genai

        genai.configure(api_key=api_key)
        # The module itself; models are built per system prompt
        return genai

    @property
    def is_available(self) -> bool:
        return self._client is not None

    def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        max_tokens: int = 512,
        timeout: float = 30.0,
        temperature: Optional[float] = None,
        json_mode: bool = False,
    ) -> str:
        """
        Generate a completion for a single user prompt.

        Raises:
            RuntimeError: If no provider client is available
            Exception: Whatever the provider SDK raises (timeouts, HTTP errors)
        """
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        if self.provider == "openai":
            return self._generate_openai(prompt, system, max_tokens, timeout, temperature, json_mode)
        if self.provider == "anthropic":
            return self._generate_anthropic(prompt, system, max_tokens, timeout, temperature)
        return self._generate_google(prompt, system, max_tokens, timeout, temperature, json_mode)

    def _generate_openai(self, prompt, system, max_tokens, timeout, temperature, json_mode) -> str:
        messages: List[Dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        options: Dict[str, Any] = {}
        if temperature is not None:
            options["temperature"] = temperature
        if json_mode:
            options["response_format"] = {"type": "json_object"}

        response = self._client.chat.completions.create(
            model=self.model,
            messages=messages,
            max_tokens=max_tokens,
            timeout=timeout,
            **options,
        )
        return (response.choices[0].message.content or "").strip()

    def _generate_anthropic(self, prompt, system, max_tokens, timeout, temperature) -> str:
        options: Dict[str, Any] = {}
        if temperature is not None:
            options["temperature"] = temperature

        response = self._client.messages.create(
            model=self.model,
            system=system,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=max_tokens,
            timeout=timeout,
            **options,
        )
        return response.content[0].text.strip()

    def _google_model(self, system: Optional[str]):
        key = hashlib.md5((system or "").encode()).hexdigest()
        model = self._google_models.get(key)
        if model is None:
            params = {"model_name": self.model}
            if system:
                params["system_instruction"] = system
            model = self._client.GenerativeModel(**params)
            self._google_models[key] = model
        return model

    def _generate_google(self, prompt, system, max_tokens, timeout, temperature, json_mode) -> str:
        generation_config: Dict[str, Any] = {"max_output_tokens": max_tokens}
        if temperature is not None:
            generation_config["temperature"] = temperature
        if json_mode:
            generation_config["response_mime_type"] = "application/json"

        response = self._google_model(system).generate_content(
            prompt,
            generation_config=generation_config,
            request_options={"timeout": timeout},
        )
        return response.text.strip()
