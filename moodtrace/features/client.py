"""
LLM client and emotion classifier.

LLMClient wraps an OpenAI-compatible chat endpoint (TogetherAI, OpenAI or
a custom base URL) behind a chat() call, with thread-safe lazy
initialization. LLMClassifier adapts it to the coordinator's
send(prompt) -> str seam using the emotion-expert system prompt.
"""

import logging
import os
import threading
from typing import Dict, Optional

from openai import OpenAI

from moodtrace.utils.errors import ClassifierError, ModelLoadError


# Default models per provider
DEFAULT_MODELS: Dict[str, str] = {
    "togetherai": "meta-llama/Llama-3.3-70B-Instruct-Turbo",
    "openai": "gpt-4o-mini",
}

# Base URLs per provider
PROVIDER_BASE_URLS: Dict[str, Optional[str]] = {
    "togetherai": "https://api.together.xyz/v1",
    "openai": None,  # OpenAI SDK uses default
}

# Environment variables checked for each provider's key, in order
PROVIDER_KEY_VARS: Dict[str, tuple] = {
    "togetherai": ("TOGETHER_API_KEY", "TOGETHERAI_API_KEY"),
    "openai": ("OPENAI_API_KEY",),
    "custom": ("LLM_API_KEY",),
}

DEFAULT_TIMEOUT = 30.0  # seconds

EMOTION_SYSTEM_PROMPT = """\
You are a professional music emotion analysis expert. You need to analyze based on Plutchik's eight basic emotions model:
1. Joy
2. Trust
3. Fear
4. Surprise
5. Sadness
6. Disgust
7. Anger
8. Anticipation

Your tasks are:
1. Analyze the provided audio feature data and video text information
2. Must choose one emotion that matches best from the above 8 emotions
3. The answer format must contain the line "Primary Emotion: [Emotion Type]"
4. Then you can briefly explain the basis for your judgment

Note:
- Must and can only choose one from the 8 basic emotions
- Do not use other emotion vocabulary
- Keep the answer concise and clear"""


class LLMClient:
    """
    Thread-safe, lazy-initialized OpenAI-compatible LLM client.

    Wraps provider-specific details behind a clean chat() interface.
    The SDK client is created on first use and reused across calls,
    guarded by double-checked locking.
    """

    def __init__(
        self,
        provider: str = "togetherai",
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: float = 0.3,
        max_tokens: int = 500,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.provider = provider.lower()
        self.model = model or DEFAULT_MODELS.get(
            self.provider, DEFAULT_MODELS["togetherai"]
        )
        self.base_url = base_url or PROVIDER_BASE_URLS.get(self.provider)
        self.default_temperature = temperature
        self.default_max_tokens = max_tokens
        self.timeout = timeout
        self._api_key = self._resolve_api_key(api_key)
        self._client = None
        self._lock = threading.Lock()
        self.logger = logging.getLogger("features.client")

        if self.provider == "custom" and not self.base_url:
            raise ModelLoadError(
                "Provider 'custom' requires llm.base_url",
                model_name=self.model,
            )

    @property
    def model_id(self) -> str:
        """Provider/model identifier string."""
        return f"{self.provider}/{self.model}"

    @property
    def client(self) -> OpenAI:
        """Thread-safe lazy-initialized OpenAI client."""
        if self._client is None:
            with self._lock:
                if self._client is None:
                    self._client = self._create_client()
        return self._client

    def chat(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """
        Send a chat completion request.

        Args:
            system_prompt: System role message.
            user_prompt: User role message.
            temperature: Override default temperature.
            max_tokens: Override default max_tokens.

        Returns:
            The assistant's response text.

        Raises:
            ModelLoadError: If no API key is configured.
            ClassifierError: If the API call fails.
        """
        client = self.client

        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature if temperature is not None else self.default_temperature,
                max_tokens=max_tokens or self.default_max_tokens,
            )
            content = response.choices[0].message.content
        except Exception as e:
            raise ClassifierError(
                f"LLM API call failed: {e}",
                provider=self.provider,
                original_error=e,
            ) from e

        if content is None:
            raise ClassifierError("LLM returned an empty message", provider=self.provider)

        self.logger.debug(f"Response from {self.model_id}: {len(content)} chars")
        return content

    def _resolve_api_key(self, api_key: Optional[str]) -> Optional[str]:
        """Resolve API key from parameter, template, or environment."""
        if api_key:
            if api_key.startswith("${") and api_key.endswith("}"):
                var_name = api_key[2:-1]
                return os.environ.get(var_name)
            return api_key

        for var_name in PROVIDER_KEY_VARS.get(self.provider, ()):
            value = os.environ.get(var_name)
            if value:
                return value
        return None

    def _create_client(self) -> OpenAI:
        """Create the OpenAI-compatible client for the configured provider."""
        if not self._api_key:
            env_vars = " or ".join(PROVIDER_KEY_VARS.get(self.provider, ("an API key",)))
            raise ModelLoadError(
                f"No API key found for {self.provider}. Set {env_vars} environment variable.",
                model_name=self.provider,
            )

        self.logger.info(f"Creating LLM client for {self.model_id}")
        if self.base_url:
            return OpenAI(api_key=self._api_key, base_url=self.base_url, timeout=self.timeout)
        return OpenAI(api_key=self._api_key, timeout=self.timeout)


class LLMClassifier:
    """Emotion classifier backed by an LLMClient."""

    def __init__(self, client: LLMClient, system_prompt: str = EMOTION_SYSTEM_PROMPT):
        self.client = client
        self.system_prompt = system_prompt
        self.logger = logging.getLogger("features.classifier")

    def send(self, prompt: str) -> str:
        """
        Classify one prompt.

        Raises:
            ClassifierError: If the request fails
        """
        self.logger.debug(f"Sending prompt of {len(prompt)} chars to {self.client.model_id}")
        return self.client.chat(self.system_prompt, prompt)


class PromptEchoClassifier:
    """Offline classifier that answers with the prompt it was given."""

    def send(self, prompt: str) -> str:
        return prompt


def create_llm_client(config: Dict) -> LLMClient:
    """
    Factory function to create LLMClient from config dict.

    Args:
        config: The 'llm' section from config.yaml.

    Returns:
        Configured LLMClient instance.
    """
    return LLMClient(
        provider=config.get("provider", "togetherai"),
        model=config.get("model"),
        api_key=config.get("api_key"),
        base_url=config.get("base_url"),
        temperature=config.get("temperature", 0.3),
        max_tokens=config.get("max_tokens", 500),
        timeout=config.get("timeout", DEFAULT_TIMEOUT),
    )


def create_llm_classifier(config: Dict) -> LLMClassifier:
    """Build an LLMClassifier from the full configuration dict."""
    return LLMClassifier(create_llm_client(config.get("llm", {})))
