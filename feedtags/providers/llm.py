"""
Classification providers using LLMs.

Each provider makes exactly one request per classify() call. Retries are
disabled in the SDK clients: a failed entry stays unclassified and is
picked up again the next time it is enqueued.
"""

import logging
import os

from ..config import (
    DEFAULT_ANTHROPIC_MODEL,
    DEFAULT_LOCAL_MODEL,
    DEFAULT_OPENAI_MODEL,
    DEFAULT_TIMEOUT,
    Provider,
)
from ..errors import ConfigurationError, NetworkError, ProviderHTTPError
from .base import ConnectionStatus, get_registry

logger = logging.getLogger(__name__)

TEMPERATURE = 0.3


def _api_error_message(exc: Exception) -> str:
    """Pull the vendor's error message out of an SDK status error.

    Anthropic bodies look like {"type": "error", "error": {"message": ...}};
    the OpenAI SDK has already unwrapped "error", leaving {"message": ...}.
    """
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        inner = body.get("error")
        if isinstance(inner, dict) and inner.get("message"):
            return str(inner["message"])
        if body.get("message"):
            return str(body["message"])
    return getattr(exc, "message", None) or str(exc)


class OllamaClassifier:
    """
    Classifier using Ollama's local generate API.

    Respects OLLAMA_HOST env var (default: http://localhost:11434).
    """

    name = "ollama"

    # Qwen3 models produce a long "thinking" preamble unless told not to
    THINKING_MODEL_PREFIXES = ("qwen3",)
    NO_THINKING_DIRECTIVE = "Respond directly without thinking process. "

    NUM_PREDICT = 200

    def __init__(
        self,
        model: str = DEFAULT_LOCAL_MODEL,
        base_url: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        from .ollama_utils import ollama_base_url
        self.model = model
        self.base_url = ollama_base_url(base_url)
        self.timeout = timeout

    def classify(self, prompt: str) -> str:
        """Classify using Ollama /api/generate."""
        import requests

        if self.model.startswith(self.THINKING_MODEL_PREFIXES):
            prompt = self.NO_THINKING_DIRECTIVE + prompt

        try:
            response = requests.post(
                f"{self.base_url}/api/generate",
                json={
                    "model": self.model,
                    "prompt": prompt,
                    "stream": False,
                    "options": {
                        "temperature": TEMPERATURE,
                        "num_predict": self.NUM_PREDICT,
                    },
                },
                timeout=(10, self.timeout),  # (connect, read)
            )
        except requests.RequestException as e:
            raise NetworkError(
                f"Ollama classification failed (model={self.model}): {e}",
                provider=self.name,
            ) from e

        if not response.ok:
            detail = response.text[:200] if response.text else ""
            raise ProviderHTTPError(
                f"Ollama classification failed (model={self.model}): "
                f"HTTP {response.status_code} from {self.base_url}. {detail}",
                provider=self.name,
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderHTTPError(
                f"Ollama returned invalid JSON (model={self.model})",
                provider=self.name,
                status_code=response.status_code,
            ) from e
        if not isinstance(data, dict):
            raise ProviderHTTPError(
                f"Ollama returned an unexpected response (model={self.model})",
                provider=self.name,
                status_code=response.status_code,
            )

        if data.get("done_reason") == "length":
            logger.warning(
                "Ollama response truncated at %d tokens (model=%s)",
                self.NUM_PREDICT, self.model,
            )

        # Thinking-mode models may leave "response" empty
        text = data.get("response") or data.get("thinking") or ""
        return str(text)

    def check(self) -> ConnectionStatus:
        """Check that Ollama is reachable and the model is installed."""
        from .ollama_utils import ollama_has_model, ollama_list_models

        try:
            installed = ollama_list_models(self.base_url)
        except RuntimeError as e:
            return ConnectionStatus(False, str(e))
        if not ollama_has_model(installed, self.model):
            return ConnectionStatus(
                False,
                f"Connected to Ollama, but model '{self.model}' is not installed. "
                f"Run: ollama pull {self.model}",
            )
        return ConnectionStatus(True, f"Connected to Ollama ({self.model})")


class AnthropicClassifier:
    """
    Classifier using Anthropic's Messages API.

    Authentication (checked in priority order):
    1. api_key parameter (if provided)
    2. ANTHROPIC_API_KEY
    """

    name = "anthropic"

    MAX_TOKENS = 100

    def __init__(
        self,
        model: str = DEFAULT_ANTHROPIC_MODEL,
        api_key: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        if not key:
            raise ConfigurationError(
                "Anthropic API key not configured. Set ANTHROPIC_API_KEY "
                "or anthropic_api_key in the [provider] section of feedtags.toml"
            )

        from anthropic import Anthropic

        self.model = model
        self._client = Anthropic(api_key=key, max_retries=0, timeout=timeout)

    def _create(self, prompt: str, max_tokens: int):
        import anthropic

        try:
            return self._client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=TEMPERATURE,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIStatusError as e:
            raise ProviderHTTPError(
                f"Claude API error: {_api_error_message(e)}",
                provider=self.name,
                status_code=e.status_code,
            ) from e
        except anthropic.APIConnectionError as e:
            raise NetworkError(
                f"Claude API unreachable: {e}", provider=self.name,
            ) from e

    def classify(self, prompt: str) -> str:
        """Classify using Anthropic Claude."""
        response = self._create(prompt, self.MAX_TOKENS)
        if not response.content:
            return ""
        text = getattr(response.content[0], "text", None)
        if text is None:
            raise ProviderHTTPError(
                "Claude API returned a non-text content block",
                provider=self.name,
            )
        return text

    def check(self) -> ConnectionStatus:
        """Send a minimal message to verify the key."""
        try:
            self._create("Hi", 10)
        except (ProviderHTTPError, NetworkError) as e:
            return ConnectionStatus(False, str(e))
        return ConnectionStatus(True, f"Connected to Claude ({self.model})")


class OpenAIClassifier:
    """
    Classifier using OpenAI's chat completions API.

    Requires: api_key parameter, FEEDTAGS_OPENAI_API_KEY or OPENAI_API_KEY.
    """

    name = "openai"

    MAX_TOKENS = 100

    def __init__(
        self,
        model: str = DEFAULT_OPENAI_MODEL,
        api_key: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        key = (
            api_key or
            os.environ.get("FEEDTAGS_OPENAI_API_KEY") or
            os.environ.get("OPENAI_API_KEY")
        )
        if not key:
            raise ConfigurationError(
                "OpenAI API key not configured. Set FEEDTAGS_OPENAI_API_KEY, "
                "OPENAI_API_KEY, or openai_api_key in feedtags.toml"
            )

        from openai import OpenAI

        self.model = model
        self._client = OpenAI(api_key=key, max_retries=0, timeout=timeout)

        # GPT-5+ and reasoning models use a different API surface:
        # - max_completion_tokens instead of max_tokens
        # - temperature must be omitted (only default=1 supported)
        self._new_api = self.model.startswith(("gpt-5", "o3", "o4"))

    def _completion_kwargs(self, max_tokens: int) -> dict:
        """Return model-appropriate kwargs for token limit and temperature."""
        if self._new_api:
            return {"max_completion_tokens": max_tokens}
        return {"max_tokens": max_tokens, "temperature": TEMPERATURE}

    def classify(self, prompt: str) -> str:
        """Classify using OpenAI."""
        import openai

        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                **self._completion_kwargs(self.MAX_TOKENS),
            )
        except openai.APIStatusError as e:
            raise ProviderHTTPError(
                f"OpenAI error: {_api_error_message(e)}",
                provider=self.name,
                status_code=e.status_code,
            ) from e
        except openai.APIConnectionError as e:
            raise NetworkError(
                f"OpenAI API unreachable: {e}", provider=self.name,
            ) from e

        if not response.choices:
            raise ProviderHTTPError(
                "OpenAI returned no choices", provider=self.name,
            )
        return response.choices[0].message.content or ""

    def check(self) -> ConnectionStatus:
        """List models to verify the key."""
        import openai

        try:
            self._client.models.list()
        except openai.APIStatusError as e:
            return ConnectionStatus(False, f"OpenAI error: {_api_error_message(e)}")
        except openai.APIConnectionError as e:
            return ConnectionStatus(False, f"OpenAI API unreachable: {e}")
        return ConnectionStatus(True, f"Connected to OpenAI ({self.model})")


# Register providers
_registry = get_registry()
_registry.register_classifier(Provider.LOCAL, OllamaClassifier)
_registry.register_classifier(Provider.ANTHROPIC, AnthropicClassifier)
_registry.register_classifier(Provider.OPENAI, OpenAIClassifier)
