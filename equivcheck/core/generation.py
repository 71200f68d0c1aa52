"""
HTTP text-generation adapter.

HttpTextGenerator implements TextGenerationPort against any
OpenAI-compatible chat-completions endpoint (hosted APIs, vLLM, Ollama,
LM Studio, ...). Response bodies from these services vary, so
extract_text() normalizes the known shapes into a single string and
raises GenerationError for anything else.

Usage:
    async with HttpTextGenerator(GenerationConfig.from_env()) as llm:
        text = await llm.generate("Say hello")
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import httpx

from equivcheck.core.errors import GenerationError

logger = logging.getLogger(__name__)


DEFAULT_BASE_URL = "http://localhost:8000/v1"
DEFAULT_CHAT_MODEL = "meta-llama/Llama-3.1-70B-Instruct"

ENV_PREFIX = "EQUIVCHECK_LLM_"


@dataclass
class GenerationConfig:
    """
    Connection settings for the text-generation endpoint.

    Attributes:
        base_url: Endpoint root, without the /chat/completions suffix
        model: Model name sent with every request
        api_key: Bearer token, if the endpoint needs one
        timeout: Request timeout in seconds (default: 30.0)
        temperature: Sampling temperature (default: 0.3)
        max_tokens: Completion length cap (default: 512)
    """
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_CHAT_MODEL
    api_key: Optional[str] = None
    timeout: float = 30.0
    temperature: float = 0.3
    max_tokens: int = 512

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "GenerationConfig":
        """
        Build a config from EQUIVCHECK_LLM_* environment variables.

        Recognized: BASE_URL, MODEL, API_KEY, TIMEOUT. Unset variables keep
        their defaults.
        """
        env = os.environ if environ is None else environ
        timeout = env.get(f"{ENV_PREFIX}TIMEOUT")
        return cls(
            base_url=env.get(f"{ENV_PREFIX}BASE_URL", DEFAULT_BASE_URL),
            model=env.get(f"{ENV_PREFIX}MODEL", DEFAULT_CHAT_MODEL),
            api_key=env.get(f"{ENV_PREFIX}API_KEY") or None,
            timeout=float(timeout) if timeout else 30.0,
        )


def extract_text(payload: Any) -> str:
    """
    Pull the generated text out of a chat-completion style response.

    Accepts a bare string, {"response": "..."}, or
    {"choices": [{"message": {"content": "..."}}]} / {"choices": [{"text": "..."}]}.

    Raises:
        GenerationError: If no text can be found
    """
    if isinstance(payload, str):
        return payload

    if isinstance(payload, Mapping):
        if isinstance(payload.get("response"), str):
            return payload["response"]

        choices = payload.get("choices")
        if isinstance(choices, list) and choices:
            first = choices[0]
            if isinstance(first, Mapping):
                message = first.get("message")
                if isinstance(message, Mapping):
                    return message.get("content") or ""
                if isinstance(first.get("text"), str):
                    return first["text"]

    raise GenerationError(f"Unrecognized generation response shape: {type(payload).__name__}")


class HttpTextGenerator:
    """
    Async chat-completions client.

    Args:
        config: Endpoint settings (default: GenerationConfig())
        client: Pre-built httpx.AsyncClient, e.g. with a mock transport.
                When omitted, one is created lazily and owned by this object.
    """

    def __init__(
        self,
        config: Optional[GenerationConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._config = config or GenerationConfig()
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "HttpTextGenerator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def client(self) -> httpx.AsyncClient:
        """Return the HTTP client, lazily creating it if needed."""
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self._config.api_key:
                headers["Authorization"] = f"Bearer {self._config.api_key}"
            self._client = httpx.AsyncClient(
                headers=headers,
                timeout=httpx.Timeout(self._config.timeout),
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def generate(self, prompt: str) -> str:
        """
        Send a single user message and return the model's reply.

        Raises:
            GenerationError: On transport errors, non-2xx responses or
                unrecognized response bodies
        """
        url = f"{self._config.base_url.rstrip('/')}/chat/completions"
        body = {
            "model": self._config.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self._config.temperature,
            "max_tokens": self._config.max_tokens,
        }

        try:
            response = await self.client.post(url, json=body)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise GenerationError(
                f"Generation request failed with HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise GenerationError(f"Generation request failed: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            # Some gateways return the completion as plain text
            payload = response.text

        text = extract_text(payload)
        logger.debug("Generated %d characters with %s", len(text), self._config.model)
        return text
