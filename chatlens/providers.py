"""
AI provider clients.

Every stage talks to an OpenAI-compatible chat-completions endpoint
(OpenRouter, Gemini's OpenAI endpoint, ...) through one small class.
"""

import os
from dataclasses import dataclass
from typing import Optional

import httpx

from chatlens.errors import ProviderError, RateLimitError


class ChatProvider:
    """One configured model behind a chat-completions URL."""

    def __init__(self, name: str, base_url: str, model: str, api_key: str,
                 temperature: float = 0.3, max_tokens: int = 8192,
                 timeout_seconds: float = 120, json_mode: bool = True):
        self.name = name
        self.base_url = base_url
        self.model = model
        self.api_key = api_key
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds
        self.json_mode = json_mode

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "HTTP-Referer": os.environ.get('OPENROUTER_REFERER', 'https://github.com/chatlens/chatlens'),
            "X-Title": os.environ.get('OPENROUTER_TITLE', 'ChatLens'),
            "Content-Type": "application/json",
        }

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        """
        Send one system+user exchange and return the assistant text.

        Raises:
            RateLimitError: HTTP 429 or a RESOURCE_EXHAUSTED body
            ProviderError: any other transport, HTTP or shape failure
        """
        request = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if self.json_mode:
            request["response_format"] = {"type": "json_object"}

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.base_url,
                    headers=self._headers(),
                    json=request,
                    timeout=self.timeout_seconds,
                )
                response.raise_for_status()
                result = response.json()
        except httpx.HTTPStatusError as e:
            body = e.response.text[:500]
            if e.response.status_code == 429 or 'RESOURCE_EXHAUSTED' in body:
                raise RateLimitError(f"{self.name}: rate limited ({e.response.status_code})",
                                     status_code=e.response.status_code, provider=self.name) from e
            raise ProviderError(f"{self.name}: HTTP {e.response.status_code}: {body}",
                                status_code=e.response.status_code, provider=self.name) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.name}: {type(e).__name__}: {e}", provider=self.name) from e
        except ValueError as e:
            raise ProviderError(f"{self.name}: response was not JSON: {e}", provider=self.name) from e

        try:
            content = result['choices'][0]['message']['content']
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"{self.name}: unexpected response shape", provider=self.name) from e
        if content is None:
            raise ProviderError(f"{self.name}: empty completion", provider=self.name)
        return content

    def __repr__(self) -> str:
        return f"ChatProvider({self.name!r}, model={self.model!r})"


def build_provider(name: str, provider_config, environ=None) -> Optional[ChatProvider]:
    """Build a provider from config; None when its API key is not set."""
    environ = os.environ if environ is None else environ
    api_key = environ.get(provider_config.api_key_env)
    if not api_key:
        return None
    return ChatProvider(
        name=name,
        base_url=provider_config.base_url,
        model=provider_config.model,
        api_key=api_key,
        temperature=provider_config.temperature,
        max_tokens=provider_config.max_tokens,
        timeout_seconds=provider_config.timeout_seconds,
    )


@dataclass
class Providers:
    """Provider per stage. Only the classification key selects the full path."""
    deep_analysis: Optional[ChatProvider]
    simple_analysis: Optional[ChatProvider]
    classification: Optional[ChatProvider] = None
    summarization: Optional[ChatProvider] = None

    @property
    def full_pipeline_available(self) -> bool:
        return self.classification is not None

    @classmethod
    def from_config(cls, providers_config, environ=None) -> "Providers":
        return cls(
            classification=build_provider('classification', providers_config.classification, environ),
            summarization=build_provider('summarization', providers_config.summarization, environ),
            deep_analysis=build_provider('deep_analysis', providers_config.deep_analysis, environ),
            simple_analysis=build_provider('simple_analysis', providers_config.simple_analysis, environ),
        )
