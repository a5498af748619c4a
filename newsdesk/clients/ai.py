"""OpenRouter-compatible chat completion client."""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import aiohttp

from newsdesk.core.errors import AIProviderError, AITimeoutError

logger = logging.getLogger(__name__)


class AIClient:
    """Client for an OpenRouter-style chat completions API.

    Every call is bounded by ``timeout``; a call that runs past it raises
    :class:`AITimeoutError`, anything else the provider does wrong raises
    :class:`AIProviderError`.
    """

    def __init__(self, api_key: str, settings=None, model: Optional[str] = None):
        """Initialize the AI client.

        Args:
            api_key: OpenRouter API key
            settings: Settings instance for configuration values
            model: Model to use (overrides the configured default)
        """
        self.api_key = api_key
        self.base_url = (
            settings.openrouter_base_url if settings else "https://openrouter.ai/api/v1"
        ).rstrip("/")
        self.headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "X-Title": "Newsdesk",
        }

        if settings:
            self.default_model = model or settings.openrouter_model
            self.model_fallbacks: List[str] = settings.fallback_models
            self.min_request_interval = settings.openrouter_min_request_interval
            self.max_backoff_multiplier = settings.openrouter_max_backoff_multiplier
            self.timeout = settings.ai_timeout
        else:
            self.default_model = model or "openai/gpt-4o-mini"
            self.model_fallbacks = []
            self.min_request_interval = 3.2
            self.max_backoff_multiplier = 8.0
            self.timeout = 60.0

        # Rate limiting state
        self.last_request_time = 0.0
        self.consecutive_failures = 0
        self.backoff_multiplier = 1.0

    @property
    def models(self) -> List[str]:
        return [self.default_model] + [
            m for m in self.model_fallbacks if m != self.default_model
        ]

    async def complete(
        self, prompt: str, max_tokens: int = 1000, temperature: float = 0.3
    ) -> str:
        """Run one completion, falling back through the configured models.

        Args:
            prompt: The prompt to send
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature

        Returns:
            The completion text

        Raises:
            AITimeoutError: if a request exceeds the timeout
            AIProviderError: if every model failed
        """
        if not self.api_key:
            raise AIProviderError("No OpenRouter API key configured")

        last_error: Optional[Exception] = None
        for model in self.models:
            payload = {
                "model": model,
                "messages": [{"role": "user", "content": prompt}],
                "max_tokens": max_tokens,
                "temperature": temperature,
                "stream": False,
            }

            await self._rate_limit_delay()
            try:
                response = await asyncio.wait_for(
                    self._make_single_request(payload), timeout=self.timeout
                )
            except asyncio.TimeoutError as e:
                raise AITimeoutError(
                    f"Model {model} did not answer within {self.timeout:.0f}s"
                ) from e
            except AIProviderError as e:
                logger.warning(f"Model {model} failed: {e}")
                last_error = e
                continue

            content = self._extract_content(response)
            if model != self.default_model:
                logger.info(f"Using fallback model: {model}")
            return content

        raise AIProviderError(f"All models failed: {last_error}")

    async def _rate_limit_delay(self) -> None:
        """Ensure we don't exceed rate limits by adding delays between requests."""
        current_time = time.monotonic()
        time_since_last = current_time - self.last_request_time

        # Apply exponential backoff if we've had consecutive failures
        effective_interval = self.min_request_interval * self.backoff_multiplier

        if time_since_last < effective_interval:
            delay = effective_interval - time_since_last
            logger.debug(f"Rate limiting: waiting {delay:.1f}s before next AI request")
            await asyncio.sleep(delay)

        self.last_request_time = time.monotonic()

    async def _make_single_request(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Make a single request to the chat completions endpoint.

        Args:
            payload: Request payload

        Returns:
            Decoded API response
        """
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    f"{self.base_url}/chat/completions",
                    headers=self.headers,
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if response.status == 200:
                        # Reset backoff on successful request
                        self.consecutive_failures = 0
                        self.backoff_multiplier = 1.0
                        return await response.json(content_type=None)

                    if response.status == 429:
                        self.consecutive_failures += 1
                        self.backoff_multiplier = min(
                            self.max_backoff_multiplier, 2.0**self.consecutive_failures
                        )
                        logger.warning(
                            f"Rate limit hit, backing off to {self.backoff_multiplier:.1f}x delay"
                        )
                        raise AIProviderError("Rate limited (HTTP 429)")

                    error_text = await response.text()
                    raise AIProviderError(
                        f"HTTP {response.status}: {error_text[:200]}"
                    )

        except asyncio.TimeoutError:
            raise
        except aiohttp.ClientError as e:
            raise AIProviderError(f"Network error: {e}") from e
        except ValueError as e:
            raise AIProviderError(f"Undecodable response: {e}") from e

    @staticmethod
    def _extract_content(response: Dict[str, Any]) -> str:
        try:
            content = response["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise AIProviderError(f"Malformed completion response: {e}") from e

        if not isinstance(content, str) or not content.strip():
            raise AIProviderError("Completion response had no content")
        return content.strip()

    async def test_connection(self) -> bool:
        """Test the API connection.

        Returns:
            True if connection successful, False otherwise
        """
        try:
            await self.complete("Hello, world!", max_tokens=5)
            logger.info("OpenRouter API connection successful")
            return True
        except AITimeoutError as e:
            logger.error(f"Timeout testing OpenRouter connection: {e}")
            return False
        except AIProviderError as e:
            logger.error(f"OpenRouter API connection failed: {e}")
            return False
