"""OpenRouter chat-completions advisor."""
import logging
import ssl

import aiohttp
import certifi

from ..config import AdvisorConfig

logger = logging.getLogger(__name__)


class OpenRouterAdvisor:
    """Send a single-turn prompt to an OpenAI-compatible completions API."""

    def __init__(self, config: AdvisorConfig) -> None:
        self.api_key = config.api_key
        self.model = config.model
        self.base_url = config.base_url.rstrip("/")
        self.max_tokens = config.max_tokens
        self.timeout = config.timeout

    async def complete(self, prompt: str) -> str:
        """Return the text of the first completion choice.

        Raises on HTTP or transport errors; the caller decides what a
        failure means.
        """
        if not self.api_key:
            raise RuntimeError("Advisor API key not configured")

        url = f"{self.base_url}/chat/completions"
        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        async with aiohttp.ClientSession(connector=connector, timeout=timeout) as session:
            async with session.post(url, json=payload, headers=headers) as response:
                if response.status != 200:
                    raise RuntimeError(f"Advisor HTTP {response.status}")
                data = await response.json()

        choices = data.get("choices") or []
        if not choices:
            return ""
        content = (choices[0].get("message") or {}).get("content") or ""
        logger.debug("Advisor replied with %d characters", len(content))
        return content
