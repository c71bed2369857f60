"""AI advisor protocol — text completion abstraction."""
from typing import Protocol


class AiAdvisor(Protocol):
    """Abstract interface for a language-model completion endpoint."""

    async def complete(self, prompt: str) -> str: ...
