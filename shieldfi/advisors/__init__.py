"""AI advisor backends."""
from .openrouter import OpenRouterAdvisor

__all__ = ["OpenRouterAdvisor"]
