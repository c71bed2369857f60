from .adapter import PancakeSwapAdapter

__all__ = ["PancakeSwapAdapter"]
