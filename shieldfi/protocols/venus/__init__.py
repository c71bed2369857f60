from .adapter import VenusAdapter

__all__ = ["VenusAdapter"]
