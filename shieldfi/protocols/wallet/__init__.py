from .adapter import WalletAdapter

__all__ = ["WalletAdapter"]
