"""EVM JSON-RPC client, ABI helpers, signer and protection gateway."""
from .client import EvmClient
from .gateway import EvmProtectionGateway
from .signer import EvmSigner

__all__ = ["EvmClient", "EvmProtectionGateway", "EvmSigner"]
