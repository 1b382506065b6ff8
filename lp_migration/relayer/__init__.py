"""Transaction relayer clients."""
from .client import RelayerClient

__all__ = ["RelayerClient"]
