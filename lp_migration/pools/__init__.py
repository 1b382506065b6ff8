"""Pool metrics query clients."""
from .client import HttpPoolQuery

__all__ = ["HttpPoolQuery"]
