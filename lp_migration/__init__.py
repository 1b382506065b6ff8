"""Cross-pool liquidity position migration engine."""

__version__ = "0.1.0"
