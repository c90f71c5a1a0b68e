"""Marketplace event relay for Discord."""

__version__ = "0.3.0"
