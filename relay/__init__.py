"""Streaming HTTP relay for TeraBox and OneDrive share links."""

__version__ = "0.1.0"
