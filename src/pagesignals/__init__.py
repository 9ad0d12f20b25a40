"""Concurrent page-signal extraction and frequency reporting."""

__version__ = "0.1.0"
