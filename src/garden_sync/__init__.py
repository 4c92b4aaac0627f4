"""Bidirectional synchronization between two autonomous gardens."""

__version__ = "0.3.0"
