"""Algoland campaign stats: registry, holder and draw readers."""

__version__ = "1.0.0"
