"""Adaptive mixer core for narrated "lost transmission" podcast episodes."""

__version__ = "0.1.0"
