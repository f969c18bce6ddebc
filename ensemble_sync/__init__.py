"""Synchronized multi-screen presentation controller."""

__version__ = "0.1.0"
