"""Resilient read-through proxy for an upstream secrets vault."""

__version__ = "0.1.0"
