"""Workflow schedule dispatcher and executor."""

__version__ = "1.0.0"
