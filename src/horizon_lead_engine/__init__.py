"""Horizon Lead Engine - housing lead qualification and analytics."""

__version__ = "1.0.0"
