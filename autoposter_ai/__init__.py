"""Autoposter AI: provider adapters and resilience layer for AI content generation."""

__version__ = "0.1.0"
