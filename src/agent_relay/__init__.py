"""Headless execution and live progress for AI coding-assistant CLIs."""

__version__ = "0.1.0"
