"""Realtime room-based chat service."""

__version__ = "1.0.0"
