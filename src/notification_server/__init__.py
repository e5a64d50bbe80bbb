"""Realtime notification server with durable replay."""

__version__ = "1.0.0"
