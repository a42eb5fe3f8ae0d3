"""Narrated story playback with local progress tracking and account sync."""

__version__ = "0.1.0"
