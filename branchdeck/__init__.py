"""Interactive branch management for terminal UIs."""

__version__ = "0.1.0"
