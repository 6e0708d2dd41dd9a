"""SC2 Replay Toolkit - read StarCraft II replay archives and decode their event streams."""

__version__ = "0.1.0"
