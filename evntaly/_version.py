"""Version information for the Evntaly SDK."""

__version__ = "0.1.0"
