"""Voice-driven mouth animation for avatar renderers"""

__version__ = "0.1.0"
