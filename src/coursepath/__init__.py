"""coursepath - course catalog and training pathway manager."""

__version__ = "0.1.0"
