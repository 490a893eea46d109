"""obsync - offline cache and sync engine for story collection repositories."""

__version__ = "0.1.0"
