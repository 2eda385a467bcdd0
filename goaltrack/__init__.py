"""Goal progress tracking and attention scoring service."""

__version__ = "0.1.0"
