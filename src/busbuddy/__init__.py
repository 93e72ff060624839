"""BusBuddy - shared stop wait-state for a school bus and its riders."""

__version__ = "0.1.0"
