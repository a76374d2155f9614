"""Mirror Discord forum channels into a relational store."""

__version__ = "0.1.0"
