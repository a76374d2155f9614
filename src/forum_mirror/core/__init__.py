"""Core configuration for the forum mirror."""
