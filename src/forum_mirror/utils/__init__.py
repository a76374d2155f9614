"""Utility helpers for the forum mirror."""
