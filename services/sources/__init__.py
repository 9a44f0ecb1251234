"""Bandruption source services."""
