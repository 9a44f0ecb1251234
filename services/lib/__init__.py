"""Shared library for Bandruption services."""
