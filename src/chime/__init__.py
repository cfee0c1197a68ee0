"""Chime - a file-backed task scheduler."""

__version__ = "0.1.0"
