"""Procedural spherical planet generation."""

__version__ = "0.1.0"
