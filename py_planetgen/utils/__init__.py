"""Shared vector math helpers."""
