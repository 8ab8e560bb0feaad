"""Packaged JSON schemas and validation helpers."""
