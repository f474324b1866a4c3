"""Logging and request monitoring."""
