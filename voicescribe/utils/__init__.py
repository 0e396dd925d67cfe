"""Shared utilities: logging, errors and temp files."""
