"""Shared utilities: logging, helpers and validators."""
