"""Asynchronous investment memo generation service."""
