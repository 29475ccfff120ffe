"""Shared helpers used across nhx modules."""
