"""Persistent state."""
