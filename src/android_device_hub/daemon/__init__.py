"""Daemon process: core wiring and HTTP API."""
