"""Devices, AVDs and the registry that reconciles them."""
