"""Interception layer: hooks on host I/O primitives."""
