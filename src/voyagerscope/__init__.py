"""Capture, classify and resolve domain entities from observed SPA traffic."""
