"""Core infrastructure: configuration overrides and clock helpers."""
