"""Shared helpers: timestamps and per-key locks."""
