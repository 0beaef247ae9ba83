"""Shared helpers: time handling, token encryption, debouncing."""
