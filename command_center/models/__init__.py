"""Pydantic models for settings state and API request bodies."""
