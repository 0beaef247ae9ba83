"""Domain services: lifecycle mapping, scheduling, sync, OAuth and settings."""
