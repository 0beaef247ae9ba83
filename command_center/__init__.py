"""Command Center: fencing job tracker backend."""
