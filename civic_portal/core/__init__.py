"""Core package for settings, logging, auth and persistence."""
