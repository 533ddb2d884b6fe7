"""Civic Portal: municipal e-governance backend."""

__version__ = "1.0.0"
