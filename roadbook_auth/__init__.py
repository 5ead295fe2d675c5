"""Credential and session-token lifecycle service for the roadbook backend."""

__version__ = "1.0.0"
